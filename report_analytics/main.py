"""
Report Analytics API — Application entry point.

Bootstraps FastAPI, wires up middleware, registers route groups,
and manages the MongoDB connection lifecycle.

Extension points:
  - Add new metric resolvers in services/gateway.default_resolvers()
  - Add new route groups with app.include_router() below
  - Change startup behaviour in the lifespan context manager
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from report_analytics.core.config import settings
from report_analytics.core.database import close_mongo_connection, connect_to_mongo
from report_analytics.core.rate_limit import limiter
from report_analytics.routes.analytics import router as analytics_router
from report_analytics.routes.health import router as health_router
from report_analytics.routes.patterns import router as patterns_router

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect to MongoDB on startup, close the client on shutdown."""
    logger.info("Starting Report Analytics API (env: %s)", settings.environment)
    if settings.disabled_procedures:
        logger.warning(
            "Precomputed procedures disabled, fallback scans will be used: %s",
            ", ".join(sorted(settings.disabled_procedures)),
        )
    await connect_to_mongo()
    yield
    logger.info("Shutting down Report Analytics API")
    await close_mongo_connection()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Report Analytics API",
    description=(
        "Aggregated statistics and rule-based insights over approved incident reports. "
        "Metrics flagged 'degraded' in resolverStatus are estimates over a capped sample."
    ),
    version="0.1.0",
    lifespan=lifespan,
    # Disable docs in production to reduce attack surface
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Rate limiting ─────────────────────────────────────────────────────────────
# Routes opt-in with @limiter.limit("N/minute") + request: Request parameter.
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ─── Middleware ─────────────────────────────────────────────────────────────────
# Read-only public API: no credentials, GET only.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(analytics_router)
app.include_router(patterns_router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "Report Analytics API",
        "version": "0.1.0",
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }
