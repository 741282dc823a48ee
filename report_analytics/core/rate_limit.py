"""
rate_limit.py — Global rate limiter instance.

Uses slowapi (a Starlette-compatible wrapper around the `limits` library).
Requests are keyed by client IP address. Dashboards poll the analytics
endpoints, so the limit is generous; the CDN cache absorbs most traffic.

Usage in routes:
    from fastapi import Request
    from report_analytics.core.rate_limit import limiter

    @router.get("/some-endpoint")
    @limiter.limit(settings.analytics_rate_limit)
    async def my_endpoint(request: Request):
        ...
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
