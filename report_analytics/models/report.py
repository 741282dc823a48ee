"""
report.py — Document shape of an incident report in the `reports` collection.

The submission and moderation workflow owns these documents; the
analytics service only reads them. ReportRecord documents the fields
the resolvers rely on and builds well-formed documents for the seed
script and tests.

Only documents with status == "approved" are aggregated.
"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

ReportStatus = Literal["pending", "approved", "rejected"]
CredibilityLevel = Literal["confirmed", "high", "medium", "low", "unverified"]

# Severity ladder used to order the credibility breakdown.
CREDIBILITY_LADDER: tuple[str, ...] = ("confirmed", "high", "medium", "low", "unverified")


class ReportRecord(BaseModel):
    """One approved (or pending) report as stored in MongoDB."""

    status: ReportStatus = "approved"
    title: str = ""
    slug: Optional[str] = None
    category: str
    country: Optional[str] = None
    location_name: Optional[str] = None
    credibility: Optional[CredibilityLevel] = None
    created_at: datetime
    # Calendar date of the event, "YYYY-MM-DD" (or a full datetime).
    event_date: Optional[datetime | date] = None
    # Local wall-clock time of the event, "HH:MM".
    event_time: Optional[str] = Field(default=None, pattern=r"^\d{1,2}:\d{2}")
    has_photo_video: bool = False
    has_physical_evidence: bool = False
    has_official_report: bool = False
    witness_count: Optional[int] = Field(default=None, ge=0)
    submitter_was_witness: bool = False
    anonymous_submission: bool = False
    view_count: int = Field(default=0, ge=0)
    source_type: Optional[str] = None

    def to_document(self) -> dict:
        """Return the MongoDB document (event_date as an ISO date string)."""
        doc = self.model_dump()
        if isinstance(self.event_date, date) and not isinstance(self.event_date, datetime):
            doc["event_date"] = self.event_date.isoformat()
        return doc
