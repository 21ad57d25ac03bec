from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime, timezone

from ..core.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IndexDivergence(Base):
    """
    One search index write that failed after the primary store committed.

    Rows are the hand-off point for a re-index job; nothing in this service
    consumes them beyond the admin listing.
    """
    __tablename__ = "index_divergences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(String(32), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    operation = Column(String, nullable=False)  # "register", "update", "remove"
    error = Column(String, nullable=True)       # sanitized, no stack traces
