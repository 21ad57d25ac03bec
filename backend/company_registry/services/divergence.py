# backend/company_registry/services/divergence.py
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List

from sqlalchemy.orm import Session

from ..core.db import SessionLocal
from ..models.index_divergence import IndexDivergence

logger = logging.getLogger(__name__)

# (company_id, operation, error) -> None
DivergenceHook = Callable[[str, str, Exception], Awaitable[None]]


async def log_divergence(company_id: str, operation: str, error: Exception) -> None:
    """Hook that only logs. Used when no database is available for the record."""
    logger.warning(
        "Index write failed for company %s after primary commit", company_id,
        extra={
            "company_id": company_id,
            "operation": operation,
            "step": "index_divergence",
            "error": str(error),
        },
    )


class DivergenceRecorder:
    """
    Default divergence hook: logs the event and persists an IndexDivergence row.

    Best-effort, fire-and-forget. Failure to persist must NEVER change the
    outcome of the request that diverged.
    """

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    async def __call__(self, company_id: str, operation: str, error: Exception) -> None:
        await log_divergence(company_id, operation, error)
        await asyncio.to_thread(self._persist, company_id, operation, str(error))

    def _persist(self, company_id: str, operation: str, error: str) -> None:
        db = self._session_factory()
        try:
            db.add(
                IndexDivergence(
                    company_id=company_id,
                    operation=operation,
                    error=error[:500],
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            logger.exception(
                "Failed to record index divergence",
                extra={"company_id": company_id, "operation": operation},
            )
        finally:
            db.close()

    async def list_recent(self, limit: int = 50, offset: int = 0) -> List[IndexDivergence]:
        return await asyncio.to_thread(self._list_recent, limit, offset)

    def _list_recent(self, limit: int, offset: int) -> List[IndexDivergence]:
        db = self._session_factory()
        try:
            return (
                db.query(IndexDivergence)
                .order_by(IndexDivergence.created_at.desc(), IndexDivergence.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
        finally:
            db.close()
