# backend/company_registry/services/registry.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from ..core.config import Settings, get_settings
from ..core.errors import FieldError, SearchIndexError, StoreError, ValidationError
from ..schemas.company import (
    CompanyCreatedOut,
    CompanyOut,
    CompanyRemovedOut,
    CompanySnapshot,
    CompanyUpdateOut,
    IndexDivergenceOut,
)
from .coordinator import SyncCoordinator
from .divergence import DivergenceRecorder
from .identifiers import validate_identifier
from .primary_store import CompanyRecord

logger = logging.getLogger(__name__)


def _to_int(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _require_object(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError(
            [FieldError(field="body", message="body: Request body must be a JSON object")]
        )
    return payload


def _public(record: CompanyRecord) -> CompanyOut:
    return CompanyOut(
        id=record.id,
        title=record.title,
        description=record.description,
        url=record.url,
    )


def _snapshot(record: CompanyRecord) -> CompanySnapshot:
    return CompanySnapshot(title=record.title, description=record.description, url=record.url)


@contextmanager
def _sanitized(operation: str) -> Iterator[None]:
    """Store and index failures reach callers with their fixed message only."""
    try:
        yield
    except (StoreError, SearchIndexError) as exc:
        logger.error(
            "Company %s failed: %s", operation, exc,
            extra={"operation": operation, "error": type(exc).__name__},
        )
        raise type(exc)() from exc


class CompanyRegistry:
    """
    Public operation surface consumed by the HTTP layer.

    Holds no state of its own; everything durable lives in the two stores
    behind the coordinator.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        divergences: DivergenceRecorder | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.coordinator = coordinator
        self.divergences = divergences
        self.settings = settings or get_settings()

    def page_window(self, page: Any, max_entries: Any) -> Tuple[int, int]:
        """Translate ``page``/``max`` query values into a clamped (offset, limit)."""
        offset = max(0, _to_int(page, self.settings.PAGE_DEFAULT_START))
        limit = _to_int(max_entries, self.settings.PAGE_DEFAULT_ENTRIES)
        limit = max(1, min(limit, self.settings.MAX_PAGE_SIZE))
        return offset, limit

    async def register(self, payload: Any) -> CompanyCreatedOut:
        fields = _require_object(payload)
        with _sanitized("register"):
            record = await self.coordinator.register(fields)
        return CompanyCreatedOut(id=record.id)

    async def fetch_one(self, company_id: Any) -> CompanyOut:
        with _sanitized("fetch_one"):
            record = await self.coordinator.fetch_one(company_id)
        return _public(record)

    async def list(self, page: Any = None, max_entries: Any = None) -> List[CompanyOut]:
        offset, limit = self.page_window(page, max_entries)
        with _sanitized("list"):
            hits = await self.coordinator.list(offset, limit)
        return [
            CompanyOut(id=h.id, title=h.title, description=h.description, url=h.url)
            for h in hits
        ]

    async def search(self, payload: Any) -> List[CompanyOut]:
        body = _require_object(payload)
        query: Optional[str] = body.get("query")
        if not isinstance(query, str) or not query.strip():
            raise ValidationError(
                [FieldError(field="query", message="query: Field required")]
            )
        offset, limit = self.page_window(body.get("page"), body.get("max"))
        with _sanitized("search"):
            hits = await self.coordinator.list(offset, limit, text=query.strip())
        return [
            CompanyOut(id=h.id, title=h.title, description=h.description, url=h.url)
            for h in hits
        ]

    async def update(self, company_id: Any, payload: Any) -> CompanyUpdateOut:
        # Identifier problems are reported before body problems
        validate_identifier(company_id)
        patch = _require_object(payload)
        with _sanitized("update"):
            outcome = await self.coordinator.update(company_id, patch)
        return CompanyUpdateOut(
            message=f"The company '{outcome.after.title}' has been successfully edited.",
            old=_snapshot(outcome.before),
            new=_snapshot(outcome.after),
        )

    async def remove(self, company_id: Any) -> CompanyRemovedOut:
        with _sanitized("remove"):
            record = await self.coordinator.remove(company_id)
        return CompanyRemovedOut(
            message=f"The company '{record.title}' has been successfully removed.",
            company=_public(record),
        )

    async def list_divergences(self, limit: Any = None, offset: Any = None) -> List[IndexDivergenceOut]:
        if self.divergences is None:
            return []
        safe_offset, safe_limit = self.page_window(offset, limit)
        with _sanitized("list_divergences"):
            try:
                rows = await self.divergences.list_recent(limit=safe_limit, offset=safe_offset)
            except SQLAlchemyError as exc:
                raise StoreError() from exc
        return [IndexDivergenceOut.model_validate(row) for row in rows]
