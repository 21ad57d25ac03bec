# backend/company_registry/services/coordinator.py
"""
Synchronization between the primary store and the search index.

Every write follows the same ordering: the primary store is read and written
first, the search index second. The index can therefore lag the primary store
but never lead it. An index failure after a primary commit does not fail the
operation; it is handed to the divergence hook so a re-index can pick it up.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..core.errors import (
    DuplicateError,
    FieldError,
    IndexNotFoundError,
    MalformedKeyError,
    NotFound,
    SearchIndexError,
    ValidationError,
)
from ..schemas.company import validate_company_fields
from .divergence import DivergenceHook, log_divergence
from .identifiers import validate_identifier
from .primary_store import CompanyRecord, PrimaryStore
from .search_index import IndexedCompany, SearchIndex, SortOrder

logger = logging.getLogger(__name__)

PATCHABLE_FIELDS = ("title", "description", "url")
TITLE_REQUIRED = "Path `title` is required."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class UpdateOutcome:
    before: CompanyRecord
    after: CompanyRecord


class SyncCoordinator:
    def __init__(
        self,
        store: PrimaryStore,
        index: SearchIndex,
        on_divergence: DivergenceHook | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.index = index
        self.on_divergence = on_divergence or log_divergence
        self.clock = clock

    async def _load(self, company_id: Any) -> CompanyRecord:
        validate_identifier(company_id)
        try:
            return await self.store.get_by_id(company_id)
        except MalformedKeyError:
            # Callers cannot act differently on an unparseable key and a missing one
            raise NotFound() from None

    async def _mirror(self, record: CompanyRecord, operation: str) -> None:
        try:
            await self.index.upsert(record.id, record.index_document())
        except SearchIndexError as exc:
            await self.on_divergence(record.id, operation, exc)

    async def register(self, fields: Dict[str, Any]) -> CompanyRecord:
        title = fields.get("title")
        if title is None:
            raise ValidationError(
                [FieldError(field="title", message=TITLE_REQUIRED)]
            )

        values = {
            "title": title,
            "description": fields.get("description") or "",
            "url": fields.get("url") or "",
        }
        if not isinstance(title, str):
            # Field-level message instead of a lookup on a non-string title
            validate_company_fields(values)

        # Fast path; the unique constraint on title still guards the insert
        if await self.store.find_by_title(title) is not None:
            raise DuplicateError()

        record = await self.store.insert(values, created=self.clock())
        logger.info(
            "Company registered",
            extra={"company_id": record.id, "operation": "register", "step": "primary_commit"},
        )

        await self._mirror(record, "register")
        return record

    async def fetch_one(self, company_id: Any) -> CompanyRecord:
        return await self._load(company_id)

    async def list(
        self,
        offset: int,
        limit: int,
        sort_order: SortOrder = "asc",
        text: Optional[str] = None,
    ) -> List[IndexedCompany]:
        try:
            return await self.index.query_sorted("title", sort_order, offset, limit, text=text)
        except IndexNotFoundError:
            # The index is created lazily by the first write; no index means no companies
            return []

    async def update(self, company_id: Any, patch: Dict[str, Any]) -> UpdateOutcome:
        before = await self._load(company_id)

        merged = {
            name: patch.get(name) or getattr(before, name)
            for name in PATCHABLE_FIELDS
        }
        after = await self.store.update(before.id, merged)
        logger.info(
            "Company updated",
            extra={"company_id": after.id, "operation": "update", "step": "primary_commit"},
        )

        await self._mirror(after, "update")
        return UpdateOutcome(before=before, after=after)

    async def remove(self, company_id: Any) -> CompanyRecord:
        record = await self._load(company_id)

        await self.store.delete(record.id)
        logger.info(
            "Company removed",
            extra={"company_id": record.id, "operation": "remove", "step": "primary_commit"},
        )

        try:
            await self.index.delete(record.id)
        except SearchIndexError as exc:
            await self.on_divergence(record.id, "remove", exc)

        return record
