# backend/company_registry/services/primary_store.py
"""
Primary (authoritative) store adapters.

The coordinator only sees the narrow ``PrimaryStore`` interface and immutable
``CompanyRecord`` values; no ORM object leaves this module.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.db import SessionLocal
from ..core.errors import (
    DuplicateError,
    MalformedKeyError,
    NotFound,
    StoreError,
)
from ..models.company import Company
from ..schemas.company import validate_company_fields

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompanyRecord:
    id: str
    title: str
    description: str
    url: str
    created: datetime

    def index_document(self) -> Dict[str, Any]:
        """Fields mirrored into the search index under the same id."""
        return {
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "created": self.created.isoformat(),
        }


class PrimaryStore(ABC):

    @abstractmethod
    async def get_by_id(self, company_id: str) -> CompanyRecord:
        ...

    @abstractmethod
    async def find_by_title(self, title: str) -> Optional[CompanyRecord]:
        ...

    @abstractmethod
    async def insert(self, fields: Dict[str, Any], created: datetime) -> CompanyRecord:
        ...

    @abstractmethod
    async def update(self, company_id: str, fields: Dict[str, Any]) -> CompanyRecord:
        ...

    @abstractmethod
    async def delete(self, company_id: str) -> None:
        ...


def _parse_key(company_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(company_id)
    except (TypeError, ValueError, AttributeError):
        raise MalformedKeyError(f"Malformed company key: {company_id!r}") from None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(company: Company) -> CompanyRecord:
    return CompanyRecord(
        id=company.id.hex,
        title=company.title,
        description=company.description or "",
        url=company.url or "",
        created=_as_utc(company.created),
    )


class SQLAlchemyPrimaryStore(PrimaryStore):
    """
    Primary store backed by the ``companies`` table.

    Session work is blocking, so every call runs in a worker thread and the
    event loop is only suspended for the round trip.
    """

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception(
                "Primary store %s failed", operation,
                extra={"operation": operation, "step": "primary_store"},
            )
            raise StoreError() from exc
        finally:
            db.close()

    async def get_by_id(self, company_id: str) -> CompanyRecord:
        key = _parse_key(company_id)
        return await asyncio.to_thread(self._get_by_id, key)

    def _get_by_id(self, key: uuid.UUID) -> CompanyRecord:
        with self._session("get_by_id") as db:
            company = db.get(Company, key)
            if company is None:
                raise NotFound()
            return _to_record(company)

    async def find_by_title(self, title: str) -> Optional[CompanyRecord]:
        return await asyncio.to_thread(self._find_by_title, title)

    def _find_by_title(self, title: str) -> Optional[CompanyRecord]:
        with self._session("find_by_title") as db:
            company = db.query(Company).filter(Company.title == title).first()
            return _to_record(company) if company else None

    async def insert(self, fields: Dict[str, Any], created: datetime) -> CompanyRecord:
        valid = validate_company_fields(fields)
        return await asyncio.to_thread(self._insert, valid.model_dump(), created)

    def _insert(self, values: Dict[str, Any], created: datetime) -> CompanyRecord:
        with self._session("insert") as db:
            company = Company(created=created, **values)
            db.add(company)
            try:
                db.commit()
            except IntegrityError:
                # Unique title constraint: a concurrent register won the race
                db.rollback()
                raise DuplicateError() from None
            db.refresh(company)
            return _to_record(company)

    async def update(self, company_id: str, fields: Dict[str, Any]) -> CompanyRecord:
        key = _parse_key(company_id)
        valid = validate_company_fields(fields)
        return await asyncio.to_thread(self._update, key, valid.model_dump())

    def _update(self, key: uuid.UUID, values: Dict[str, Any]) -> CompanyRecord:
        with self._session("update") as db:
            company = db.get(Company, key)
            if company is None:
                raise NotFound()
            for name, value in values.items():
                setattr(company, name, value)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise DuplicateError() from None
            db.refresh(company)
            return _to_record(company)

    async def delete(self, company_id: str) -> None:
        key = _parse_key(company_id)
        await asyncio.to_thread(self._delete, key)

    def _delete(self, key: uuid.UUID) -> None:
        with self._session("delete") as db:
            company = db.get(Company, key)
            if company is None:
                raise NotFound()
            db.delete(company)
            db.commit()


class InMemoryPrimaryStore(PrimaryStore):
    """
    Dict-backed primary store for tests and local runs.

    Behaves like the SQL store: same key parsing, same schema validation and a
    unique title. ``calls`` counts every invocation by operation name and
    ``fail_on`` makes the next calls of one operation raise.
    """

    def __init__(self) -> None:
        self.records: Dict[str, CompanyRecord] = {}
        self.calls: Counter = Counter()
        self._failures: Dict[str, Exception] = {}

    def fail_on(self, operation: str, error: Exception) -> None:
        self._failures[operation] = error

    async def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        # Yield to the loop like a real round trip would
        await asyncio.sleep(0)
        if operation in self._failures:
            raise self._failures[operation]

    def _title_taken(self, title: str, exclude_id: str | None = None) -> bool:
        return any(
            rec.title == title and rec.id != exclude_id
            for rec in self.records.values()
        )

    async def get_by_id(self, company_id: str) -> CompanyRecord:
        key = _parse_key(company_id).hex
        await self._enter("get_by_id")
        if key not in self.records:
            raise NotFound()
        return self.records[key]

    async def find_by_title(self, title: str) -> Optional[CompanyRecord]:
        await self._enter("find_by_title")
        for rec in self.records.values():
            if rec.title == title:
                return rec
        return None

    async def insert(self, fields: Dict[str, Any], created: datetime) -> CompanyRecord:
        valid = validate_company_fields(fields)
        await self._enter("insert")
        if self._title_taken(valid.title):
            raise DuplicateError()
        record = CompanyRecord(id=uuid.uuid4().hex, created=created, **valid.model_dump())
        self.records[record.id] = record
        return record

    async def update(self, company_id: str, fields: Dict[str, Any]) -> CompanyRecord:
        key = _parse_key(company_id).hex
        valid = validate_company_fields(fields)
        await self._enter("update")
        if key not in self.records:
            raise NotFound()
        if self._title_taken(valid.title, exclude_id=key):
            raise DuplicateError()
        record = replace(self.records[key], **valid.model_dump())
        self.records[key] = record
        return record

    async def delete(self, company_id: str) -> None:
        key = _parse_key(company_id).hex
        await self._enter("delete")
        if key not in self.records:
            raise NotFound()
        del self.records[key]

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())
