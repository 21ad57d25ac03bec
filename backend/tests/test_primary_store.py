"""
Tests for primary_store.py - SQLAlchemy adapter on in-memory SQLite
"""
import uuid

import pytest
from sqlalchemy.exc import OperationalError

from company_registry.core.errors import (
    DuplicateError,
    MalformedKeyError,
    NotFound,
    StoreError,
    ValidationError,
)
from company_registry.services.primary_store import SQLAlchemyPrimaryStore

from tests.fixtures.registry_fixtures import FIXED_NOW, WELL_FORMED_UNKNOWN_ID


@pytest.fixture()
def sql_store(session_factory):
    return SQLAlchemyPrimaryStore(session_factory)


class TestSQLAlchemyPrimaryStore:

    @pytest.mark.asyncio
    async def test_insert_assigns_id_and_keeps_created(self, sql_store):
        record = await sql_store.insert(
            {"title": "Acme", "description": "Widgets", "url": ""},
            created=FIXED_NOW,
        )

        assert len(record.id) == 32
        assert uuid.UUID(record.id).hex == record.id
        assert record.created == FIXED_NOW

        fetched = await sql_store.get_by_id(record.id)
        assert fetched == record

    @pytest.mark.asyncio
    async def test_find_by_title(self, sql_store):
        record = await sql_store.insert({"title": "Acme"}, created=FIXED_NOW)

        assert await sql_store.find_by_title("Acme") == record
        assert await sql_store.find_by_title("Globex") is None

    @pytest.mark.asyncio
    async def test_unique_title_enforced_by_database(self, sql_store):
        await sql_store.insert({"title": "Acme"}, created=FIXED_NOW)

        with pytest.raises(DuplicateError):
            await sql_store.insert({"title": "Acme", "url": "x"}, created=FIXED_NOW)

    @pytest.mark.asyncio
    async def test_insert_validation_collects_every_field(self, sql_store):
        with pytest.raises(ValidationError) as excinfo:
            await sql_store.insert({"title": "", "description": 7}, created=FIXED_NOW)

        assert {e.field for e in excinfo.value.field_errors} == {"title", "description"}

    @pytest.mark.asyncio
    async def test_malformed_key(self, sql_store):
        with pytest.raises(MalformedKeyError):
            await sql_store.get_by_id(WELL_FORMED_UNKNOWN_ID)
        assert issubclass(MalformedKeyError, StoreError)

    @pytest.mark.asyncio
    async def test_missing_key(self, sql_store):
        with pytest.raises(NotFound):
            await sql_store.get_by_id(uuid.uuid4().hex)
        with pytest.raises(NotFound):
            await sql_store.delete(uuid.uuid4().hex)

    @pytest.mark.asyncio
    async def test_update_overwrites_fields(self, sql_store):
        record = await sql_store.insert({"title": "Acme"}, created=FIXED_NOW)

        updated = await sql_store.update(
            record.id, {"title": "Acme", "description": "Widgets", "url": "acme.example"}
        )

        assert updated.description == "Widgets"
        assert updated.created == FIXED_NOW
        assert (await sql_store.get_by_id(record.id)).url == "acme.example"

    @pytest.mark.asyncio
    async def test_update_to_existing_title(self, sql_store):
        await sql_store.insert({"title": "Acme"}, created=FIXED_NOW)
        other = await sql_store.insert({"title": "Globex"}, created=FIXED_NOW)

        with pytest.raises(DuplicateError):
            await sql_store.update(other.id, {"title": "Acme", "description": "", "url": ""})

    @pytest.mark.asyncio
    async def test_delete(self, sql_store):
        record = await sql_store.insert({"title": "Acme"}, created=FIXED_NOW)

        await sql_store.delete(record.id)

        with pytest.raises(NotFound):
            await sql_store.get_by_id(record.id)

    @pytest.mark.asyncio
    async def test_database_errors_become_store_error(self):
        class BrokenSession:
            def get(self, *args, **kwargs):
                raise OperationalError("SELECT 1", {}, Exception("database is locked"))

            def rollback(self):
                pass

            def close(self):
                pass

        store = SQLAlchemyPrimaryStore(lambda: BrokenSession())

        with pytest.raises(StoreError) as excinfo:
            await store.get_by_id(uuid.uuid4().hex)
        assert "locked" not in excinfo.value.message
