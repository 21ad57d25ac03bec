import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from company_registry.core.db import build_engine, init_db
from company_registry.services.coordinator import SyncCoordinator
from company_registry.services.primary_store import InMemoryPrimaryStore
from company_registry.services.search_index import InMemorySearchIndex

from tests.fixtures.registry_fixtures import RecordingHook, fixed_clock


@pytest.fixture()
def store():
    return InMemoryPrimaryStore()


@pytest.fixture()
def index():
    return InMemorySearchIndex()


@pytest.fixture()
def divergences():
    return RecordingHook()


@pytest.fixture()
def coordinator(store, index, divergences):
    return SyncCoordinator(store, index, on_divergence=divergences, clock=fixed_clock)


@pytest.fixture()
def session_factory():
    """Sessions on a private in-memory SQLite database with the schema created."""
    engine = build_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()
