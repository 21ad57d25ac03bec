from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from .config import get_settings

settings = get_settings()


def build_engine(url: str, **kwargs) -> Engine:
    # SQLite connections are shared with the worker threads primary store calls run in
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True, **kwargs)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()


def init_db(bind: Engine | None = None) -> None:
    """Create any missing tables. There is no migration tooling."""
    # Register models on Base.metadata before create_all
    from ..models import company, index_divergence  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
