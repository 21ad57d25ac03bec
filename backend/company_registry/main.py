import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .core.config import Settings, get_settings
from .core.db import init_db
from .core.errors import RegistryError
from .core.logging import configure_logging
from .api.routes_companies import router as companies_router
from .api.routes_admin import router as admin_router
from .services.coordinator import SyncCoordinator
from .services.divergence import DivergenceRecorder
from .services.primary_store import SQLAlchemyPrimaryStore
from .services.registry import CompanyRegistry
from .services.search_index import ElasticsearchIndex

logger = logging.getLogger(__name__)


def build_registry(settings: Settings) -> CompanyRegistry:
    """Registry wired to the SQL primary store and the Elasticsearch index."""
    recorder = DivergenceRecorder()
    coordinator = SyncCoordinator(
        store=SQLAlchemyPrimaryStore(),
        index=ElasticsearchIndex(
            base_url=settings.SEARCH_URL,
            index=settings.SEARCH_INDEX,
            timeout=settings.SEARCH_TIMEOUT_SECONDS,
            refresh=settings.SEARCH_REFRESH,
        ),
        on_divergence=recorder,
    )
    return CompanyRegistry(coordinator, divergences=recorder, settings=settings)


def create_app(
    registry: CompanyRegistry | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    # An injected registry brings its own stores
    owns_database = registry is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_database:
            init_db()
        yield

    app = FastAPI(title="Company Registry API", lifespan=lifespan)
    app.state.settings = settings
    app.state.registry = registry or build_registry(settings)

    @app.exception_handler(RegistryError)
    async def registry_error_handler(request: Request, exc: RegistryError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled error on %s %s", request.method, request.url.path,
            exc_info=exc,
            extra={"step": "unhandled"},
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    app.include_router(companies_router)
    app.include_router(admin_router)
    return app


app = create_app()
