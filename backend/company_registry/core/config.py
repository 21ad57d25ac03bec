from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # core
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # primary store
    DATABASE_URL: str = "sqlite:///./companies.db"

    # search index (Elasticsearch-compatible REST API)
    SEARCH_URL: str = "http://localhost:9200"
    SEARCH_INDEX: str = "companies"
    SEARCH_TIMEOUT_SECONDS: float = 10.0
    # "false", "true" or "wait_for"; wait_for makes a write visible to the next search
    SEARCH_REFRESH: str = "false"

    # auth / security
    # Unset means every admin operation is rejected with 401
    ADMIN_TOKEN: str | None = None

    # pagination
    PAGE_DEFAULT_START: int = 0
    PAGE_DEFAULT_ENTRIES: int = 20
    MAX_PAGE_SIZE: int = 100

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
