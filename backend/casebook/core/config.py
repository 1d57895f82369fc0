# Central place for all configurable settings. We use Pydantic's
# BaseSettings so values can be read from env vars or a .env file.
# Tenancy, cache and pagination knobs all live here.

import json
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def safe_json_loads(value):
    try:
        return json.loads(value)
    except Exception:
        return value


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_json_loads=safe_json_loads,
        extra="ignore",
    )

    # Core DB connection string, like sqlite:///./casebook.db or a Postgres URL.
    DATABASE_URL: str = "sqlite:///./casebook.db"

    # Toggle SQLAlchemy echo logs. Useful for debugging scoped queries locally.
    DB_ECHO: bool = False

    # Tenancy: selector resolution at the request boundary.
    TENANT_HEADER_NAME: str = "X-Tenant-ID"
    # Base domain used to pull a tenant subdomain out of the Host header,
    # e.g. "example.com" turns "acme.example.com" into "acme".
    TENANT_SUBDOMAIN_BASE_DOMAIN: Optional[str] = None
    # Answer 404 instead of 403 for membership failures so existence never leaks.
    TENANT_STRICT_404: bool = True
    # Paths served without a tenant scope (registry admin, health, metrics).
    TENANT_EXEMPT_PATHS: List[str] = Field(
        default_factory=lambda: ["/ping", "/metrics", "/admin", "/docs", "/openapi.json"]
    )

    # Cache: backend selection and key namespace.
    CACHE_BACKEND: str = "memory"
    REDIS_URL: Optional[str] = None
    CACHE_NAMESPACE: str = "casebook"
    CACHE_DEFAULT_TTL_SECONDS: int = Field(default=300, ge=0)
    DEADLINE_CACHE_TTL_SECONDS: int = Field(default=900, ge=0)

    # Pagination defaults and guard rails.
    PAGINATION_DEFAULT_PER_PAGE: int = Field(default=20, gt=0)
    PAGINATION_MAX_PER_PAGE: int = Field(default=100, gt=0)
    # Raise CountMismatchDefect instead of logging it.
    PAGINATION_STRICT_COUNT: bool = True

    LOG_LEVEL: str = "INFO"

    @field_validator("TENANT_EXEMPT_PATHS", mode="before")
    @classmethod
    def _parse_list_values(cls, value):
        if isinstance(value, str):
            parts = [p.strip() for p in value.split(",") if p.strip()]
            return parts
        return value


# Instantiate a single settings object for app-wide import.
# Any module can just `from casebook.core.config import settings`.
settings = Settings()
