"""
Configuration for Problemset API.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    API configuration settings.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # API Server
    host: str = Field(
        default="127.0.0.1",
        description="API host (127.0.0.1 for local only, 0.0.0.0 for external)",
        alias="HOST",
    )
    port: int = Field(
        default=8000,
        description="API port",
        alias="PORT",
    )
    debug: bool = Field(default=False, description="Enable debug mode (reload, OpenAPI docs)")

    # Authentication
    # Only the digest is configured, never the plaintext password.
    pass_key: Optional[str] = Field(
        default=None,
        description="Lowercase hex SHA-512 digest of the write password",
        alias="PASS_KEY",
    )
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="CORS allowed origins",
    )

    # Storage backend: memory, sql or cloudflare
    store_backend: str = Field(
        default="memory",
        description="Key-value backend: memory, sql or cloudflare",
        alias="STORE_BACKEND",
    )
    kv_list_limit: int = Field(
        default=1000,
        gt=0,
        description="Page size used when listing keys from the backend",
        alias="KV_LIST_LIMIT",
    )

    # SQL backend
    database_url: str = Field(
        default="sqlite:///./problemset.db",
        description="SQLAlchemy database URL (sqlite:// or postgresql://)",
        alias="DATABASE_URL",
    )

    # Cloudflare Workers KV backend
    cf_api_url: str = Field(
        default="https://api.cloudflare.com/client/v4",
        description="Cloudflare API base URL",
        alias="CF_API_URL",
    )
    cf_account_id: Optional[str] = Field(default=None, alias="CF_ACCOUNT_ID")
    cf_namespace_id: Optional[str] = Field(default=None, alias="CF_NAMESPACE_ID")
    cf_api_token: Optional[str] = Field(default=None, alias="CF_API_TOKEN")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
