"""
Key-value backends for problem documents.

Supports three backends, selected with STORE_BACKEND:
- memory: process-local dict (development and tests)
- sql: SQLite or PostgreSQL through SQLAlchemy (DATABASE_URL)
- cloudflare: Cloudflare Workers KV namespace via its REST API
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import quote, urlparse

import httpx
import structlog
from sqlalchemy import Column, MetaData, Table, Text, create_engine, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.engine import Engine
from starlette.concurrency import run_in_threadpool

from .config import Settings

logger = structlog.get_logger()


@dataclass
class KVListPage:
    """One page of a key listing."""

    keys: list[str] = field(default_factory=list)
    cursor: Optional[str] = None  # None when the listing is exhausted


class KVNamespace(ABC):
    """Async string-keyed store with cursor-paginated listing."""

    name: str = "kv"

    @abstractmethod
    async def list_keys(self, cursor: Optional[str] = None) -> KVListPage:
        """Return one page of keys starting at `cursor`."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value for `key`, or None if absent."""

    @abstractmethod
    async def put(self, key: str, value: str) -> None:
        """Store `value` under `key`, overwriting any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete `key`. Returns False if the backend reports a failure."""

    async def close(self) -> None:
        """Release backend resources."""


# ============================================================================
# Memory
# ============================================================================


class MemoryKV(KVNamespace):
    """In-process backend. Cursors are stringified offsets into the sorted keys."""

    name = "memory"

    def __init__(self, page_size: int = 1000):
        self.page_size = page_size
        self._data: dict[str, str] = {}

    async def list_keys(self, cursor: Optional[str] = None) -> KVListPage:
        keys = sorted(self._data)
        start = int(cursor) if cursor else 0
        end = start + self.page_size
        return KVListPage(
            keys=keys[start:end],
            cursor=str(end) if end < len(keys) else None,
        )

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def put(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> bool:
        self._data.pop(key, None)
        return True


# ============================================================================
# SQL (SQLite / PostgreSQL)
# ============================================================================

metadata = MetaData()

problems_table = Table(
    "problems",
    metadata,
    Column("key", Text, primary_key=True),
    Column("value", Text, nullable=False),
)


def parse_database_url(url: str) -> str:
    """
    Normalize a database URL.

    postgres:// (Heroku/Railway style) is rewritten to postgresql:// for SQLAlchemy.
    """
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def mask_url(url: str) -> str:
    """Mask password in URL for logging."""
    parsed = urlparse(url)
    if parsed.password:
        return url.replace(parsed.password, "***")
    return url


class SQLKV(KVNamespace):
    """
    Backend storing problems in a single SQL table.

    Listing uses keyset pagination: the cursor is the last key of the
    previous page.
    """

    name = "sql"

    def __init__(self, database_url: str = "sqlite:///./problemset.db", page_size: int = 1000):
        self.database_url = parse_database_url(database_url)
        self.page_size = page_size
        self._is_postgres = self.database_url.startswith("postgresql://")
        self._engine: Optional[Engine] = None
        self._init_db()

    def _get_engine(self) -> Engine:
        """Get or create database engine."""
        if self._engine is None:
            connect_args = {}
            if self.database_url.startswith("sqlite://"):
                # Requests are served from a threadpool
                connect_args["check_same_thread"] = False
            self._engine = create_engine(
                self.database_url,
                connect_args=connect_args,
                pool_pre_ping=True,
            )
        return self._engine

    def _init_db(self) -> None:
        """Initialize database schema."""
        metadata.create_all(self._get_engine())
        logger.info(
            "database_initialized",
            url=mask_url(self.database_url),
            backend="postgresql" if self._is_postgres else "sqlite",
        )

    def _list_keys(self, cursor: Optional[str]) -> KVListPage:
        stmt = select(problems_table.c.key).order_by(problems_table.c.key).limit(self.page_size)
        if cursor is not None:
            stmt = stmt.where(problems_table.c.key > cursor)
        with self._get_engine().connect() as conn:
            keys = [row.key for row in conn.execute(stmt)]
        return KVListPage(
            keys=keys,
            cursor=keys[-1] if len(keys) == self.page_size else None,
        )

    def _get(self, key: str) -> Optional[str]:
        stmt = select(problems_table.c.value).where(problems_table.c.key == key)
        with self._get_engine().connect() as conn:
            row = conn.execute(stmt).fetchone()
        return row.value if row is not None else None

    def _put(self, key: str, value: str) -> None:
        with self._get_engine().begin() as conn:
            if self._is_postgres:
                stmt = pg_insert(problems_table).values(key=key, value=value)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[problems_table.c.key],
                    set_={"value": stmt.excluded.value},
                )
            else:
                stmt = problems_table.insert().prefix_with("OR REPLACE").values(key=key, value=value)
            conn.execute(stmt)

    def _delete(self, key: str) -> bool:
        with self._get_engine().begin() as conn:
            conn.execute(problems_table.delete().where(problems_table.c.key == key))
        return True

    async def list_keys(self, cursor: Optional[str] = None) -> KVListPage:
        return await run_in_threadpool(self._list_keys, cursor)

    async def get(self, key: str) -> Optional[str]:
        return await run_in_threadpool(self._get, key)

    async def put(self, key: str, value: str) -> None:
        await run_in_threadpool(self._put, key, value)

    async def delete(self, key: str) -> bool:
        return await run_in_threadpool(self._delete, key)

    async def close(self) -> None:
        """Close database connection."""
        if self._engine:
            self._engine.dispose()
            self._engine = None


# ============================================================================
# Cloudflare Workers KV
# ============================================================================


@dataclass
class CloudflareKVConfig:
    """Cloudflare KV namespace configuration."""

    account_id: str
    namespace_id: str
    api_token: str
    api_url: str = "https://api.cloudflare.com/client/v4"
    timeout: float = 30.0


class CloudflareKV(KVNamespace):
    """
    Async client for a Workers KV namespace.

    Endpoints used (relative to the namespace):
    - GET    /keys?cursor=...&limit=...
    - GET    /values/{key}
    - PUT    /values/{key}
    - DELETE /values/{key}
    """

    name = "cloudflare"

    def __init__(
        self,
        config: CloudflareKVConfig,
        page_size: int = 1000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.page_size = page_size
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def namespace_path(self) -> str:
        return (
            f"/accounts/{self.config.account_id}"
            f"/storage/kv/namespaces/{self.config.namespace_id}"
        )

    def _value_path(self, key: str) -> str:
        # Keys may contain slashes; they must stay inside one path segment
        return f"{self.namespace_path}/values/{quote(key, safe='')}"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.api_url.rstrip("/"),
                headers={"Authorization": f"Bearer {self.config.api_token}"},
                timeout=self.config.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def list_keys(self, cursor: Optional[str] = None) -> KVListPage:
        params: dict[str, str | int] = {"limit": self.page_size}
        if cursor:
            params["cursor"] = cursor

        client = await self._get_client()
        response = await client.get(f"{self.namespace_path}/keys", params=params)
        response.raise_for_status()

        payload = response.json()
        if not payload.get("success", False):
            raise Exception(f"KV list error: {payload.get('errors')}")

        info = payload.get("result_info") or {}
        return KVListPage(
            keys=[item["name"] for item in payload.get("result", [])],
            cursor=info.get("cursor") or None,
        )

    async def get(self, key: str) -> Optional[str]:
        client = await self._get_client()
        response = await client.get(self._value_path(key))
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.text

    async def put(self, key: str, value: str) -> None:
        client = await self._get_client()
        response = await client.put(
            self._value_path(key),
            content=value.encode("utf-8"),
            headers={"Content-Type": "text/plain; charset=utf-8"},
        )
        response.raise_for_status()

    async def delete(self, key: str) -> bool:
        client = await self._get_client()
        response = await client.delete(self._value_path(key))
        response.raise_for_status()
        return bool(response.json().get("success", False))


# ============================================================================
# Factory
# ============================================================================


def create_kv(settings: Settings) -> KVNamespace:
    """Build the backend selected by `settings.store_backend`."""
    backend = settings.store_backend.lower()

    if backend == "memory":
        return MemoryKV(page_size=settings.kv_list_limit)

    if backend == "sql":
        return SQLKV(settings.database_url, page_size=settings.kv_list_limit)

    if backend == "cloudflare":
        if not (settings.cf_account_id and settings.cf_namespace_id and settings.cf_api_token):
            raise ValueError(
                "cloudflare backend requires CF_ACCOUNT_ID, CF_NAMESPACE_ID and CF_API_TOKEN"
            )
        return CloudflareKV(
            CloudflareKVConfig(
                account_id=settings.cf_account_id,
                namespace_id=settings.cf_namespace_id,
                api_token=settings.cf_api_token,
                api_url=settings.cf_api_url,
            ),
            page_size=settings.kv_list_limit,
        )

    raise ValueError(f"Unknown store backend: {settings.store_backend}")
