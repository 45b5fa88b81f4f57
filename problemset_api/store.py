"""
Problem store: thin adapter over a KV backend.
"""

from typing import Optional

import structlog

from .kv import KVNamespace

logger = structlog.get_logger()


class ProblemStore:
    """Problem documents keyed by id. Backend errors propagate to the caller."""

    def __init__(self, kv: KVNamespace):
        self.kv = kv

    @property
    def backend(self) -> str:
        return self.kv.name

    async def list_ids(self) -> list[str]:
        """
        Get every stored problem id.

        The backend lists keys in pages; follow the cursor chain until it
        is exhausted so callers always see the full key set.
        """
        ids: list[str] = []
        cursor: Optional[str] = None
        seen_cursors: set[str] = set()

        while True:
            page = await self.kv.list_keys(cursor)
            ids.extend(page.keys)

            if not page.cursor:
                break
            # Guard against cursor loops from the backend.
            if page.cursor in seen_cursors:
                logger.warning("list_cursor_loop", cursor=page.cursor, backend=self.backend)
                break
            seen_cursors.add(page.cursor)
            cursor = page.cursor

        return ids

    async def get(self, problem_id: str) -> Optional[str]:
        """Get a problem body, or None if absent."""
        return await self.kv.get(problem_id)

    async def put(self, problem_id: str, body: str) -> None:
        """Store a problem body, overwriting any existing one."""
        await self.kv.put(problem_id, body)

    async def delete(self, problem_id: str) -> bool:
        """Delete a problem. Existence must be checked by the caller."""
        return await self.kv.delete(problem_id)

    async def close(self) -> None:
        await self.kv.close()
