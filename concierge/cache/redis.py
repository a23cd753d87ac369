"""Redis-backed active-workflow cache for multi-process deployments."""

from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as redis

from .base import ActiveWorkflowCache


class RedisActiveWorkflowCache(ActiveWorkflowCache):
    """One ``concierge:active:<owner_id>`` string key per owner.

    Keys are written with ``EX ttl_seconds`` so an owner who goes quiet
    drops out of the cache on its own; the engine rebuilds the entry from
    the repository on the next lookup.
    """

    key_prefix = "concierge:active"

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        ttl_seconds: Optional[int] = 900,
    ) -> None:
        super().__init__(ttl_seconds)
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        client = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await client.ping()
        self._redis = client

    async def disconnect(self) -> None:
        client, self._redis = self._redis, None
        if client is not None:
            await client.aclose()

    async def _client(self) -> Any:
        if self._redis is None:
            await self.connect()
        return self._redis

    async def get(self, owner_id: str) -> Optional[str]:
        client = await self._client()
        return await client.get(f"{self.key_prefix}:{owner_id}")

    async def set(self, owner_id: str, workflow_id: str) -> None:
        client = await self._client()
        await client.set(f"{self.key_prefix}:{owner_id}", workflow_id, ex=self.ttl_seconds)

    async def clear(self, owner_id: str) -> None:
        client = await self._client()
        await client.delete(f"{self.key_prefix}:{owner_id}")
