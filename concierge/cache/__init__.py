"""Active-workflow cache factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import ConciergeConfig, load_config
from .base import ActiveWorkflowCache
from .inmemory import InMemoryActiveWorkflowCache


def get_cache(
    backend: Optional[str] = None, config: Optional[ConciergeConfig] = None
) -> ActiveWorkflowCache:
    """Factory function to get the configured active-workflow cache."""

    config = config or load_config()
    backend = (
        backend
        or os.getenv("CONCIERGE_CACHE")
        or config.cache.backend
    ).lower()
    ttl = config.cache.ttl_seconds

    if backend == "inmemory":
        return InMemoryActiveWorkflowCache(ttl_seconds=ttl)
    elif backend == "redis":
        from .redis import RedisActiveWorkflowCache

        redis_conf = config.cache.redis
        return RedisActiveWorkflowCache(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
            ttl_seconds=ttl,
        )
    else:
        raise ValueError(f"Unsupported cache backend: {backend}")


__all__ = ["ActiveWorkflowCache", "InMemoryActiveWorkflowCache", "get_cache"]
