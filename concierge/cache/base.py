"""Base interface for the active-workflow-per-owner cache."""

from __future__ import annotations

import abc
from typing import Optional


class ActiveWorkflowCache(metaclass=abc.ABCMeta):
    """Volatile index from owner id to the id of their active workflow.

    Entries are hints only: the engine always confirms them against the
    repository and rebuilds them from it when missing or stale.
    """

    def __init__(self, ttl_seconds: Optional[int] = 900) -> None:
        self.ttl_seconds = ttl_seconds

    async def connect(self) -> None:
        """Open connection to the backing store (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to the backing store (no-op by default)."""
        pass

    @abc.abstractmethod
    async def get(self, owner_id: str) -> Optional[str]:
        """Return the cached workflow id for ``owner_id`` if present."""
        raise NotImplementedError

    @abc.abstractmethod
    async def set(self, owner_id: str, workflow_id: str) -> None:
        """Remember ``workflow_id`` as the active workflow of ``owner_id``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def clear(self, owner_id: str) -> None:
        """Forget the cached entry for ``owner_id``."""
        raise NotImplementedError
