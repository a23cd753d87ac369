"""In-process active-workflow cache."""

from __future__ import annotations

import time
from typing import Dict, Optional, Tuple

from .base import ActiveWorkflowCache


class InMemoryActiveWorkflowCache(ActiveWorkflowCache):
    """Dictionary-backed cache with per-entry expiry."""

    def __init__(self, ttl_seconds: Optional[int] = 900) -> None:
        super().__init__(ttl_seconds)
        self._entries: Dict[str, Tuple[str, Optional[float]]] = {}

    async def get(self, owner_id: str) -> Optional[str]:
        entry = self._entries.get(owner_id)
        if entry is None:
            return None
        workflow_id, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._entries[owner_id]
            return None
        return workflow_id

    async def set(self, owner_id: str, workflow_id: str) -> None:
        expires_at = time.monotonic() + self.ttl_seconds if self.ttl_seconds else None
        self._entries[owner_id] = (workflow_id, expires_at)

    async def clear(self, owner_id: str) -> None:
        self._entries.pop(owner_id, None)
