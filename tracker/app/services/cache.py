"""
Process-wide in-memory TTL cache.

Used for the Twitch app token and the live-status response. Entries
expire on read; `clear()` is the reset hook for tests.
"""

import time
from typing import Any, Dict, Optional


class TTLCache:

    def __init__(self):
        self._store: Dict[str, dict] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._store.get(key)
        if not entry:
            return None

        if time.monotonic() > entry["expires_at"]:
            del self._store[key]
            return None

        return entry["data"]

    def set(self, key: str, data: Any, ttl_seconds: float = 300) -> None:
        self._store[key] = {
            "data": data,
            "expires_at": time.monotonic() + ttl_seconds,
        }

    def clear(self) -> None:
        self._store.clear()
