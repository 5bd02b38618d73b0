from typing import Dict, Any, Optional
import asyncio
from datetime import datetime, timedelta, timezone


class IdempotencyStore:
    """In-memory record of already-applied requests with TTL support"""

    def __init__(self, ttl: int = 3600):
        self.ttl = ttl
        self.cache: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def make_key(action: str, idempotency_key: str) -> str:
        return f"{action}:{idempotency_key}"

    async def set(self, key: str, value: Dict[str, Any], ttl: Optional[int] = None) -> None:
        """Remember the result of an applied request"""

        async with self._lock:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl or self.ttl)

            self.cache[key] = {
                "value": value,
                "expires_at": expires_at
            }

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Get a remembered result if not expired"""

        async with self._lock:
            if key not in self.cache:
                return None

            entry = self.cache[key]

            # Check if expired
            if datetime.now(timezone.utc) > entry["expires_at"]:
                del self.cache[key]
                return None

            return entry["value"]

    async def clear_expired(self) -> int:
        """Clear expired entries and return count"""

        async with self._lock:
            now = datetime.now(timezone.utc)
            expired_keys = [
                key for key, entry in self.cache.items()
                if now > entry["expires_at"]
            ]

            for key in expired_keys:
                del self.cache[key]

            return len(expired_keys)

    async def sweep(self, interval: int = 60):
        """Periodically drop expired entries"""
        while True:
            await asyncio.sleep(interval)
            await self.clear_expired()
