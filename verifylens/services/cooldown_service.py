"""
Per-endpoint cooldowns backed by a keyed TTL store (Redis)
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple
import logging
import time

logger = logging.getLogger(__name__)


class CooldownStore(ABC):
    """Keyed store with per-key expiry"""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get value by key. Returns None if not found or expired."""

    @abstractmethod
    async def setex(self, key: str, ttl: int, value: str) -> None:
        """Set value with TTL in seconds."""

    async def close(self) -> None:
        """Release connections held by the store"""


class RedisCooldownStore(CooldownStore):
    """Redis implementation"""

    def __init__(self, redis_url: str):
        import redis.asyncio as redis
        self._client = redis.from_url(redis_url, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def setex(self, key: str, ttl: int, value: str) -> None:
        await self._client.setex(key, ttl, value)

    async def ping(self) -> bool:
        return await self._client.ping()

    async def close(self) -> None:
        await self._client.aclose()


class InMemoryCooldownStore(CooldownStore):
    """
    Process-local store for tests and single-process development.
    Keys expire lazily on read.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._store: Dict[str, Tuple[str, float]] = {}  # key -> (value, expiry)
        self._clock = clock

    async def get(self, key: str) -> Optional[str]:
        entry = self._store.get(key)
        if entry is None:
            return None

        value, expiry = entry
        if self._clock() >= expiry:
            del self._store[key]
            return None
        return value

    async def setex(self, key: str, ttl: int, value: str) -> None:
        self._store[key] = (value, self._clock() + ttl)

    def clear(self) -> None:
        self._store.clear()


@dataclass(frozen=True)
class CooldownDecision:
    allowed: bool
    retry_after: int = 0

    @property
    def message(self) -> Optional[str]:
        if self.allowed:
            return None
        return f"Rate limit exceeded. Retry after {self.retry_after} seconds."


class CooldownTracker:
    """
    Limits how often an account may call an endpoint

    The cooldown is only committed after a billed call, so cache hits and
    failed verifications never consume the window.
    """

    def __init__(self, store: CooldownStore, clock: Callable[[], float] = time.time):
        self.store = store
        self.clock = clock

    @staticmethod
    def key(account_id: str, endpoint: str) -> str:
        return f"cooldown:{account_id}:{endpoint}"

    def _now(self) -> int:
        return int(self.clock())

    async def check(self, account_id: str, endpoint: str, window_seconds: int) -> CooldownDecision:
        """
        Check whether the account may call the endpoint now

        Args:
            account_id: Account ID
            endpoint: Endpoint name
            window_seconds: Cooldown window

        Returns:
            CooldownDecision; allowed when the store is unavailable
        """
        try:
            last_request = await self.store.get(self.key(account_id, endpoint))
            if last_request is None:
                return CooldownDecision(allowed=True)

            elapsed = self._now() - int(last_request)
            if elapsed < window_seconds:
                return CooldownDecision(allowed=False, retry_after=max(1, window_seconds - elapsed))

            return CooldownDecision(allowed=True)

        except Exception as e:
            # Fail open if the store is down
            logger.warning(f"Cooldown check failed for {account_id}/{endpoint}: {e}")
            return CooldownDecision(allowed=True)

    async def commit(self, account_id: str, endpoint: str, window_seconds: int) -> None:
        """
        Start the cooldown window after an accepted, billed call

        Args:
            account_id: Account ID
            endpoint: Endpoint name
            window_seconds: Cooldown window (also the key TTL)
        """
        try:
            await self.store.setex(
                self.key(account_id, endpoint), window_seconds, str(self._now())
            )
        except Exception as e:
            logger.error(f"Failed to set cooldown for {account_id}/{endpoint}: {e}")

    async def remaining(self, account_id: str, endpoint: str, window_seconds: int) -> int:
        """Seconds until the account may call the endpoint again (0 if eligible)"""
        try:
            last_request = await self.store.get(self.key(account_id, endpoint))
            if last_request is None:
                return 0
            return max(0, window_seconds - (self._now() - int(last_request)))
        except Exception as e:
            logger.warning(f"Cooldown lookup failed for {account_id}/{endpoint}: {e}")
            return 0
