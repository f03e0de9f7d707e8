from __future__ import annotations

import re
from typing import Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError


def _escape_glob(text: str) -> str:
    return re.sub(r"([*?\[\]\\])", r"\\\1", text)


class StorageError(Exception):
    """Raised by storage backends when a read or write cannot be completed."""


class StorageCapacityError(StorageError):
    """Raised when a write is refused because the backend is full."""


class StorageBackend(Protocol):
    """Key-value capability the streaming state store persists through."""

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def keys(self, prefix: str) -> list[str]:
        ...

    async def close(self) -> None:
        ...


class InMemoryStorageBackend:
    """Process-local backend; ``max_entries`` emulates a storage quota."""

    def __init__(self, max_entries: int | None = None) -> None:
        self._values: dict[str, str] = {}
        self._max_entries = max_entries

    async def get(self, key: str) -> str | None:
        return self._values.get(key)

    async def set(self, key: str, value: str) -> None:
        full = self._max_entries is not None and len(self._values) >= self._max_entries
        if full and key not in self._values:
            raise StorageCapacityError(f"storage quota of {self._max_entries} entries exceeded")
        self._values[key] = value

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)

    async def keys(self, prefix: str) -> list[str]:
        return [key for key in self._values if key.startswith(prefix)]

    async def close(self) -> None:
        return None


class RedisStorageBackend:
    """Redis-backed key-value storage for streaming state entries."""

    def __init__(
        self,
        redis_url: str,
        ttl_seconds: int | None = None,
        redis_client: Redis | None = None,
    ) -> None:
        self._redis = redis_client if redis_client is not None else Redis.from_url(redis_url, decode_responses=True)
        self._ttl_seconds = ttl_seconds

    async def get(self, key: str) -> str | None:
        try:
            value = await self._redis.get(key)
        except RedisError as exc:
            raise StorageError(f"redis read failed for {key}") from exc
        return str(value) if value is not None else None

    async def set(self, key: str, value: str) -> None:
        try:
            await self._redis.set(key, value, ex=self._ttl_seconds)
        except RedisError as exc:
            if "OOM" in str(exc):
                raise StorageCapacityError(f"redis is out of memory writing {key}") from exc
            raise StorageError(f"redis write failed for {key}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as exc:
            raise StorageError(f"redis delete failed for {key}") from exc

    async def keys(self, prefix: str) -> list[str]:
        try:
            return [str(key) async for key in self._redis.scan_iter(match=f"{_escape_glob(prefix)}*")]
        except RedisError as exc:
            raise StorageError(f"redis scan failed for {prefix}") from exc

    async def close(self) -> None:
        await self._redis.aclose()
