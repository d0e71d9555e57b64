"""
Key-value store backends.

The analytics code only needs a handful of primitives: hashes, sets, atomic
hash-field increments and plain keys with an optional time-to-live. Two
backends implement them:

- RestKeyValueStore talks to an Upstash-compatible REST endpoint over httpx.
- MemoryStore keeps everything in the current process (local development,
  tests).
"""

import time
from abc import ABC, abstractmethod
from typing import Any

import httpx


class StoreError(Exception):
    """Raised when a store command fails."""
    pass


class KeyValueStore(ABC):
    """Async key-value store interface. Every method may raise StoreError."""

    @abstractmethod
    async def hset(self, key: str, mapping: dict[str, str]) -> int:
        ...

    @abstractmethod
    async def hget(self, key: str, field: str) -> Any:
        ...

    @abstractmethod
    async def hgetall(self, key: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        ...

    @abstractmethod
    async def sadd(self, key: str, *members: str) -> int:
        ...

    @abstractmethod
    async def smembers(self, key: str) -> list[str]:
        ...

    @abstractmethod
    async def scard(self, key: str) -> int:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        ...

    @abstractmethod
    async def get(self, key: str) -> Any:
        ...

    @abstractmethod
    async def delete(self, key: str) -> int:
        ...

    @abstractmethod
    async def ping(self) -> bool:
        ...


class RestKeyValueStore(KeyValueStore):
    """Client for an Upstash-compatible Redis REST API."""

    def __init__(
        self,
        url: str,
        token: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._client = client

    async def _command(self, *args: Any) -> Any:
        """Execute a single Redis command and return its ``result``."""
        body = [str(arg) for arg in args]
        try:
            if self._client is not None:
                response = await self._post(self._client, body)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._post(client, body)
        except httpx.HTTPError as e:
            raise StoreError(f"{args[0]} failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            raise StoreError(
                f"{args[0]} failed: HTTP {response.status_code}, non-JSON body"
            ) from None

        if not isinstance(data, dict):
            raise StoreError(f"{args[0]} failed: unexpected reply {data!r}")
        if data.get("error") or response.is_error:
            raise StoreError(
                f"{args[0]} failed: HTTP {response.status_code}: {data.get('error')}"
            )
        return data.get("result")

    async def _post(self, client: httpx.AsyncClient, body: list[str]) -> httpx.Response:
        return await client.post(
            self.url,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Content-Type": "application/json",
            },
            json=body,
        )

    async def hset(self, key: str, mapping: dict[str, str]) -> int:
        args = ["HSET", key]
        for field, value in mapping.items():
            args.extend([field, value])
        return int(await self._command(*args) or 0)

    async def hget(self, key: str, field: str) -> Any:
        return await self._command("HGET", key, field)

    async def hgetall(self, key: str) -> dict[str, Any]:
        result = await self._command("HGETALL", key)
        # Upstash answers with a flat [field, value, field, value, ...] list
        if isinstance(result, list):
            return {result[i]: result[i + 1] for i in range(0, len(result) - 1, 2)}
        return result or {}

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        return int(await self._command("HINCRBY", key, field, amount) or 0)

    async def sadd(self, key: str, *members: str) -> int:
        return int(await self._command("SADD", key, *members) or 0)

    async def smembers(self, key: str) -> list[str]:
        return await self._command("SMEMBERS", key) or []

    async def scard(self, key: str) -> int:
        return int(await self._command("SCARD", key) or 0)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        if ex is not None:
            await self._command("SET", key, value, "EX", ex)
        else:
            await self._command("SET", key, value)

    async def get(self, key: str) -> Any:
        return await self._command("GET", key)

    async def delete(self, key: str) -> int:
        return int(await self._command("DEL", key) or 0)

    async def ping(self) -> bool:
        return await self._command("PING") == "PONG"


class MemoryStore(KeyValueStore):
    """In-process store with the same semantics as the REST backend."""

    def __init__(self):
        self._hashes: dict[str, dict[str, str]] = {}
        self._sets: dict[str, set[str]] = {}
        self._values: dict[str, tuple[str, float | None]] = {}
        self._now = time.monotonic

    async def hset(self, key: str, mapping: dict[str, str]) -> int:
        bucket = self._hashes.setdefault(key, {})
        added = len([field for field in mapping if field not in bucket])
        bucket.update({field: str(value) for field, value in mapping.items()})
        return added

    async def hget(self, key: str, field: str) -> Any:
        return self._hashes.get(key, {}).get(field)

    async def hgetall(self, key: str) -> dict[str, Any]:
        return dict(self._hashes.get(key, {}))

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        bucket = self._hashes.setdefault(key, {})
        try:
            current = int(bucket.get(field, 0))
        except ValueError:
            raise StoreError("ERR hash value is not an integer") from None
        bucket[field] = str(current + amount)
        return current + amount

    async def sadd(self, key: str, *members: str) -> int:
        bucket = self._sets.setdefault(key, set())
        before = len(bucket)
        bucket.update(members)
        return len(bucket) - before

    async def smembers(self, key: str) -> list[str]:
        return sorted(self._sets.get(key, set()))

    async def scard(self, key: str) -> int:
        return len(self._sets.get(key, set()))

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        expires_at = self._now() + ex if ex is not None else None
        self._values[key] = (str(value), expires_at)

    async def get(self, key: str) -> Any:
        entry = self._values.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._now() >= expires_at:
            del self._values[key]
            return None
        return value

    async def delete(self, key: str) -> int:
        removed = 0
        for bucket in (self._hashes, self._sets, self._values):
            if bucket.pop(key, None) is not None:
                removed = 1
        return removed

    async def ping(self) -> bool:
        return True
