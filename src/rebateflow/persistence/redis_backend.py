"""Redis cache backend implementing ICacheBackend for program definitions."""

from __future__ import annotations

import redis

from rebateflow.core.exceptions import CacheError
from rebateflow.core.protocols import ICacheBackend
from rebateflow.models.program import Program


class RedisCacheBackend:
    """ICacheBackend backed by Redis. Program stores cache validated JSON here."""

    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0) -> None:
        self._host = host
        self._port = port
        self._db = db
        self._client = redis.Redis(
            host=host, port=port, db=db, decode_responses=True,
        )

    def get(self, key: str) -> str | None:
        try:
            return self._client.get(key)
        except Exception as exc:
            raise CacheError(f"Redis GET failed for key={key!r}: {exc}") from exc

    def setex(self, key: str, ttl: int, value: str) -> None:
        try:
            self._client.setex(key, ttl, value)
        except Exception as exc:
            raise CacheError(f"Redis SETEX failed for key={key!r}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except Exception as exc:
            raise CacheError(f"Redis DELETE failed for key={key!r}: {exc}") from exc


class ProgramCache:
    """Program definitions cached as validated JSON under ``{prefix}:program:{id_or_code}``.

    Works over any ICacheBackend (Redis in production, dict in tests).
    """

    def __init__(self, backend: ICacheBackend, ttl: int = 300, key_prefix: str = "rebateflow") -> None:
        self._backend = backend
        self._ttl = ttl
        self._key_prefix = key_prefix

    def key(self, id_or_code: str) -> str:
        return f"{self._key_prefix}:program:{id_or_code}"

    def get(self, id_or_code: str) -> Program | None:
        cached = self._backend.get(self.key(id_or_code))
        return Program.model_validate_json(cached) if cached is not None else None

    def put(self, id_or_code: str, document: str) -> None:
        self._backend.setex(self.key(id_or_code), self._ttl, document)

    def invalidate(self, program: Program) -> None:
        self._backend.delete(self.key(program.id))
        self._backend.delete(self.key(program.code))
