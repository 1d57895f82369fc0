from __future__ import annotations

import json
import logging
import os
import time
from abc import ABC, abstractmethod
from hashlib import sha1
from typing import Any, Callable, TypeVar

from fastapi.encoders import jsonable_encoder

from casebook.core.config import settings
from casebook.core.metrics import (
    record_cache_error,
    record_cache_hit,
    record_cache_miss,
    record_cache_set,
)
from casebook.tenancy.context import require_tenant_id


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Raw string stores behind the tenant-keyed cache. Keys arrive fully built
# (namespace, tenant, family); backends never interpret them.


class CacheBackend(ABC):
    backend_name = "abstract"

    @abstractmethod
    def get(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: str, ttl: int | None = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete_prefix(self, prefix: str) -> int:
        raise NotImplementedError

    def clear(self) -> None:
        self.delete_prefix(f"{settings.CACHE_NAMESPACE}:")


class InMemoryCache(CacheBackend):
    """Process-local store; entries carry an optional monotonic deadline."""

    backend_name = "memory"

    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, float | None]] = {}

    def get(self, key: str) -> str | None:
        value, deadline = self._entries.get(key, (None, None))
        if value is not None and deadline is not None and time.monotonic() > deadline:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: str, ttl: int | None = None) -> None:
        deadline = time.monotonic() + ttl if ttl and ttl > 0 else None
        self._entries[key] = (value, deadline)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> list[str]:
        return list(self._entries)


class NullCache(CacheBackend):
    backend_name = "none"

    def get(self, key: str) -> str | None:
        return None

    def set(self, key: str, value: str, ttl: int | None = None) -> None:
        pass

    def delete(self, key: str) -> None:
        pass

    def delete_prefix(self, prefix: str) -> int:
        return 0


class RedisCache(CacheBackend):
    backend_name = "redis"
    scan_batch_size = 500

    def __init__(self, url: str) -> None:
        import redis

        self._client = redis.Redis.from_url(url, decode_responses=True)

    def get(self, key: str) -> str | None:
        return self._client.get(key)

    def set(self, key: str, value: str, ttl: int | None = None) -> None:
        self._client.set(key, value, ex=ttl if ttl and ttl > 0 else None)

    def delete(self, key: str) -> None:
        self._client.delete(key)

    def delete_prefix(self, prefix: str) -> int:
        removed = 0
        batch: list[str] = []
        for key in self._client.scan_iter(match=f"{prefix}*", count=self.scan_batch_size):
            batch.append(key)
            if len(batch) >= self.scan_batch_size:
                removed += self._client.delete(*batch)
                batch = []
        if batch:
            removed += self._client.delete(*batch)
        return removed


_DISABLED_NAMES = frozenset({"none", "disabled", "off"})

_CACHE_BACKEND: CacheBackend | None = None
_CACHE_SERVICE: "CacheService" | None = None


def _resolve_backend_name() -> str:
    # Test runs get a disabled cache unless a test asks for one explicitly.
    env_override = os.getenv("CACHE_BACKEND")
    if env_override is None and os.getenv("PYTEST_CURRENT_TEST"):
        return "none"
    return (env_override or settings.CACHE_BACKEND or "memory").lower()


def _build_backend(name: str) -> CacheBackend:
    if name in _DISABLED_NAMES:
        return NullCache()
    if name != "redis":
        return InMemoryCache()
    if not settings.REDIS_URL:
        logger.warning("cache.redis_url_missing", extra={"fallback": "memory"})
        return InMemoryCache()
    try:
        return RedisCache(settings.REDIS_URL)
    except Exception:
        logger.warning("cache.redis_unavailable", exc_info=True, extra={"fallback": "memory"})
        return InMemoryCache()


def _get_backend() -> CacheBackend:
    global _CACHE_BACKEND
    if _CACHE_BACKEND is None:
        _CACHE_BACKEND = _build_backend(_resolve_backend_name())
        logger.info("cache.backend_selected", extra={"backend": _CACHE_BACKEND.backend_name})
    return _CACHE_BACKEND


def _encode(value: Any) -> str | None:
    try:
        return json.dumps(jsonable_encoder(value), separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        logger.warning("cache.serialize_failed", exc_info=True)
        return None


_UNDECODABLE = object()


def _decode(payload: str) -> Any:
    try:
        return json.loads(payload)
    except ValueError:
        return _UNDECODABLE


class CacheService:
    """
    JSON facade over the active backend that records hit/miss/set metrics
    per cache name.

    The cache fails open: a backend error is logged and counted, a failed
    read behaves as a miss, and a failed write or delete is dropped.
    """

    def __init__(
        self,
        *,
        backend: CacheBackend | None = None,
        default_ttl: int | None = None,
    ) -> None:
        self._backend = backend
        if default_ttl is None:
            default_ttl = settings.CACHE_DEFAULT_TTL_SECONDS
        self._default_ttl = default_ttl

    @property
    def backend(self) -> CacheBackend:
        return self._backend or _get_backend()

    def _guarded(
        self,
        operation: str,
        key: str,
        cache_name: str,
        call: Callable[[], T],
        fallback: T,
    ) -> T:
        try:
            return call()
        except Exception:
            record_cache_error(cache_name, operation)
            logger.warning(
                "cache.backend_error",
                exc_info=True,
                extra={"operation": operation, "cache_key": key, "cache": cache_name},
            )
            return fallback

    def get(self, key: str, *, cache_name: str = "default") -> Any | None:
        payload = self._guarded("get", key, cache_name, lambda: self.backend.get(key), None)
        value = _UNDECODABLE if payload is None else _decode(payload)
        if value is _UNDECODABLE:
            if payload is not None:
                logger.warning(
                    "cache.undecodable_payload", extra={"cache_key": key, "cache": cache_name}
                )
                self.delete(key, cache_name=cache_name)
            record_cache_miss(cache_name)
            return None
        record_cache_hit(cache_name)
        return value

    def set(
        self,
        key: str,
        value: Any,
        *,
        ttl: int | None = None,
        cache_name: str = "default",
    ) -> None:
        payload = _encode(value)
        if payload is None:
            return
        expires_in = self._default_ttl if ttl is None else ttl
        stored = self._guarded(
            "set",
            key,
            cache_name,
            lambda: self.backend.set(key, payload, ttl=expires_in) or True,
            False,
        )
        if stored:
            record_cache_set(cache_name, len(payload))

    def delete(self, key: str, *, cache_name: str = "default") -> None:
        self._guarded("delete", key, cache_name, lambda: self.backend.delete(key), None)

    def delete_prefix(self, prefix: str, *, cache_name: str = "default") -> int:
        return self._guarded(
            "delete_prefix", prefix, cache_name, lambda: self.backend.delete_prefix(prefix), 0
        )

    def clear(self) -> None:
        self._guarded("clear", "*", "default", lambda: self.backend.clear(), None)


def get_cache_service() -> CacheService:
    global _CACHE_SERVICE
    if _CACHE_SERVICE is None:
        _CACHE_SERVICE = CacheService()
    return _CACHE_SERVICE


def set_cache_backend(backend: CacheBackend | None) -> None:
    """Pin the process-wide backend (tests, workers with a prebuilt client)."""
    global _CACHE_BACKEND, _CACHE_SERVICE
    _CACHE_BACKEND = backend
    _CACHE_SERVICE = None


def reset_cache_backend() -> None:
    set_cache_backend(None)


def cache_get(key: str, *, cache_name: str = "default") -> Any | None:
    return get_cache_service().get(key, cache_name=cache_name)


def cache_set(key: str, value: Any, *, ttl: int | None = None, cache_name: str = "default") -> None:
    get_cache_service().set(key, value, ttl=ttl, cache_name=cache_name)


def cache_delete(key: str) -> None:
    get_cache_service().delete(key)


def cache_delete_prefix(prefix: str) -> int:
    return get_cache_service().delete_prefix(prefix)


def filters_hash(filters: dict[str, Any]) -> str:
    canonical = json.dumps(
        jsonable_encoder(filters), sort_keys=True, separators=(",", ":"), default=str
    )
    return sha1(canonical.encode("utf-8")).hexdigest()


def tenant_cache_prefix(tenant_id: str) -> str:
    return f"{settings.CACHE_NAMESPACE}:tenant:{tenant_id}:"


def build_cache_key(
    prefix: str,
    *,
    tenant_id: str,
    filters: dict[str, Any] | None = None,
) -> str:
    if not tenant_id:
        raise ValueError("Cache keys for tenant data require a tenant_id")
    suffix = filters_hash(filters) if filters else "v1"
    return f"{tenant_cache_prefix(tenant_id)}{prefix}:{suffix}"


def invalidate_tenant_cache(tenant_id: str, *, prefix: str | None = None) -> int:
    """
    Invalidate the cache entries of one tenant.

    With `prefix`, only that family of keys goes (e.g. "deadlines"); other
    tenants' entries are never touched.
    """
    target = tenant_cache_prefix(tenant_id)
    if prefix:
        target = f"{target}{prefix}:"
    removed = cache_delete_prefix(target)
    logger.debug(
        "cache.tenant_invalidated",
        extra={"tenant_id": tenant_id, "prefix": prefix, "removed": removed},
    )
    return removed


def cached_for_tenant(
    prefix: str,
    loader: Callable[[], Any],
    *,
    filters: dict[str, Any] | None = None,
    ttl: int | None = None,
    cache_name: str | None = None,
) -> Any:
    """
    Cache-aside for the ambient tenant: return the cached value for
    (tenant, prefix, filters) or call `loader` and store its result.
    """
    tenant_id = require_tenant_id()
    key = build_cache_key(prefix, tenant_id=tenant_id, filters=filters)
    name = cache_name or prefix
    cached = cache_get(key, cache_name=name)
    if cached is not None:
        return cached
    value = jsonable_encoder(loader())
    cache_set(key, value, ttl=ttl, cache_name=name)
    return value
