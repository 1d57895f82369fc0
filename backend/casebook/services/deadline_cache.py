"""
Caches the deadline lists every dashboard polls: upcoming and fatal upcoming
deadlines per tenant and look-ahead window.

Keys live under the tenant prefix, so invalidate_tenant_cache(tenant_id)
drops them too. Every deadline or case write for a tenant calls
invalidate_deadline_cache(tenant_id).
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from casebook.core.cache import CacheService, get_cache_service, tenant_cache_prefix
from casebook.core.config import settings
from casebook.models.deadlines import Deadline
from casebook.scopes import deadlines as deadline_scopes
from casebook.tenancy.context import require_tenant_id
from casebook.tenancy.scoping import scoped_query

logger = logging.getLogger(__name__)

CACHE_PREFIX = "deadlines"
CACHE_NAME = "deadlines"


def upcoming_key(tenant_id: str, days: int) -> str:
    return f"{tenant_cache_prefix(tenant_id)}{CACHE_PREFIX}:upcoming:{days}"


def fatal_upcoming_key(tenant_id: str, days: int) -> str:
    return f"{tenant_cache_prefix(tenant_id)}{CACHE_PREFIX}:fatal:upcoming:{days}"


def serialize_deadline(deadline: Deadline) -> dict[str, Any]:
    return {
        "id": deadline.id,
        "title": deadline.title,
        "deadline_date": deadline.deadline_date.isoformat() if deadline.deadline_date else None,
        "status": deadline.status,
        "is_fatal": bool(deadline.is_fatal),
        "case_id": deadline.case_id,
        "responsible_id": deadline.responsible_id,
        "tenant_id": deadline.tenant_id,
    }


class DeadlineCacheService:
    def __init__(self, cache: CacheService | None = None, *, ttl: int | None = None) -> None:
        self._cache = cache
        self._ttl = settings.DEADLINE_CACHE_TTL_SECONDS if ttl is None else ttl

    @property
    def cache(self) -> CacheService:
        return self._cache or get_cache_service()

    def cache_upcoming(self, tenant_id: str, days: int, deadlines: list[Deadline]) -> None:
        payload = [serialize_deadline(deadline) for deadline in deadlines]
        self.cache.set(upcoming_key(tenant_id, days), payload, ttl=self._ttl, cache_name=CACHE_NAME)

    def get_cached_upcoming(self, tenant_id: str, days: int) -> list[dict[str, Any]] | None:
        return self._read_list(upcoming_key(tenant_id, days))

    def cache_fatal_upcoming(self, tenant_id: str, days: int, deadlines: list[Deadline]) -> None:
        payload = [serialize_deadline(deadline) for deadline in deadlines]
        self.cache.set(
            fatal_upcoming_key(tenant_id, days), payload, ttl=self._ttl, cache_name=CACHE_NAME
        )

    def get_cached_fatal_upcoming(self, tenant_id: str, days: int) -> list[dict[str, Any]] | None:
        return self._read_list(fatal_upcoming_key(tenant_id, days))

    def _read_list(self, key: str) -> list[dict[str, Any]] | None:
        cached = self.cache.get(key, cache_name=CACHE_NAME)
        if cached is None:
            return None
        if not isinstance(cached, list):
            logger.warning("deadline_cache.unexpected_payload", extra={"cache_key": key})
            self.cache.delete(key, cache_name=CACHE_NAME)
            return None
        return cached

    def invalidate_tenant_cache(self, tenant_id: str) -> int:
        return self.cache.delete_prefix(
            f"{tenant_cache_prefix(tenant_id)}{CACHE_PREFIX}:", cache_name=CACHE_NAME
        )

    def invalidate_current_tenant_cache(self) -> int:
        return self.invalidate_tenant_cache(require_tenant_id())

    def upcoming(self, db: Session, days: int = 7, *, fatal_only: bool = False) -> list[dict[str, Any]]:
        """
        Upcoming pending deadlines of the ambient tenant, soonest first,
        served from cache when possible.
        """
        tenant_id = require_tenant_id()
        if fatal_only:
            cached = self.get_cached_fatal_upcoming(tenant_id, days)
        else:
            cached = self.get_cached_upcoming(tenant_id, days)
        if cached is not None:
            return cached

        query = deadline_scopes.upcoming(days)(scoped_query(db, Deadline))
        if fatal_only:
            query = deadline_scopes.fatal()(query)
        deadlines = deadline_scopes.soonest()(query).all()

        if fatal_only:
            self.cache_fatal_upcoming(tenant_id, days, deadlines)
        else:
            self.cache_upcoming(tenant_id, days, deadlines)
        return [serialize_deadline(deadline) for deadline in deadlines]


_SERVICE: DeadlineCacheService | None = None


def get_deadline_cache_service() -> DeadlineCacheService:
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = DeadlineCacheService()
    return _SERVICE


def invalidate_deadline_cache(tenant_id: str) -> int:
    return get_deadline_cache_service().invalidate_tenant_cache(tenant_id)
