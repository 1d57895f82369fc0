"""
Offset pagination with a total that survives joins and aggregates.

The count is taken over the distinct primary keys of the filtered query, so a
one-to-many join or a GROUP BY added by a filter scope can never multiply the
total. Tenant scoping needs no special handling here: the scoped query carries
the tenant predicate and the session hooks add it to both statements anyway.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Iterable

from sqlalchemy import func, inspect as sa_inspect
from sqlalchemy.orm import Query

from casebook.core.config import settings
from casebook.core.metrics import record_count_mismatch
from casebook.tenancy.errors import CountMismatchDefect

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageMeta:
    total: int
    per_page: int
    current_page: int
    last_page: int


@dataclass
class Page:
    data: list[Any] = field(default_factory=list)
    meta: PageMeta = field(default_factory=lambda: PageMeta(0, 1, 1, 1))

    def map(self, transform: Callable[[Any], Any]) -> "Page":
        return Page(data=[transform(item) for item in self.data], meta=self.meta)

    def to_dict(self) -> dict[str, Any]:
        return {"data": list(self.data), "meta": asdict(self.meta)}


def last_page_for(total: int, per_page: int) -> int:
    return max(1, math.ceil(total / per_page))


def normalize_page_args(page: int | None, per_page: int | None) -> tuple[int, int]:
    page = 1 if page is None else page
    per_page = settings.PAGINATION_DEFAULT_PER_PAGE if per_page is None else per_page
    if page < 1:
        raise ValueError("page must be >= 1")
    if per_page < 1:
        raise ValueError("per_page must be >= 1")
    return page, min(per_page, settings.PAGINATION_MAX_PER_PAGE)


def _primary_entity(query: Query):
    descriptions = query.column_descriptions
    if not descriptions or descriptions[0].get("entity") is None:
        raise ValueError("paginate() needs a query whose first column is a mapped entity")
    return descriptions[0]["entity"]


def _primary_key_columns(entity) -> list:
    mapper = sa_inspect(entity)
    return [getattr(entity, mapper.get_property_by_column(column).key) for column in mapper.primary_key]


def apply_scopes(query: Query, scopes: Iterable) -> Query:
    for scope in scopes or ():
        query = scope(query)
    return query


def count_distinct(query: Query) -> int:
    """
    COUNT(*) over the distinct primary keys of `query`.

    ORDER BY, LIMIT and OFFSET are dropped; GROUP BY and HAVING stay so that
    aggregate filters keep their meaning. The source query's execution options
    (skip_tenant_scope among them) carry over.
    """
    entity = _primary_entity(query)
    keys = (
        query.with_entities(*_primary_key_columns(entity))
        .order_by(None)
        .limit(None)
        .offset(None)
        .distinct()
        .subquery()
    )
    count_query = query.session.query(func.count()).select_from(keys)
    options = query.get_execution_options()
    if options:
        count_query = count_query.execution_options(**options)
    return int(count_query.scalar() or 0)


def _row_identity(row: Any, multi_column: bool, key_names: list[str]) -> tuple:
    instance = row[0] if multi_column else row
    return tuple(getattr(instance, name) for name in key_names)


def _check_consistency(rows: list[Any], total: int, offset: int, query: Query) -> None:
    entity = _primary_entity(query)
    multi_column = len(query.column_descriptions) > 1
    key_names = [column.key for column in _primary_key_columns(entity)]
    seen: set[tuple] = set()
    duplicated = False
    for row in rows:
        identity = _row_identity(row, multi_column, key_names)
        if identity in seen:
            duplicated = True
            break
        seen.add(identity)
    entity_name = getattr(entity, "__name__", str(entity))
    if not duplicated:
        # More rows than the total means rows were inserted between the count
        # and the fetch; the next request sees a fresh total.
        if rows and offset + len(rows) > total:
            logger.info(
                "pagination.total_stale",
                extra={"entity": entity_name, "total": total, "offset": offset, "rows": len(rows)},
            )
        return

    record_count_mismatch(entity_name)
    message = (
        f"Paginated {entity_name} query returned {len(rows)} rows at offset {offset} "
        f"for a total of {total}; a filter scope multiplied rows without grouping by "
        "the primary key"
    )
    if settings.PAGINATION_STRICT_COUNT:
        raise CountMismatchDefect(message)
    logger.warning("pagination.count_mismatch", extra={"entity": entity_name, "total": total})


def paginate(
    query: Query,
    *,
    page: int | None = 1,
    per_page: int | None = None,
    scopes: Iterable = (),
) -> Page:
    """
    Apply `scopes`, count the distinct matches and fetch one page.

    Example:
        paginate(scoped_query(db, Client), page=2, per_page=10,
                 scopes=[clients.active(), clients.with_cases_count()])
    """
    page, per_page = normalize_page_args(page, per_page)
    filtered = apply_scopes(query, scopes)

    total = count_distinct(filtered)
    offset = (page - 1) * per_page
    entity = _primary_entity(filtered)
    rows = (
        filtered.order_by(*_primary_key_columns(entity))
        .limit(per_page)
        .offset(offset)
        .all()
    )
    _check_consistency(rows, total, offset, filtered)

    return Page(
        data=rows,
        meta=PageMeta(
            total=total,
            per_page=per_page,
            current_page=page,
            last_page=last_page_for(total, per_page),
        ),
    )
