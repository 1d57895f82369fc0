"""
Named, composable query transformations.

A FilterScope wraps a function Query -> Query. Scopes only add clauses
(WHERE, JOIN, GROUP BY, ORDER BY, extra columns), so applying them in any
order yields the same rows as long as they touch different clause types.

Example:
    from casebook.scopes import clients

    query = compose(clients.active(), clients.search("ada"))(scoped_query(db, Client))
"""

from dataclasses import dataclass
from typing import Callable, Iterable

from sqlalchemy.orm import Query


@dataclass(frozen=True)
class FilterScope:
    name: str
    apply: Callable[[Query], Query]

    def __call__(self, query: Query) -> Query:
        return self.apply(query)


def compose(*scopes: FilterScope) -> FilterScope:
    """Fold several scopes into one that applies them left to right."""

    def _apply(query: Query) -> Query:
        for scope in scopes:
            query = scope(query)
        return query

    return FilterScope("+".join(scope.name for scope in scopes) or "identity", _apply)


def named(name: str):
    """Decorator turning a `query -> query` function into a FilterScope."""

    def decorator(func: Callable[[Query], Query]) -> FilterScope:
        return FilterScope(name, func)

    return decorator


def identity() -> FilterScope:
    return FilterScope("identity", lambda query: query)


def scope_names(scopes: Iterable[FilterScope]) -> list[str]:
    return [scope.name for scope in scopes]
