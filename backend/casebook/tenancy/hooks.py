"""
Session-wide listeners that keep every ORM operation inside the ambient tenant.

- do_orm_execute: adds `tenant_id == <current tenant>` to every ORM SELECT,
  bulk UPDATE and bulk DELETE (joins, subqueries and relationship loads
  included), or refuses to run when no tenant context is active.
- before_flush: stamps tenant_id on new rows, refuses to write rows of
  another tenant and refuses to move a row to a different tenant.
- tenant_checked_get: backs TenantSession.get(), which can answer from the
  identity map without emitting any SQL.

Core statements (a bare Table rather than a mapped class) cannot carry loader
criteria, so any Core SELECT, UPDATE or DELETE against a tenant-owned table is
refused unless it is explicitly bypassed.

All of them are skipped for statements carrying the `skip_tenant_scope`
execution option (see casebook.tenancy.scoping.without_tenant_scope) and for
sessions inside casebook.tenancy.scoping.unscoped_session.
"""

from __future__ import annotations

import logging

from sqlalchemy import event, inspect as sa_inspect
from sqlalchemy.orm import ORMExecuteState, Session, with_loader_criteria
from sqlalchemy.sql import visitors
from sqlalchemy.sql.expression import ColumnClause, TableClause

from casebook.core.metrics import record_missing_tenant_context
from casebook.models.mixins import TenantScopedMixin, is_tenant_scoped
from casebook.tenancy.constants import SKIP_TENANT_SCOPE
from casebook.tenancy.context import get_current_tenant_id
from casebook.tenancy.errors import CrossTenantWrite, MissingTenantContext, UnscopedStatement

logger = logging.getLogger(__name__)


def _all_subclasses(cls):
    for sub in cls.__subclasses__():
        yield sub
        yield from _all_subclasses(sub)


def tenant_scoped_table_names() -> set[str]:
    names = set()
    for cls in _all_subclasses(TenantScopedMixin):
        mapper = sa_inspect(cls, raiseerr=False)
        table = getattr(mapper, "local_table", None)
        if table is not None:
            names.add(table.name)
    return names


def _statement_touches_tenant_tables(statement) -> bool:
    names = tenant_scoped_table_names()
    if not names:
        return False
    for element in visitors.iterate(statement):
        if isinstance(element, TableClause) and element.name in names:
            return True
        if isinstance(element, ColumnClause) and element.table is not None:
            if getattr(element.table, "name", None) in names:
                return True
    return False


def _touches_tenant_scoped(execute_state: ORMExecuteState) -> bool:
    for mapper in execute_state.all_mappers:
        if issubclass(mapper.class_, TenantScopedMixin):
            return True
    # Aggregates such as Query.count() select from a subquery and expose no
    # mapper at the top level.
    return _statement_touches_tenant_tables(execute_state.statement)


def _is_orm_statement(statement) -> bool:
    # Query and select(Model) statements compile through the ORM plugin; a
    # statement built from bare Table objects does not.
    attrs = getattr(statement, "_propagate_attrs", None) or {}
    return attrs.get("compile_state_plugin") == "orm"


def _bypassed(session: Session, execution_options=None) -> bool:
    if execution_options and execution_options.get(SKIP_TENANT_SCOPE, False):
        return True
    return bool(session.info.get(SKIP_TENANT_SCOPE, False))


def _operation_name(execute_state: ORMExecuteState) -> str:
    if execute_state.is_update:
        return "update"
    if execute_state.is_delete:
        return "delete"
    return "read"


@event.listens_for(Session, "do_orm_execute")
def _apply_tenant_criteria(execute_state: ORMExecuteState) -> None:
    if not (execute_state.is_select or execute_state.is_update or execute_state.is_delete):
        return
    # Refreshing attributes of an already-loaded row by primary key.
    if execute_state.is_column_load:
        return
    if _bypassed(execute_state.session, execute_state.execution_options):
        return

    tenant_id = get_current_tenant_id()
    if not _is_orm_statement(execute_state.statement):
        if _statement_touches_tenant_tables(execute_state.statement):
            operation = _operation_name(execute_state)
            if tenant_id is None:
                record_missing_tenant_context(operation)
                raise MissingTenantContext(
                    f"Cannot {operation} tenant-owned rows without tenant context."
                )
            raise UnscopedStatement(
                f"Core {operation} statements on tenant-owned tables are not tenant-filtered. "
                "Query the mapped class or pass skip_tenant_scope explicitly."
            )
        return

    if tenant_id is None:
        if _touches_tenant_scoped(execute_state):
            operation = _operation_name(execute_state)
            record_missing_tenant_context(operation)
            raise MissingTenantContext(
                f"Cannot {operation} tenant-owned rows without tenant context. "
                "Use without_tenant_scope() to explicitly allow cross-tenant queries."
            )
        return

    execute_state.statement = execute_state.statement.options(
        with_loader_criteria(
            TenantScopedMixin,
            lambda cls: cls.tenant_id == tenant_id,
            include_aliases=True,
        )
    )


def _guard_existing_row(instance, tenant_id: str | None, operation: str) -> None:
    model_name = type(instance).__name__
    if tenant_id is None:
        record_missing_tenant_context(operation)
        raise MissingTenantContext(f"Cannot {operation} {model_name} without tenant context")
    if instance.tenant_id is not None and str(instance.tenant_id) != tenant_id:
        logger.warning(
            "tenancy.cross_tenant_write_blocked",
            extra={"model": model_name, "operation": operation, "tenant_id": tenant_id},
        )
        raise CrossTenantWrite(f"{model_name} not found")


def _tenant_id_changed(instance) -> bool:
    history = sa_inspect(instance).attrs.tenant_id.history
    return bool(history.deleted) and history.deleted[0] is not None and history.has_changes()


@event.listens_for(Session, "before_flush")
def _enforce_tenant_on_flush(session: Session, flush_context, instances) -> None:
    tenant_id = get_current_tenant_id()
    bypass = _bypassed(session)

    for instance in session.new:
        if not is_tenant_scoped(instance):
            continue
        if instance.tenant_id:
            if tenant_id is None or str(instance.tenant_id) != tenant_id:
                logger.info(
                    "tenancy.explicit_tenant_write",
                    extra={
                        "model": type(instance).__name__,
                        "target_tenant_id": str(instance.tenant_id),
                        "tenant_id": tenant_id,
                    },
                )
            continue
        if tenant_id is None:
            record_missing_tenant_context("create")
            raise MissingTenantContext("No tenant ID in current context")
        instance.tenant_id = tenant_id

    for instance in session.dirty:
        if not is_tenant_scoped(instance) or not session.is_modified(instance):
            continue
        if _tenant_id_changed(instance):
            raise CrossTenantWrite(f"{type(instance).__name__} not found")
        if not bypass:
            _guard_existing_row(instance, tenant_id, "update")

    if bypass:
        return
    for instance in session.deleted:
        if is_tenant_scoped(instance):
            _guard_existing_row(instance, tenant_id, "delete")


def tenant_checked_get(session: Session, get, entity, ident, **kwargs):
    """
    Run `get(entity, ident, **kwargs)` under the tenant rules.

    Registry models pass straight through, as do bypassed calls. A hit from
    the identity map that belongs to another tenant is reported as missing.
    """
    mapper = sa_inspect(entity, raiseerr=False)
    model = getattr(mapper, "class_", None)
    if model is None or not is_tenant_scoped(model):
        return get(entity, ident, **kwargs)
    if _bypassed(session, kwargs.get("execution_options")):
        return get(entity, ident, **kwargs)

    tenant_id = get_current_tenant_id()
    if tenant_id is None:
        record_missing_tenant_context("read")
        raise MissingTenantContext(f"Cannot load {model.__name__} without tenant context")
    instance = get(entity, ident, **kwargs)
    if instance is None or not instance.belongs_to_tenant(tenant_id):
        return None
    return instance
