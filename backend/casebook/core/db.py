"""
Database engine, session factory and FastAPI session dependency.

Importing this module also registers the tenant-scoping session hooks, so every
Session created anywhere in the process is covered by them.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from casebook.core.config import settings

Base = declarative_base()


def _engine_kwargs(url: str) -> dict:
    kwargs = {"echo": settings.DB_ECHO, "future": True, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    return kwargs


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))


class TenantSession(Session):
    """
    Session whose get() respects the ambient tenant.

    Session.get() answers from the identity map without emitting SQL, so the
    do_orm_execute hook never sees it. Tenant-owned rows are checked here
    instead: no context raises MissingTenantContext, and a row owned by
    another tenant reads as missing.
    """

    def get(self, entity, ident, **kwargs):
        return tenant_hooks.tenant_checked_get(self, super().get, entity, ident, **kwargs)


SessionLocal = sessionmaker(
    bind=engine, class_=TenantSession, autoflush=False, autocommit=False, future=True
)


def get_db() -> Generator[Session, None, None]:
    """Dependency for FastAPI endpoints."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Context manager for jobs and scripts.

    Commits on success, rolls back on exception.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# Registers the Session-level listeners.
import casebook.tenancy.hooks as tenant_hooks  # noqa: E402
