from __future__ import annotations

import argparse
import logging

from sqlalchemy.orm import Session

from casebook.core.db import SessionLocal
from casebook.core.time import utcnow
from casebook.models.deadlines import Deadline
from casebook.models.enums import DeadlineStatusEnum
from casebook.services.deadline_cache import invalidate_deadline_cache
from casebook.tenancy.jobs import run_for_each_tenant


logger = logging.getLogger(__name__)


def expire_overdue_deadlines(db: Session, tenant_id: str) -> int:
    """
    Mark the pending deadlines of the ambient tenant whose date has passed as
    expired. The bulk UPDATE is tenant-filtered by the session hooks.
    """
    updated = (
        db.query(Deadline)
        .filter(
            Deadline.status == DeadlineStatusEnum.PENDING.value,
            Deadline.deadline_date < utcnow(),
        )
        .update({Deadline.status: DeadlineStatusEnum.EXPIRED.value}, synchronize_session=False)
    )
    db.commit()
    if updated:
        invalidate_deadline_cache(tenant_id)
    logger.info("deadlines.expired", extra={"tenant_id": tenant_id, "expired": updated})
    return int(updated or 0)


def expire_all_tenants(db: Session) -> int:
    results = run_for_each_tenant(db, expire_overdue_deadlines)
    return sum(results.values())


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Expire overdue pending deadlines.")
    parser.add_argument("--tenant-id", default=None, help="Run for a single tenant.")
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    with SessionLocal() as db:
        if args.tenant_id:
            run_for_each_tenant(db, expire_overdue_deadlines, tenant_ids=[args.tenant_id])
        else:
            expire_all_tenants(db)


if __name__ == "__main__":
    main()
