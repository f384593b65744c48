"""Overdue opname sweep.

Moves schedules whose date has passed to SUBMITTED with zero counts so an
admin can review them. Safe to run from cron: a swept task is no longer
SCHEDULED and is not touched again.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from opnamedb.database import WriteSessionLocal, transaction
from opnamedb.apps.opname import services as opname_services

logger = logging.getLogger(__name__)


def run(today: Optional[date] = None) -> int:
    db = WriteSessionLocal()
    try:
        with transaction(db):
            swept = opname_services.sweep_overdue_schedules(db, today=today)
        return swept
    finally:
        db.close()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    swept = run()
    logger.info("Opname sweep completed", extra={"swept": swept})
    print("Opname sweep completed:", swept)


if __name__ == "__main__":
    main()
