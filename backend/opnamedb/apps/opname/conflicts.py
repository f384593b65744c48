"""
Category-conflict guard.

Only one open stock count may cover a product category at a time. A
category is open while any batch count of one of its products is still
scheduled or submitted; it frees up once every such count is adjusted.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from opnamedb.apps.accounts import models as account_models
from opnamedb.apps.catalog import models as catalog_models
from opnamedb.apps.catalog import services as catalog_services
from opnamedb.errors import InvalidInput

from . import models, schemas

logger = logging.getLogger(__name__)


def _describe(conflicts: List[schemas.CategoryConflict]) -> str:
    parts = []
    for conflict in conflicts:
        dates = ", ".join(d.isoformat() for d in conflict.scheduled_dates)
        scheduled = f" (scheduled: {dates})" if dates else ""
        parts.append(
            f"{conflict.category_name} - assigned to: {', '.join(conflict.users)}{scheduled}, "
            f"{conflict.pending_count} pending items"
        )
    return (
        "Cannot schedule categories that already have an open count. "
        f"Conflicting categories: {'; '.join(parts)}. "
        "Wait until those counts are adjusted or choose different categories."
    )


def check_category_conflict(
    db: Session,
    *,
    categories: Iterable[str],
    scheduled_date: Optional[date],
    assigned_user_id: Optional[str],
) -> schemas.ConflictReport:
    requested = sorted({(c or "").strip() for c in categories or [] if c and c.strip()})
    if not requested:
        raise InvalidInput("At least one category is required.", field="categories")
    if not scheduled_date:
        raise InvalidInput("Scheduled date is required.", field="scheduled_date")
    if not assigned_user_id:
        raise InvalidInput("Assigned user is required.", field="assigned_user_id")

    rows = (
        db.query(
            catalog_models.Product.category_code,
            account_models.User.full_name,
            models.OpnameTask.scheduled_date,
        )
        .select_from(models.OpnameTask)
        .join(catalog_models.Product, models.OpnameTask.product_id == catalog_models.Product.id)
        .join(account_models.User, models.OpnameTask.user_id == account_models.User.id)
        .filter(
            models.OpnameTask.kind == models.OpnameKind.BATCH,
            models.OpnameTask.batch_id.isnot(None),
            models.OpnameTask.status.in_(models.OPEN_STATUSES),
            catalog_models.Product.category_code.in_(requested),
        )
        .all()
    )

    if not rows:
        return schemas.ConflictReport(has_conflict=False, message="No category conflicts found.")

    names = {c.code: c.name for c in catalog_services.get_categories(db, requested)}
    grouped: Dict[str, Dict] = {}
    for category_code, user_name, task_date in rows:
        entry = grouped.setdefault(
            category_code,
            {"users": set(), "pending_count": 0, "scheduled_dates": set()},
        )
        entry["users"].add(user_name or "Unknown user")
        entry["pending_count"] += 1
        if task_date:
            entry["scheduled_dates"].add(task_date)

    conflicts = [
        schemas.CategoryConflict(
            category_code=code,
            category_name=names.get(code, code),
            users=sorted(entry["users"]),
            pending_count=entry["pending_count"],
            scheduled_dates=sorted(entry["scheduled_dates"]),
        )
        for code, entry in sorted(grouped.items())
    ]
    logger.info(
        "Category conflict detected",
        extra={"categories": requested, "conflicting": [c.category_code for c in conflicts]},
    )
    return schemas.ConflictReport(has_conflict=True, conflicts=conflicts, message=_describe(conflicts))
