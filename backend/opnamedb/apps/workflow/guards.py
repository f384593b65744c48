from __future__ import annotations

from datetime import date
from typing import Any, Dict, List

from sqlalchemy.orm import Session

GuardResult = List[Dict[str, str]]


def _get_value(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def guard_schedule_fields(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    missing = []
    if not _get_value(after_obj, "product_id"):
        missing.append({"field": "product_id", "reason": "product required"})
    if not _get_value(after_obj, "batch_id"):
        missing.append({"field": "batch_id", "reason": "batch required"})
    if not _get_value(after_obj, "user_id"):
        missing.append({"field": "user_id", "reason": "assignee required"})
    if not _get_value(after_obj, "scheduled_date"):
        missing.append({"field": "scheduled_date", "reason": "scheduled date required"})
    return missing


def guard_counts_recorded(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    missing = []
    for field in ("physical_stock", "expired_stock", "damaged_stock"):
        value = _get_value(after_obj, field)
        if value is None:
            missing.append({"field": field, "reason": "count required"})
        elif value < 0:
            missing.append({"field": field, "reason": "count cannot be negative"})
    if not _get_value(after_obj, "opname_date"):
        missing.append({"field": "opname_date", "reason": "count date required"})
    return missing


def guard_no_pending_edit(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    if _get_value(before_obj, "edit_requested"):
        return [{"field": "edit_requested", "reason": "an edit request is already pending"}]
    return []


def guard_edit_pending(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    if not _get_value(before_obj, "edit_requested"):
        return [{"field": "edit_requested", "reason": "no pending edit request"}]
    return []


def guard_stock_write_back(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    if not _get_value(after_obj, "stock_written"):
        return []

    failures = []
    if _get_value(before_obj, "edit_requested") and not _get_value(after_obj, "edit_rejected"):
        failures.append({"field": "edit_requested", "reason": "resolve the pending edit request first"})
    if _get_value(after_obj, "physical_stock") is None:
        failures.append({"field": "physical_stock", "reason": "nothing counted to write back"})
    if not _get_value(before_obj, "batch_id"):
        failures.append({"field": "batch_id", "reason": "only batch counts can be written back"})
    return failures


def guard_schedule_elapsed(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    scheduled = _get_value(before_obj, "scheduled_date")
    today = _get_value(after_obj, "opname_date")
    if isinstance(scheduled, str):
        scheduled = date.fromisoformat(scheduled)
    if isinstance(today, str):
        today = date.fromisoformat(today)
    if not scheduled or not today or scheduled >= today:
        return [{"field": "scheduled_date", "reason": "scheduling window has not passed"}]
    return []
