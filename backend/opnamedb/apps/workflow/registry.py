from __future__ import annotations

from .guards import (
    guard_counts_recorded,
    guard_edit_pending,
    guard_no_pending_edit,
    guard_schedule_elapsed,
    guard_schedule_fields,
    guard_stock_write_back,
)

# Pseudo-state for rows that do not exist yet.
NEW = "new"

WORKFLOWS = {
    "opname_task": {
        "events": {
            "schedule": {
                "from": {NEW},
                "to": {"scheduled"},
                "guards": [guard_schedule_fields],
            },
            "submit": {
                "from": {"scheduled"},
                "to": {"submitted"},
                "guards": [guard_counts_recorded],
            },
            "request_edit": {
                "from": {"submitted"},
                "to": {"submitted"},
                "guards": [guard_no_pending_edit],
            },
            "approve_edit": {
                "from": {"submitted"},
                "to": {"scheduled"},
                "guards": [guard_edit_pending],
            },
            "reject_edit": {
                "from": {"submitted"},
                "to": {"submitted"},
                "guards": [guard_edit_pending],
            },
            "adjust": {
                "from": {"scheduled", "submitted"},
                "to": {"adjusted", "submitted", "scheduled"},
                "guards": [guard_stock_write_back],
            },
            "direct_count": {
                "from": {NEW, "pending"},
                "to": {"pending"},
                "guards": [guard_counts_recorded],
            },
            "confirm_direct": {
                "from": {NEW, "pending"},
                "to": {"adjusted"},
                "guards": [guard_counts_recorded],
            },
            "expire": {
                "from": {"scheduled"},
                "to": {"submitted"},
                "guards": [guard_schedule_elapsed],
            },
        }
    },
}
