from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from opnamedb.apps.audit import services as audit_services
from opnamedb.errors import Conflict

from .registry import WORKFLOWS


class TransitionError(Conflict):
    """A workflow event was refused. `code` names the kind, `reasons` lists field failures."""

    def __init__(self, code: str, detail: List[Dict[str, str]]) -> None:
        message = "; ".join(f"{item['field']}: {item['reason']}" for item in detail) or "Transition not allowed."
        super().__init__(message, transition=code, reasons=detail)
        self.code = code
        self.reasons = detail


def _state(value: Any) -> Optional[str]:
    return getattr(value, "value", value)


def apply_transition(
    db: Session,
    *,
    actor_user_id: Optional[str],
    entity_type: str,
    entity_id: str,
    event: str,
    from_state: Any,
    to_state: Any,
    before_obj: Any,
    after_obj: Any,
    critical: bool = True,
) -> None:
    """
    Check an event against the registry and its guards, then record it.

    Raises TransitionError without touching anything when the event is not
    allowed from `from_state` to `to_state` or a guard reports a failure.
    """
    from_state = _state(from_state)
    to_state = _state(to_state)

    workflow = WORKFLOWS.get(entity_type)
    if not workflow:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "entity_type", "reason": f"No workflow registered for {entity_type}"}],
        )

    rule = workflow.get("events", {}).get(event)
    if rule is None:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "event", "reason": f"Unknown event {event}"}],
        )

    if from_state not in rule["from"] or to_state not in rule["to"]:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "status", "reason": f"Cannot {event} from {from_state} to {to_state}"}],
        )

    failures: List[Dict[str, str]] = []
    for guard in rule.get("guards", []):
        failures.extend(
            guard(
                db,
                before_obj=before_obj,
                after_obj=after_obj,
                from_state=from_state,
                to_state=to_state,
            )
        )

    if failures:
        raise TransitionError(code="missing_requirements", detail=failures)

    before_payload: Dict[str, Any] = {"status": from_state}
    after_payload: Dict[str, Any] = {"status": to_state}
    if isinstance(before_obj, dict):
        before_payload.update(before_obj)
    if isinstance(after_obj, dict):
        after_payload.update(after_obj)

    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=event,
        before=jsonable_encoder(before_payload),
        after=jsonable_encoder(after_payload),
        metadata={"workflow": entity_type},
        critical=critical,
    )
