from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from opnamedb.apps.accounts import models as account_models
from opnamedb.apps.accounts import services as account_services
from opnamedb.apps.audit import services as audit_services
from opnamedb.apps.catalog import models as catalog_models
from opnamedb.apps.catalog import services as catalog_services
from opnamedb.apps.inventory import models as inventory_models
from opnamedb.apps.inventory import services as inventory_services
from opnamedb.apps.inventory.schemas import BatchRead
from opnamedb.apps.workflow import NEW, apply_transition
from opnamedb.errors import Conflict, InvalidInput, NotFound, Unauthorized

from . import conflicts, models, schemas
from .distribution import (
    BatchAllocation,
    BatchStock,
    Distribution,
    ResidualAdjustment,
    distribute_fifo,
    distribute_proportional,
    validate_composition,
)

logger = logging.getLogger(__name__)

ENTITY_TYPE = "opname_task"
DIRECT_PENDING_NOTE = "Direct count pending"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _today() -> date:
    return date.today()


def _snapshot(task: models.OpnameTask) -> dict:
    return {
        "status": task.status,
        "kind": task.kind,
        "user_id": task.user_id,
        "batch_id": task.batch_id,
        "product_id": task.product_id,
        "scheduled_date": task.scheduled_date,
        "opname_date": task.opname_date,
        "system_stock": task.system_stock,
        "physical_stock": task.physical_stock,
        "expired_stock": task.expired_stock,
        "damaged_stock": task.damaged_stock,
        "edit_requested": bool(task.edit_requested),
    }


def _transition(
    db: Session,
    task: models.OpnameTask,
    *,
    event: str,
    to_state: models.OpnameStatus,
    actor_user_id: Optional[str],
    changes: Optional[dict] = None,
    context: Optional[dict] = None,
) -> models.OpnameTask:
    """Validate an event against the workflow, then apply `changes` to the task."""
    changes = changes or {}
    before = _snapshot(task)
    after = {**before, **changes, **(context or {}), "status": to_state}
    apply_transition(
        db,
        actor_user_id=actor_user_id,
        entity_type=ENTITY_TYPE,
        entity_id=str(task.id),
        event=event,
        from_state=task.status,
        to_state=to_state,
        before_obj=before,
        after_obj=after,
    )
    for field, value in changes.items():
        setattr(task, field, value)
    task.status = to_state
    db.flush()
    return task


def _create_task(
    db: Session,
    *,
    event: str,
    status: models.OpnameStatus,
    actor_user_id: Optional[str],
    **fields,
) -> models.OpnameTask:
    task = models.OpnameTask(kind=models.OpnameKind.BATCH, status=status, **fields)
    db.add(task)
    db.flush()
    after = {**_snapshot(task), "status": status}
    apply_transition(
        db,
        actor_user_id=actor_user_id,
        entity_type=ENTITY_TYPE,
        entity_id=str(task.id),
        event=event,
        from_state=NEW,
        to_state=status,
        before_obj={},
        after_obj=after,
    )
    return task


def _residual_note(residual: ResidualAdjustment) -> str:
    sign = "+" if residual.remainder > 0 else ""
    return f"Stock difference: {sign}{residual.remainder} (system total: {residual.total_system_stock})"


def _record_residual(
    db: Session,
    *,
    product: catalog_models.Product,
    user_id: str,
    residual: ResidualAdjustment,
    status: models.OpnameStatus,
    scheduled_date: Optional[date],
    opname_date: date,
    actor_user_id: Optional[str],
    existing: Optional[models.OpnameTask] = None,
    note: Optional[str] = None,
) -> models.OpnameTask:
    values = dict(
        status=status,
        scheduled_date=scheduled_date,
        opname_date=opname_date,
        system_stock=0,
        physical_stock=0,
        expired_stock=0,
        damaged_stock=0,
        residual_quantity=residual.remainder,
        residual_system_total=residual.total_system_stock,
        notes=note or _residual_note(residual),
    )
    if existing is not None:
        for field, value in values.items():
            setattr(existing, field, value)
        task = existing
    else:
        task = models.OpnameTask(
            kind=models.OpnameKind.RESIDUAL,
            batch_id=None,
            product_id=product.id,
            user_id=user_id,
            created_by_user_id=actor_user_id,
            **values,
        )
        db.add(task)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type=ENTITY_TYPE,
        entity_id=str(task.id),
        action="record_residual",
        after={
            "product_code": product.code,
            "status": status.value,
            "residual_quantity": residual.remainder,
            "residual_system_total": residual.total_system_stock,
        },
        critical=True,
    )
    return task


def _count_changes(allocation: BatchAllocation, *, opname_date: date, notes: Optional[str]) -> dict:
    return {
        "physical_stock": allocation.physical_stock,
        "expired_stock": allocation.expired_stock,
        "damaged_stock": allocation.damaged_stock,
        "opname_date": opname_date,
        "notes": notes or "",
    }


def _require_admin(actor: account_models.User) -> None:
    if not actor or actor.role != account_models.AccountRole.ADMIN:
        raise Unauthorized("Only admins may perform this operation.", user_id=getattr(actor, "id", None))


def _lock_task(db: Session, task_id: int) -> models.OpnameTask:
    task = (
        db.query(models.OpnameTask)
        .filter(models.OpnameTask.id == task_id)
        .with_for_update(of=models.OpnameTask)
        .first()
    )
    if not task:
        raise NotFound("Opname task not found.", task_id=task_id)
    return task


def _batch_stock(batch: inventory_models.Batch, system_stock: int) -> BatchStock:
    return BatchStock(
        batch_id=batch.id,
        system_stock=system_stock,
        expiry_date=batch.expiry_date,
        arrival_date=batch.arrival_date,
    )


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


def create_opname_tasks(
    db: Session,
    *,
    actor: account_models.User,
    product_codes: Sequence[str],
    scheduled_date: Optional[date],
    assigned_user_id: Optional[str],
) -> List[models.OpnameTask]:
    """
    Schedule a count: one task per batch of every requested product, each
    holding a snapshot of the batch's stock at scheduling time.

    Refused with Conflict when any of the products' categories already has
    an open count.
    """
    _require_admin(actor)
    codes = [c for c in (product_codes or []) if c and str(c).strip()]
    if not codes:
        raise InvalidInput("At least one product code is required.", field="product_codes")
    if not scheduled_date:
        raise InvalidInput("Scheduled date is required.", field="scheduled_date")
    if not assigned_user_id:
        raise InvalidInput("Assigned user is required.", field="assigned_user_id")

    assignee = account_services.get_user(db, assigned_user_id)
    if not assignee.is_active:
        raise InvalidInput("Assigned user is not active.", assigned_user_id=assigned_user_id)

    products: Dict[str, catalog_models.Product] = {}
    for code in codes:
        product = catalog_services.get_product_by_code(db, code)
        products.setdefault(product.code, product)

    category_codes = [p.category_code for p in products.values()]
    catalog_services.lock_categories(db, category_codes)
    report = conflicts.check_category_conflict(
        db,
        categories=category_codes,
        scheduled_date=scheduled_date,
        assigned_user_id=assigned_user_id,
    )
    if report.has_conflict:
        raise Conflict(report.message, conflicts=[c.model_dump(mode="json") for c in report.conflicts])

    tasks: List[models.OpnameTask] = []
    for product in products.values():
        batches = inventory_services.lock_batches_for_product(db, product_id=product.id)
        if not batches:
            raise NotFound("No batches found for this product.", product_code=product.code)
        for batch in batches:
            tasks.append(
                _create_task(
                    db,
                    event="schedule",
                    status=models.OpnameStatus.SCHEDULED,
                    actor_user_id=actor.id,
                    user_id=assignee.id,
                    created_by_user_id=actor.id,
                    batch_id=batch.id,
                    product_id=product.id,
                    scheduled_date=scheduled_date,
                    system_stock=batch.stock_quantity,
                    expired_stock=0,
                    damaged_stock=0,
                )
            )

    logger.info(
        "Scheduled opname tasks",
        extra={"products": list(products), "assigned_user_id": assignee.id, "count": len(tasks)},
    )
    return tasks


def list_tasks_for_user(
    db: Session,
    *,
    user_id: str,
    status: Optional[models.OpnameStatus] = None,
    include_all_status: bool = False,
) -> List[models.OpnameTask]:
    query = db.query(models.OpnameTask).filter(models.OpnameTask.user_id == user_id)
    if not include_all_status:
        query = query.filter(models.OpnameTask.status == (status or models.OpnameStatus.SCHEDULED))
    return query.order_by(models.OpnameTask.scheduled_date.asc(), models.OpnameTask.id.asc()).all()


# ---------------------------------------------------------------------------
# Staff submission
# ---------------------------------------------------------------------------


def submit_product_count(
    db: Session,
    *,
    actor: account_models.User,
    product_code: str,
    physical_stock: int,
    expired_stock: int = 0,
    damaged_stock: int = 0,
    notes: Optional[str] = None,
) -> List[models.OpnameTask]:
    """
    Record one count for a whole product and split it over the batches of
    the actor's current count in proportion to their system stock snapshots.

    The split always covers every batch task of the count, including ones
    already submitted. Only the tasks still scheduled (for example one
    reopened by an approved edit) take their new share.

    Returns the updated tasks, followed by the residual row when the split
    leaves units unassigned.
    """
    validate_composition(physical_stock, expired_stock, damaged_stock)
    product = catalog_services.get_product_by_code(db, product_code)
    inventory_services.lock_batches_for_product(db, product_id=product.id)

    count_tasks = (
        db.query(models.OpnameTask)
        .filter(
            models.OpnameTask.product_id == product.id,
            models.OpnameTask.status.in_([models.OpnameStatus.SCHEDULED, models.OpnameStatus.SUBMITTED]),
            models.OpnameTask.scheduled_date.isnot(None),
        )
        .order_by(models.OpnameTask.scheduled_date.asc(), models.OpnameTask.id.asc())
        .with_for_update(of=models.OpnameTask)
        .all()
    )
    open_tasks = [
        t for t in count_tasks if t.kind == models.OpnameKind.BATCH and t.status == models.OpnameStatus.SCHEDULED
    ]
    if not open_tasks:
        raise NotFound("No scheduled count for this product.", product_code=product.code)

    by_batch: Dict[int, models.OpnameTask] = {}
    for task in open_tasks:
        if task.user_id == actor.id:
            by_batch.setdefault(task.batch_id, task)
    if not by_batch:
        raise Unauthorized("This count is not assigned to you.", product_code=product.code)

    weights: Dict[int, BatchStock] = {
        batch_id: _batch_stock(task.batch, task.system_stock) for batch_id, task in by_batch.items()
    }
    residual_rows: List[models.OpnameTask] = []
    for task in count_tasks:
        if task.user_id != actor.id or task.status != models.OpnameStatus.SUBMITTED:
            continue
        if task.kind == models.OpnameKind.RESIDUAL:
            residual_rows.append(task)
        elif task.batch_id not in weights:
            weights[task.batch_id] = _batch_stock(task.batch, task.system_stock)

    distribution = distribute_proportional(
        list(weights.values()),
        physical_stock,
        expired_stock,
        damaged_stock,
    )

    today = _today()
    updated: List[models.OpnameTask] = []
    for allocation in distribution.allocations:
        task = by_batch.get(allocation.batch_id)
        if task is None:
            continue
        updated.append(
            _transition(
                db,
                task,
                event="submit",
                to_state=models.OpnameStatus.SUBMITTED,
                actor_user_id=actor.id,
                changes=_count_changes(allocation, opname_date=today, notes=notes),
            )
        )

    if distribution.residual is not None:
        first = next(iter(by_batch.values()))
        updated.append(
            _record_residual(
                db,
                product=product,
                user_id=actor.id,
                residual=distribution.residual,
                status=models.OpnameStatus.SUBMITTED,
                scheduled_date=first.scheduled_date,
                opname_date=today,
                actor_user_id=actor.id,
                existing=residual_rows[0] if residual_rows else None,
            )
        )
        residual_rows = residual_rows[1:]
    for stale in residual_rows:
        stale.residual_quantity = 0
        stale.notes = "Superseded by a later count"
    db.flush()

    logger.info(
        "Opname count submitted",
        extra={
            "product_code": product.code,
            "user_id": actor.id,
            "physical_stock": physical_stock,
            "residual": distribution.residual.remainder if distribution.residual else 0,
        },
    )
    return updated


def submit_task_count(
    db: Session,
    *,
    actor: account_models.User,
    task_id: int,
    physical_stock: int,
    expired_stock: int = 0,
    damaged_stock: int = 0,
    notes: Optional[str] = None,
) -> models.OpnameTask:
    """Record a count for a single batch task."""
    task = _lock_task(db, task_id)
    if task.user_id != actor.id:
        raise Unauthorized("This count is not assigned to you.", task_id=task.id)
    if task.kind != models.OpnameKind.BATCH:
        raise InvalidInput("Residual rows cannot be counted.", task_id=task.id)

    distribution = distribute_proportional(
        [_batch_stock(task.batch, task.system_stock)],
        physical_stock,
        expired_stock,
        damaged_stock,
    )
    return _transition(
        db,
        task,
        event="submit",
        to_state=models.OpnameStatus.SUBMITTED,
        actor_user_id=actor.id,
        changes=_count_changes(distribution.allocations[0], opname_date=_today(), notes=notes),
    )


def request_edit(
    db: Session,
    *,
    actor: account_models.User,
    task_id: int,
    reason: Optional[str] = None,
) -> models.OpnameTask:
    task = _lock_task(db, task_id)
    if task.user_id != actor.id:
        raise Unauthorized("This count is not assigned to you.", task_id=task.id)
    _transition(
        db,
        task,
        event="request_edit",
        to_state=models.OpnameStatus.SUBMITTED,
        actor_user_id=actor.id,
        changes={
            "edit_requested": True,
            "edit_request_reason": (reason or "").strip() or None,
            "edit_requested_at": _utcnow(),
        },
    )
    logger.info("Edit requested", extra={"task_id": task.id, "user_id": actor.id})
    return task


# ---------------------------------------------------------------------------
# Admin review
# ---------------------------------------------------------------------------


_CLEARED_EDIT_REQUEST = {
    "edit_requested": False,
    "edit_request_reason": None,
    "edit_requested_at": None,
}


def review_task(
    db: Session,
    *,
    actor: account_models.User,
    task_id: int,
    decision: Optional[schemas.EditDecision] = None,
    status: Optional[models.OpnameStatus] = None,
    adjust_stock: bool = False,
    notes: Optional[str] = None,
) -> models.OpnameTask:
    """
    Admin review of one task.

    - decision=APPROVE reopens the task for a fresh count; nothing is written
      to the batch. A schedule that has already passed moves to today so the
      overdue sweep does not close the reopened count.
    - decision=REJECT drops the edit request. On its own the task stays
      submitted; with `adjust_stock` or `status` the review continues in the
      same call.
    - Without a decision the task moves to `status` (default adjusted). With
      `adjust_stock` the batch's stock is set to the counted physical stock,
      which is refused while an edit request is pending.
    """
    _require_admin(actor)
    # Batches before tasks, the same order submission and direct counts use.
    batches: Dict[int, inventory_models.Batch] = {}
    if adjust_stock:
        product_id = get_task(db, task_id).product_id
        batches = {b.id: b for b in inventory_services.lock_batches_for_product(db, product_id=product_id)}
    task = _lock_task(db, task_id)
    edit_rejected = False

    if decision == schemas.EditDecision.APPROVE:
        if adjust_stock:
            raise Conflict("Stock cannot be written back while reopening a count.", task_id=task.id)
        changes = dict(_CLEARED_EDIT_REQUEST, **({"notes": notes} if notes is not None else {}))
        today = _today()
        if task.scheduled_date is not None and task.scheduled_date < today:
            changes["scheduled_date"] = today
        _transition(
            db,
            task,
            event="approve_edit",
            to_state=models.OpnameStatus.SCHEDULED,
            actor_user_id=actor.id,
            changes=changes,
        )
        return task

    if decision == schemas.EditDecision.REJECT:
        _transition(
            db,
            task,
            event="reject_edit",
            to_state=models.OpnameStatus.SUBMITTED,
            actor_user_id=actor.id,
            changes=dict(_CLEARED_EDIT_REQUEST),
        )
        edit_rejected = True
        if not adjust_stock and status is None:
            if notes is not None:
                task.notes = notes
                db.flush()
            return task
    elif task.edit_requested:
        raise Conflict(
            "Approve or reject the pending edit request before reviewing this count.",
            task_id=task.id,
        )

    target = status or models.OpnameStatus.ADJUSTED
    batch = batches.get(task.batch_id) if task.batch_id else None
    changes = {"notes": notes} if notes is not None else {}
    _transition(
        db,
        task,
        event="adjust",
        to_state=target,
        actor_user_id=actor.id,
        changes=changes,
        context={
            "stock_written": bool(adjust_stock),
            "edit_rejected": edit_rejected,
            "batch_stock_before": batch.stock_quantity if batch else None,
        },
    )

    if batch is not None:
        previous = batch.stock_quantity
        batch.stock_quantity = task.physical_stock
        db.flush()
        audit_services.log_event(
            db,
            actor_user_id=actor.id,
            entity_type="batch",
            entity_id=str(batch.id),
            action="stock_write_back",
            before={"stock_quantity": previous},
            after={"stock_quantity": batch.stock_quantity},
            metadata={"opname_task_id": task.id},
            critical=True,
        )
        logger.info(
            "Batch stock written back from count",
            extra={"batch_id": batch.id, "task_id": task.id, "before": previous, "after": batch.stock_quantity},
        )
    return task


# ---------------------------------------------------------------------------
# Direct counts
# ---------------------------------------------------------------------------


def _pending_direct_tasks(db: Session, *, user_id: str, product_id: int) -> List[models.OpnameTask]:
    return (
        db.query(models.OpnameTask)
        .filter(
            models.OpnameTask.user_id == user_id,
            models.OpnameTask.product_id == product_id,
            models.OpnameTask.status == models.OpnameStatus.PENDING,
        )
        .order_by(models.OpnameTask.id.asc())
        .with_for_update(of=models.OpnameTask)
        .all()
    )


def _fifo_distribution(
    db: Session,
    product: catalog_models.Product,
    physical_stock: int,
    expired_stock: int,
    damaged_stock: int,
) -> tuple:
    batches = inventory_services.lock_batches_for_product(db, product_id=product.id)
    if not batches:
        raise NotFound("No batches found for this product.", product_code=product.code)
    distribution = distribute_fifo(
        [_batch_stock(b, b.stock_quantity) for b in batches],
        physical_stock,
        expired_stock,
        damaged_stock,
    )
    return batches, distribution


def direct_count(
    db: Session,
    *,
    actor: account_models.User,
    product_code: str,
    physical_stock: int,
    expired_stock: int = 0,
    damaged_stock: int = 0,
    notes: Optional[str] = None,
    opname_date: Optional[date] = None,
) -> List[models.OpnameTask]:
    """
    Admin count without a schedule. Batches are filled up to their current
    stock in FIFO order and the figures are held as pending until confirmed.
    Counting the same product again replaces the actor's pending figures.
    """
    _require_admin(actor)
    validate_composition(physical_stock, expired_stock, damaged_stock)
    product = catalog_services.get_product_by_code(db, product_code)
    _, distribution = _fifo_distribution(db, product, physical_stock, expired_stock, damaged_stock)

    pending = _pending_direct_tasks(db, user_id=actor.id, product_id=product.id)
    by_batch = {t.batch_id: t for t in pending if t.kind == models.OpnameKind.BATCH}
    residual_rows = [t for t in pending if t.kind == models.OpnameKind.RESIDUAL]

    counted_on = opname_date or _today()
    note = notes or DIRECT_PENDING_NOTE
    results: List[models.OpnameTask] = []
    for allocation in distribution.allocations:
        changes = dict(_count_changes(allocation, opname_date=counted_on, notes=note), system_stock=allocation.system_stock)
        task = by_batch.get(allocation.batch_id)
        if task is not None:
            _transition(
                db,
                task,
                event="direct_count",
                to_state=models.OpnameStatus.PENDING,
                actor_user_id=actor.id,
                changes=changes,
            )
        else:
            task = _create_task(
                db,
                event="direct_count",
                status=models.OpnameStatus.PENDING,
                actor_user_id=actor.id,
                user_id=actor.id,
                created_by_user_id=actor.id,
                batch_id=allocation.batch_id,
                product_id=product.id,
                scheduled_date=None,
                **changes,
            )
        results.append(task)

    if distribution.residual is not None:
        results.append(
            _record_residual(
                db,
                product=product,
                user_id=actor.id,
                residual=distribution.residual,
                status=models.OpnameStatus.PENDING,
                scheduled_date=None,
                opname_date=counted_on,
                actor_user_id=actor.id,
                existing=residual_rows[0] if residual_rows else None,
            )
        )
        residual_rows = residual_rows[1:]
    for stale in residual_rows:
        stale.residual_quantity = 0
        stale.notes = "Superseded by a later count"
    db.flush()

    logger.info(
        "Direct count recorded",
        extra={"product_code": product.code, "user_id": actor.id, "physical_stock": physical_stock},
    )
    return results


def confirm_direct_counts(
    db: Session,
    *,
    actor: account_models.User,
    inputs: Sequence[schemas.DirectCountRequest],
) -> List[models.OpnameTask]:
    """
    Confirm direct counts and write them into the batches.

    Current batch stock is re-read under lock and filled again in FIFO order;
    each batch's stock becomes its share. Units above the total system stock
    go to the earliest-expiring batch and are also kept as an adjusted
    residual row. All products are confirmed together or not at all.
    """
    _require_admin(actor)
    if not inputs:
        raise InvalidInput("At least one count is required.", field="inputs")

    products: List[catalog_models.Product] = []
    seen = set()
    for item in inputs:
        validate_composition(item.physical_stock, item.expired_stock, item.damaged_stock)
        product = catalog_services.get_product_by_code(db, item.product_code)
        if product.id in seen:
            raise InvalidInput("Each product may be confirmed only once per request.", product_code=product.code)
        seen.add(product.id)
        products.append(product)

    results: List[models.OpnameTask] = []
    for item, product in zip(inputs, products):
        batches, distribution = _fifo_distribution(
            db, product, item.physical_stock, item.expired_stock, item.damaged_stock
        )
        pending = _pending_direct_tasks(db, user_id=actor.id, product_id=product.id)
        by_batch = {t.batch_id: t for t in pending if t.kind == models.OpnameKind.BATCH}
        residual_rows = [t for t in pending if t.kind == models.OpnameKind.RESIDUAL]
        counted_on = item.opname_date or _today()

        for allocation in distribution.allocations:
            changes = dict(
                _count_changes(allocation, opname_date=counted_on, notes=item.notes),
                system_stock=allocation.system_stock,
            )
            task = by_batch.get(allocation.batch_id)
            if task is not None:
                if not item.notes:
                    changes["notes"] = task.notes if task.notes != DIRECT_PENDING_NOTE else ""
                _transition(
                    db,
                    task,
                    event="confirm_direct",
                    to_state=models.OpnameStatus.ADJUSTED,
                    actor_user_id=actor.id,
                    changes=changes,
                )
            else:
                task = _create_task(
                    db,
                    event="confirm_direct",
                    status=models.OpnameStatus.ADJUSTED,
                    actor_user_id=actor.id,
                    user_id=actor.id,
                    created_by_user_id=actor.id,
                    batch_id=allocation.batch_id,
                    product_id=product.id,
                    scheduled_date=None,
                    **changes,
                )
            results.append(task)

        results.extend(
            _write_direct_counts(
                db,
                actor=actor,
                product=product,
                batches=batches,
                distribution=distribution,
                residual_rows=residual_rows,
                counted_on=counted_on,
            )
        )

    return results


def _write_direct_counts(
    db: Session,
    *,
    actor: account_models.User,
    product: catalog_models.Product,
    batches: List[inventory_models.Batch],
    distribution: Distribution,
    residual_rows: List[models.OpnameTask],
    counted_on: date,
) -> List[models.OpnameTask]:
    residual = distribution.residual
    surplus = residual.remainder if residual is not None and residual.remainder > 0 else 0
    first = batches[0]

    before = {b.batch_code: b.stock_quantity for b in batches}
    for batch in batches:
        allocation = distribution.for_batch(batch.id)
        batch.stock_quantity = (allocation.physical_stock if allocation else 0) + (surplus if batch is first else 0)
    db.flush()

    audit_services.log_event(
        db,
        actor_user_id=actor.id,
        entity_type="product",
        entity_id=product.code,
        action="direct_count_write_back",
        before=before,
        after={b.batch_code: b.stock_quantity for b in batches},
        metadata={"surplus_batch": first.batch_code if surplus else None},
        critical=True,
    )

    written: List[models.OpnameTask] = []
    if residual is not None:
        note = _residual_note(residual)
        if surplus:
            note = f"{note}; added to batch {first.batch_code}"
        written.append(
            _record_residual(
                db,
                product=product,
                user_id=actor.id,
                residual=residual,
                status=models.OpnameStatus.ADJUSTED,
                scheduled_date=None,
                opname_date=counted_on,
                actor_user_id=actor.id,
                existing=residual_rows[0] if residual_rows else None,
                note=note,
            )
        )
        residual_rows = residual_rows[1:]

    for stale in residual_rows:
        stale.status = models.OpnameStatus.ADJUSTED
        stale.residual_quantity = 0
        stale.notes = "No difference at confirmation"
    db.flush()

    logger.info(
        "Direct count confirmed",
        extra={"product_code": product.code, "user_id": actor.id, "surplus": surplus},
    )
    return written


# ---------------------------------------------------------------------------
# Sweep
# ---------------------------------------------------------------------------


def sweep_overdue_schedules(db: Session, *, today: Optional[date] = None) -> int:
    """
    Close scheduling windows that have passed: tasks still scheduled for a
    day before `today` are submitted with zero counts.
    """
    today = today or _today()
    overdue = (
        db.query(models.OpnameTask)
        .filter(
            models.OpnameTask.status == models.OpnameStatus.SCHEDULED,
            models.OpnameTask.scheduled_date.isnot(None),
            models.OpnameTask.scheduled_date < today,
        )
        .order_by(models.OpnameTask.id.asc())
        .with_for_update(of=models.OpnameTask)
        .all()
    )
    for task in overdue:
        _transition(
            db,
            task,
            event="expire",
            to_state=models.OpnameStatus.SUBMITTED,
            actor_user_id=None,
            changes={
                "physical_stock": 0,
                "expired_stock": 0,
                "damaged_stock": 0,
                "opname_date": today,
                "notes": task.notes or "Scheduling window expired",
            },
        )
    if overdue:
        logger.info("Expired overdue opname schedules", extra={"count": len(overdue), "today": today.isoformat()})
    return len(overdue)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def list_tasks(
    db: Session,
    *,
    status: Optional[models.OpnameStatus] = None,
    date_start: Optional[date] = None,
    date_end: Optional[date] = None,
    user_id: Optional[str] = None,
    is_direct: Optional[bool] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[models.OpnameTask]:
    query = db.query(models.OpnameTask)
    if status:
        query = query.filter(models.OpnameTask.status == status)
    if user_id:
        query = query.filter(models.OpnameTask.user_id == user_id)
    if is_direct is not None:
        column = models.OpnameTask.scheduled_date
        query = query.filter(column.is_(None) if is_direct else column.isnot(None))

    if date_start or date_end:
        def _within(column):
            clauses = []
            if date_start:
                clauses.append(column >= date_start)
            if date_end:
                clauses.append(column <= date_end)
            return and_(*clauses)

        query = query.filter(or_(_within(models.OpnameTask.scheduled_date), _within(models.OpnameTask.opname_date)))

    query = query.order_by(models.OpnameTask.scheduled_date.desc(), models.OpnameTask.id.desc())
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    return query.all()


def list_staff_history(db: Session, *, user_id: str) -> List[models.OpnameTask]:
    return (
        db.query(models.OpnameTask)
        .filter(
            models.OpnameTask.user_id == user_id,
            models.OpnameTask.status.in_([models.OpnameStatus.SUBMITTED, models.OpnameStatus.ADJUSTED]),
        )
        .order_by(
            models.OpnameTask.opname_date.desc(),
            models.OpnameTask.created_at.desc(),
            models.OpnameTask.id.desc(),
        )
        .all()
    )


def get_task(db: Session, task_id: int) -> models.OpnameTask:
    task = db.query(models.OpnameTask).filter(models.OpnameTask.id == task_id).first()
    if not task:
        raise NotFound("Opname task not found.", task_id=task_id)
    return task


def get_task_details(db: Session, task_id: int) -> schemas.OpnameTaskDetails:
    task = get_task(db, task_id)
    batches = (
        db.query(inventory_models.Batch)
        .filter(inventory_models.Batch.product_id == task.product_id)
        .order_by(inventory_models.Batch.batch_code.asc())
        .all()
    )
    return schemas.OpnameTaskDetails(
        task=schemas.OpnameTaskRead.model_validate(task),
        batches=[BatchRead.model_validate(b) for b in batches],
        total_system_stock=sum(b.stock_quantity for b in batches),
        batch_count=len(batches),
    )
