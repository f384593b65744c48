from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from opnamedb.apps.accounts import models as account_models
from opnamedb.database import get_db, transaction
from opnamedb.security import get_current_active_user, require_roles

from . import conflicts, models, schemas, services

router = APIRouter(prefix="/opname", tags=["opname"])

ADMIN_ROLES = [account_models.AccountRole.ADMIN]
STAFF_ROLES = [account_models.AccountRole.STAFF, account_models.AccountRole.ADMIN]


def _refresh_all(db: Session, tasks: List[models.OpnameTask]) -> List[models.OpnameTask]:
    for task in tasks:
        db.refresh(task)
    return tasks


@router.post("/schedule", response_model=schemas.ScheduleResult, status_code=status.HTTP_201_CREATED)
def schedule_opname(
    payload: schemas.ScheduleRequest,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*ADMIN_ROLES)),
):
    with transaction(db):
        tasks = services.create_opname_tasks(
            db,
            actor=current_user,
            product_codes=payload.product_codes,
            scheduled_date=payload.scheduled_date,
            assigned_user_id=payload.assigned_user_id,
        )
    _refresh_all(db, tasks)
    return schemas.ScheduleResult(
        count=len(tasks),
        tasks=[schemas.OpnameTaskRead.model_validate(t) for t in tasks],
    )


@router.post(
    "/check-category-conflict",
    response_model=schemas.ConflictReport,
    responses={status.HTTP_409_CONFLICT: {"model": schemas.ConflictReport}},
)
def check_category_conflict(
    payload: schemas.ConflictCheckRequest,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*ADMIN_ROLES)),
):
    report = conflicts.check_category_conflict(
        db,
        categories=payload.categories,
        scheduled_date=payload.scheduled_date,
        assigned_user_id=payload.assigned_user_id,
    )
    if report.has_conflict:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=jsonable_encoder(report))
    return report


@router.get("/tasks", response_model=List[schemas.OpnameTaskRead])
def list_my_tasks(
    status_filter: Optional[models.OpnameStatus] = Query(None, alias="status"),
    include_all_status: bool = False,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*STAFF_ROLES)),
):
    return services.list_tasks_for_user(
        db,
        user_id=current_user.id,
        status=status_filter,
        include_all_status=include_all_status,
    )


@router.post("/submit", response_model=List[schemas.OpnameTaskRead])
def submit_product_count(
    payload: schemas.ProductCountSubmission,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*STAFF_ROLES)),
):
    with transaction(db):
        tasks = services.submit_product_count(
            db,
            actor=current_user,
            product_code=payload.product_code,
            physical_stock=payload.physical_stock,
            expired_stock=payload.expired_stock,
            damaged_stock=payload.damaged_stock,
            notes=payload.notes,
        )
    return _refresh_all(db, tasks)


@router.post("/tasks/{task_id}/submit", response_model=schemas.OpnameTaskRead)
def submit_task_count(
    task_id: int,
    payload: schemas.CountSubmission,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*STAFF_ROLES)),
):
    with transaction(db):
        task = services.submit_task_count(
            db,
            actor=current_user,
            task_id=task_id,
            physical_stock=payload.physical_stock,
            expired_stock=payload.expired_stock,
            damaged_stock=payload.damaged_stock,
            notes=payload.notes,
        )
    db.refresh(task)
    return task


@router.post("/tasks/{task_id}/request-edit", response_model=schemas.OpnameTaskRead)
def request_edit(
    task_id: int,
    payload: schemas.EditRequest,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*STAFF_ROLES)),
):
    with transaction(db):
        task = services.request_edit(db, actor=current_user, task_id=task_id, reason=payload.reason)
    db.refresh(task)
    return task


@router.post("/tasks/{task_id}/review", response_model=schemas.OpnameTaskRead)
def review_task(
    task_id: int,
    payload: schemas.ReviewRequest,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*ADMIN_ROLES)),
):
    with transaction(db):
        task = services.review_task(
            db,
            actor=current_user,
            task_id=task_id,
            decision=payload.decision,
            status=payload.status,
            adjust_stock=payload.adjust_stock,
            notes=payload.notes,
        )
    db.refresh(task)
    return task


@router.post("/direct", response_model=List[schemas.OpnameTaskRead], status_code=status.HTTP_201_CREATED)
def direct_count(
    payload: schemas.DirectCountRequest,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*ADMIN_ROLES)),
):
    with transaction(db):
        tasks = services.direct_count(
            db,
            actor=current_user,
            product_code=payload.product_code,
            physical_stock=payload.physical_stock,
            expired_stock=payload.expired_stock,
            damaged_stock=payload.damaged_stock,
            notes=payload.notes,
            opname_date=payload.opname_date,
        )
    return _refresh_all(db, tasks)


@router.post("/direct/confirm", response_model=List[schemas.OpnameTaskRead])
def confirm_direct_counts(
    payload: schemas.DirectConfirmRequest,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*ADMIN_ROLES)),
):
    with transaction(db):
        tasks = services.confirm_direct_counts(db, actor=current_user, inputs=payload.inputs)
    return _refresh_all(db, tasks)


@router.get("/all", response_model=List[schemas.OpnameTaskRead])
def list_all_tasks(
    status_filter: Optional[models.OpnameStatus] = Query(None, alias="status"),
    date_start: Optional[date] = None,
    date_end: Optional[date] = None,
    user_id: Optional[str] = None,
    is_direct: Optional[bool] = None,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.list_tasks(
        db,
        status=status_filter,
        date_start=date_start,
        date_end=date_end,
        user_id=user_id,
        is_direct=is_direct,
        limit=limit,
        offset=offset,
    )


@router.get("/staff/history", response_model=List[schemas.OpnameTaskRead])
def staff_history(
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*STAFF_ROLES)),
):
    return services.list_staff_history(db, user_id=current_user.id)


@router.get("/tasks/{task_id}", response_model=schemas.OpnameTaskRead)
def get_task(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*STAFF_ROLES)),
):
    return services.get_task(db, task_id)


@router.get("/tasks/{task_id}/details", response_model=schemas.OpnameTaskDetails)
def get_task_details(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*STAFF_ROLES)),
):
    return services.get_task_details(db, task_id)
