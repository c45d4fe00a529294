"""
Instance / payment API endpoints
"""
from decimal import Decimal
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import get_db, raise_http, require_month
from app.application.errors import LedgerValidationError, NotFoundError
from app.application.instances import (
    MarkPaidUseCase, MarkPendingUseCase, AddPaymentUseCase, UndoPaymentUseCase,
    UpdateInstanceUseCase, get_instance, get_instances, payments_for_month,
    serialize_payment,
)
from app.infrastructure.eventlog.repository import InstanceEventRepository, serialize_event


router = APIRouter(prefix="/api", tags=["instances"])


# === Request models ===

class InstancePatchRequest(BaseModel):
    """Partial update: only fields present in the body are applied"""
    amount: Decimal | None = None
    name: str | None = None
    name_snapshot: str | None = None
    category: str | None = None
    category_snapshot: str | None = None
    due_date: str | None = None
    status: str | None = None
    paid_date: str | None = None
    note: str | None = None


class PaymentRequest(BaseModel):
    amount: Decimal | None = None
    paid_date: str | None = None


# === Endpoints ===

@router.get("/instances")
def list_instances(year: str | None = None, month: str | None = None, db: Session = Depends(get_db)):
    y, m = require_month(year, month)
    return [view.to_dict() for view in get_instances(db, y, m)]


@router.patch("/instances/{instance_id}")
def patch_instance(instance_id: str, req: InstancePatchRequest, db: Session = Depends(get_db)):
    fields = {key: getattr(req, key) for key in req.model_fields_set}
    try:
        view = UpdateInstanceUseCase(db).execute(instance_id, fields)
    except (LedgerValidationError, NotFoundError) as e:
        db.rollback()
        raise_http(e)
    db.commit()
    return view.to_dict()


@router.post("/instances/{instance_id}/mark-paid")
def mark_paid(instance_id: str, db: Session = Depends(get_db)):
    try:
        view = MarkPaidUseCase(db).execute(instance_id)
    except (LedgerValidationError, NotFoundError) as e:
        db.rollback()
        raise_http(e)
    db.commit()
    return view.to_dict()


@router.post("/instances/{instance_id}/undo-paid")
def undo_paid(instance_id: str, db: Session = Depends(get_db)):
    """Back to pending: every payment of the instance is removed"""
    try:
        view = MarkPendingUseCase(db).execute(instance_id)
    except NotFoundError as e:
        db.rollback()
        raise_http(e)
    db.commit()
    return view.to_dict()


@router.post("/instances/{instance_id}/payments")
def add_payment(instance_id: str, req: PaymentRequest, db: Session = Depends(get_db)):
    try:
        payment, view = AddPaymentUseCase(db).execute(instance_id, req.amount, req.paid_date)
    except (LedgerValidationError, NotFoundError) as e:
        db.rollback()
        raise_http(e)
    db.commit()
    return {"ok": True, "payment": serialize_payment(payment), "instance": view.to_dict()}


@router.get("/instances/{instance_id}/events")
def instance_events(instance_id: str, db: Session = Depends(get_db)):
    try:
        get_instance(db, instance_id)
    except NotFoundError as e:
        raise_http(e)
    events = InstanceEventRepository(db).list_for_instance(instance_id)
    return [serialize_event(e) for e in events]


@router.get("/instance-events")
def month_events(year: str | None = None, month: str | None = None, db: Session = Depends(get_db)):
    y, m = require_month(year, month)
    rows = InstanceEventRepository(db).list_for_month(y, m)
    return [serialize_event(event, name) for event, name in rows]


@router.get("/payments")
def list_payments(year: str | None = None, month: str | None = None, db: Session = Depends(get_db)):
    y, m = require_month(year, month)
    return payments_for_month(db, y, m)


@router.delete("/payments/{payment_id}")
def delete_payment(payment_id: str, db: Session = Depends(get_db)):
    try:
        instance_id, view = UndoPaymentUseCase(db).execute(payment_id)
    except NotFoundError as e:
        db.rollback()
        raise_http(e)
    db.commit()
    return {"ok": True, "instance_id": instance_id, "instance": view.to_dict() if view else None}
