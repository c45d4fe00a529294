"""
Template API endpoints (plus month generation / apply templates)

year/month query params choose the month a template change lands in;
they default to the current month.
"""
from decimal import Decimal
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import get_db, month_or_current, raise_http, require_month
from app.application.errors import LedgerValidationError, NotFoundError
from app.application.month_generator import MonthGenerator
from app.application.templates import (
    CreateTemplateUseCase, UpdateTemplateUseCase, ArchiveTemplateUseCase,
    DeleteTemplateUseCase, list_templates, serialize_template,
)


router = APIRouter(prefix="/api", tags=["templates"])


# === Request models ===

class TemplateRequest(BaseModel):
    name: str | None = None
    category: str | None = None
    amount_default: Decimal | None = None
    due_day: int | None = None
    autopay: bool | None = None
    essential: bool | None = None
    active: bool | None = None
    default_note: str | None = None
    match_payee_key: str | None = None
    match_amount_tolerance: Decimal | None = None


# === Endpoints ===

@router.get("/ensure-month")
def ensure_month(year: str | None = None, month: str | None = None, db: Session = Depends(get_db)):
    """Materialize the month's instances (idempotent)"""
    y, m = require_month(year, month)
    created = MonthGenerator(db).ensure_month(y, m)
    db.commit()
    return {"ok": True, "created": created}


@router.get("/templates")
def get_templates(db: Session = Depends(get_db)):
    return [serialize_template(t) for t in list_templates(db)]


@router.post("/templates")
def create_template(
    req: TemplateRequest,
    year: str | None = None,
    month: str | None = None,
    db: Session = Depends(get_db),
):
    y, m = month_or_current(year, month)
    try:
        template = CreateTemplateUseCase(db).execute(y, m, **req.model_dump())
    except LedgerValidationError as e:
        db.rollback()
        raise_http(e)
    db.commit()
    return serialize_template(template)


@router.put("/templates/{template_id}")
def update_template(
    template_id: str,
    req: TemplateRequest,
    year: str | None = None,
    month: str | None = None,
    db: Session = Depends(get_db),
):
    """Replace the definition and push it into the chosen month's instance"""
    y, m = month_or_current(year, month)
    try:
        template = UpdateTemplateUseCase(db).execute(template_id, y, m, **req.model_dump())
    except (LedgerValidationError, NotFoundError) as e:
        db.rollback()
        raise_http(e)
    db.commit()
    return serialize_template(template)


@router.post("/templates/{template_id}/archive")
def archive_template(template_id: str, db: Session = Depends(get_db)):
    try:
        ArchiveTemplateUseCase(db).execute(template_id)
    except NotFoundError as e:
        db.rollback()
        raise_http(e)
    db.commit()
    return {"ok": True}


@router.delete("/templates/{template_id}")
def delete_template(
    template_id: str,
    year: str | None = None,
    month: str | None = None,
    db: Session = Depends(get_db),
):
    """Delete from the chosen month onward; earlier months keep their instances"""
    y, m = month_or_current(year, month)
    try:
        DeleteTemplateUseCase(db).execute(template_id, y, m)
    except NotFoundError as e:
        db.rollback()
        raise_http(e)
    db.commit()
    return {"ok": True}


@router.post("/apply-templates")
def apply_templates(year: str | None = None, month: str | None = None, db: Session = Depends(get_db)):
    y, m = require_month(year, month)
    updated = MonthGenerator(db).apply_templates(y, m)
    db.commit()
    return {"ok": True, "updated": updated}
