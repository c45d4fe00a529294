"""
Month settings (cash on hand) and app preferences
"""
from decimal import Decimal
from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import get_db, raise_http, require_month
from app.application.errors import LedgerValidationError
from app.application.settings import (
    SetCashStartUseCase, get_app_settings, get_month_settings, save_app_settings,
)


router = APIRouter(prefix="/api", tags=["settings"])


class MonthSettingsRequest(BaseModel):
    year: int | None = None
    month: int | None = None
    cash_start: Decimal | None = None


@router.get("/month-settings")
def read_month_settings(year: str | None = None, month: str | None = None, db: Session = Depends(get_db)):
    y, m = require_month(year, month)
    return get_month_settings(db, y, m)


@router.post("/month-settings")
def write_month_settings(req: MonthSettingsRequest, db: Session = Depends(get_db)):
    try:
        SetCashStartUseCase(db).execute(req.year, req.month, req.cash_start)
    except LedgerValidationError as e:
        db.rollback()
        raise_http(e)
    db.commit()
    return {"ok": True}


@router.get("/settings")
def read_settings(db: Session = Depends(get_db)):
    return get_app_settings(db)


@router.post("/settings")
def write_settings(body: dict | None = Body(default=None), db: Session = Depends(get_db)):
    """Store preferences; out-of-range values are replaced by defaults"""
    payload = save_app_settings(db, body or {})
    db.commit()
    return payload
