"""
Sinking fund read endpoints (writes go through the action channel)
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import get_db, month_or_current
from app.application.sinking_funds import list_fund_events, list_fund_views
from app.utils.validation import clean_text, to_boolean


router = APIRouter(prefix="/api", tags=["sinking-funds"])


@router.get("/sinking-funds")
def get_sinking_funds(
    year: str | None = None,
    month: str | None = None,
    include_inactive: str | None = None,
    db: Session = Depends(get_db),
):
    """Funds with balance, monthly contribution and status as of the viewed month"""
    y, m = month_or_current(year, month)
    return list_fund_views(db, y, m, include_inactive=to_boolean(include_inactive, False))


@router.get("/sinking-events")
def get_sinking_events(fund_id: str | None = None, db: Session = Depends(get_db)):
    fund_id = clean_text(fund_id)
    if not fund_id:
        raise HTTPException(status_code=400, detail="fund_id required")
    return list_fund_events(db, fund_id)
