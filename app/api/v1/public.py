"""
Stable /api/v1 contract for external clients (widgets, scripts, the assistant)

Every read response is wrapped with app / app_version / schema_version /
generated_at; mutations go through POST /api/v1/actions only.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any
from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import envelope, get_db, month_or_current, period, require_month
from app.application.actions import ActionDispatcher, ActionRequestError
from app.application.instances import get_instances
from app.application.month_generator import MonthGenerator
from app.application.sinking_funds import get_balances, list_fund_events, list_fund_views
from app.application.templates import list_templates, serialize_template
from app.config import APP_VERSION
from app.domain.ledger import compute_summary
from app.infrastructure.db.models import SinkingFundModel
from app.utils.money import to_float
from app.utils.validation import clean_text, to_boolean

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["v1"])


def _future_reserved(db: Session) -> Decimal:
    """Money already set aside in active sinking funds (negative balances count as 0)"""
    balances = get_balances(db)
    active_ids = [row.id for row in db.query(SinkingFundModel.id).filter(SinkingFundModel.active == True).all()]
    return sum((max(Decimal("0"), balances.get(fid, Decimal("0"))) for fid in active_ids), Decimal("0"))


@router.get("/summary")
def summary(
    year: str | None = None,
    month: str | None = None,
    essentials_only: str | None = None,
    db: Session = Depends(get_db),
):
    y, m = require_month(year, month)
    MonthGenerator(db).ensure_month(y, m)
    db.commit()

    essentials = to_boolean(essentials_only, False)
    totals = compute_summary(get_instances(db, y, m), y, m, essentials_only=essentials, today=date.today())

    return envelope(
        version=APP_VERSION,
        period=period(y, m),
        filters={"essentials_only": essentials},
        future_reserved=to_float(_future_reserved(db)),
        **totals.to_dict(),
    )


@router.get("/month")
def month_items(
    year: str | None = None,
    month: str | None = None,
    essentials_only: str | None = None,
    db: Session = Depends(get_db),
):
    y, m = require_month(year, month)
    MonthGenerator(db).ensure_month(y, m)
    db.commit()

    essentials = to_boolean(essentials_only, False)
    items = [
        {
            "instance_id": v.id,
            "template_id": v.template_id,
            "name": v.name_snapshot,
            "category": v.category_snapshot,
            "amount": to_float(v.amount),
            "amount_paid": to_float(v.amount_paid),
            "amount_remaining": to_float(v.amount_remaining),
            "due_date": v.due_date.isoformat(),
            "status": v.status_derived,
            "paid_date": v.paid_date.isoformat() if v.paid_date else None,
            "autopay": v.autopay_snapshot,
            "essential": v.essential_snapshot,
            "note": v.note,
        }
        for v in get_instances(db, y, m)
        if v.essential_snapshot or not essentials
    ]
    return envelope(period=period(y, m), items=items)


@router.get("/templates")
def templates(db: Session = Depends(get_db)):
    return envelope(templates=[serialize_template(t) for t in list_templates(db)])


@router.get("/sinking-funds")
def sinking_funds(year: str | None = None, month: str | None = None, db: Session = Depends(get_db)):
    y, m = month_or_current(year, month)
    return envelope(period=period(y, m), funds=list_fund_views(db, y, m))


@router.get("/sinking-events")
def sinking_events(fund_id: str | None = None, db: Session = Depends(get_db)):
    fund_id = clean_text(fund_id)
    if not fund_id:
        raise HTTPException(status_code=400, detail="fund_id required")
    return envelope(events=list_fund_events(db, fund_id))


@router.post("/actions")
def post_action(body: Any = Body(default=None), db: Session = Depends(get_db)):
    """
    Idempotent mutation channel

    Replays return the stored result (and its original status code);
    failures are recorded too and answered with 400.
    """
    try:
        outcome = ActionDispatcher(db).dispatch(body)
    except ActionRequestError as e:
        return JSONResponse(status_code=400, content={"ok": False, "error": str(e)})
    return JSONResponse(status_code=200 if outcome.ok else 400, content=outcome.result)
