"""
Local-only assistant endpoints: advisor queries, agent log, behavior
features and nudges
"""
import logging
from datetime import date
from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import envelope, get_advisor_client, get_db, month_or_current, period
from app.application.advisor import AdvisorClient, AdvisorTaskError, NudgeService, build_trigger_events
from app.application.agent_log import append_agent_log, list_agent_log
from app.application.behavior import DEFAULT_WINDOW, BehaviorFeaturesService
from app.application.instances import get_instances
from app.application.month_generator import MonthGenerator
from app.domain.ledger import compute_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["internal"])

MAX_WINDOW = 12


@router.post("/advisor/query")
def advisor_query(
    body: dict | None = Body(default=None),
    client: AdvisorClient = Depends(get_advisor_client),
):
    body = body or {}
    task = body.get("task")
    if not isinstance(task, str) or not task.strip():
        raise HTTPException(status_code=400, detail="task required")

    try:
        result = client.query(task.strip(), body.get("payload"))
    except AdvisorTaskError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not result.get("ok"):
        return JSONResponse(status_code=503, content=result)
    return result


@router.get("/agent/log")
def read_agent_log(limit: str | None = None, db: Session = Depends(get_db)):
    return {"ok": True, "items": list_agent_log(db, limit if limit is not None else 20)}


@router.post("/agent/log")
def write_agent_log(body: dict | None = Body(default=None), db: Session = Depends(get_db)):
    entry = append_agent_log(db, body or {})
    db.commit()
    return {"ok": True, "id": entry.id}


@router.get("/behavior/features")
def behavior_features(
    year: str | None = None,
    month: str | None = None,
    window: str | None = None,
    db: Session = Depends(get_db),
):
    y, m = month_or_current(year, month)
    try:
        months = min(MAX_WINDOW, max(1, int(window)))
    except (TypeError, ValueError):
        months = DEFAULT_WINDOW

    features = BehaviorFeaturesService(db).compute(y, m, window=months)
    return envelope(period=period(y, m), window_months=months, features=features)


@router.post("/nudges")
def nudges(
    year: str | None = None,
    month: str | None = None,
    db: Session = Depends(get_db),
    client: AdvisorClient = Depends(get_advisor_client),
):
    """Deterministic trigger events, phrased by the advisor when it is available"""
    y, m = month_or_current(year, month)
    MonthGenerator(db).ensure_month(y, m)
    db.commit()

    today = date.today()
    instances = get_instances(db, y, m)
    summary = compute_summary(instances, y, m, today=today)
    events = build_trigger_events(instances, summary, y, m, today)
    result = NudgeService(client).generate(events)
    return {**result, "period": period(y, m), "events": events}
