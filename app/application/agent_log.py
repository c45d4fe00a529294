"""
Agent command log - what the assistant proposed and what the user did with it
"""
from sqlalchemy.orm import Session

from app.infrastructure.db.models import AgentCommandLogModel

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def _text_or_none(value) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip()


def append_agent_log(db: Session, body: dict) -> AgentCommandLogModel:
    entry = AgentCommandLogModel(
        user_text=_text_or_none(body.get("user_text")),
        kind=str(body.get("kind") or "command").strip() or "command",
        summary=_text_or_none(body.get("summary")),
        payload=body.get("payload"),
        result=body.get("result"),
        status=str(body.get("status") or "ok").strip() or "ok",
    )
    db.add(entry)
    db.flush()
    return entry


def list_agent_log(db: Session, limit=DEFAULT_LIMIT) -> list[dict]:
    """Newest first; limit clamped to 1..100"""
    try:
        limit = min(MAX_LIMIT, max(1, int(limit)))
    except (TypeError, ValueError):
        limit = DEFAULT_LIMIT

    rows = (
        db.query(AgentCommandLogModel)
        .order_by(AgentCommandLogModel.created_at.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": row.id,
            "created_at": row.created_at.isoformat(),
            "user_text": row.user_text,
            "kind": row.kind,
            "summary": row.summary,
            "status": row.status,
            "payload": row.payload,
            "result": row.result,
        }
        for row in rows
    ]
