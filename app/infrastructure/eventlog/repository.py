"""
Instance event repository - append-only audit trail for bill instances

Every change to an instance's amount, date, name, status or note is written
here as an immutable event; the activity/history views read it back.
"""
from datetime import datetime
from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Session

from app.infrastructure.db.models import InstanceEventModel, InstanceModel, utcnow


class InstanceEventRepository:
    """
    Repository for the instance_events table
    """

    def __init__(self, db: Session):
        self.db = db

    def append_event(
        self,
        instance_id: str,
        event_type: str,
        detail: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> str:
        """
        Add an event to the audit trail

        Args:
            instance_id: instance the event belongs to
            event_type: "created", "marked_done", "log_update", "edited", ...
            detail: JSON detail, e.g. {"changes": {"amount": {"from": 10, "to": 12}}}
            created_at: when it happened (default: now)

        Returns:
            event_id

        Example:
            >>> repo = InstanceEventRepository(db)
            >>> repo.append_event(instance_id, "skipped", {"from": "pending", "to": "skipped"})
        """
        event = InstanceEventModel(
            instance_id=instance_id,
            type=event_type,
            detail=detail or None,
            created_at=created_at or utcnow(),
        )
        self.db.add(event)
        self.db.flush()  # get id without commit
        return event.id

    def list_for_instance(self, instance_id: str) -> List[InstanceEventModel]:
        """Events of one instance, newest first"""
        return (
            self.db.query(InstanceEventModel)
            .filter(InstanceEventModel.instance_id == instance_id)
            .order_by(InstanceEventModel.created_at.desc())
            .all()
        )

    def list_for_month(self, year: int, month: int) -> List[tuple[InstanceEventModel, str]]:
        """
        Events of every instance in (year, month), newest first

        Returns:
            (event, instance name) pairs
        """
        return (
            self.db.query(InstanceEventModel, InstanceModel.name_snapshot)
            .join(InstanceModel, InstanceModel.id == InstanceEventModel.instance_id)
            .filter(InstanceModel.year == year, InstanceModel.month == month)
            .order_by(InstanceEventModel.created_at.desc())
            .all()
        )

    def count_events(self, instance_id: str, event_type: Optional[str] = None) -> int:
        query = self.db.query(InstanceEventModel).filter(InstanceEventModel.instance_id == instance_id)
        if event_type:
            query = query.filter(InstanceEventModel.type == event_type)
        return query.count()


def serialize_event(event: InstanceEventModel, name: str | None = None) -> dict:
    data = {
        "id": event.id,
        "instance_id": event.instance_id,
        "type": event.type,
        "detail": event.detail,
        "created_at": event.created_at.isoformat(),
    }
    if name is not None:
        data["name"] = name
    return data
