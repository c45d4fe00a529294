"""
Month generator - materializes bill templates into monthly instances.

Called lazily whenever a month is viewed. Idempotent: existing instances are
never recreated (existence check + unique (template_id, year, month)).
Template edits reach an existing month only through apply_templates.

Flushes only; the caller commits.
"""
import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from app.application.sinking_funds import AutoContributeUseCase
from app.domain.ledger import STATUS_PENDING, due_date_for
from app.infrastructure.db.models import TemplateModel, InstanceModel, PaymentEventModel
from app.infrastructure.eventlog.repository import InstanceEventRepository
from app.utils.money import to_float

logger = logging.getLogger(__name__)


def _snapshot_fields(template: TemplateModel, year: int, month: int) -> dict:
    return {
        "name_snapshot": template.name,
        "category_snapshot": template.category,
        "amount": template.amount_default,
        "due_date": due_date_for(year, month, template.due_day),
        "autopay_snapshot": template.autopay,
        "essential_snapshot": template.essential,
    }


SNAPSHOT_LABELS = {
    "name_snapshot": "name",
    "category_snapshot": "category",
    "amount": "amount",
    "due_date": "due_date",
    "autopay_snapshot": "autopay",
    "essential_snapshot": "essential",
}


def _audit_value(value):
    if isinstance(value, Decimal):
        return to_float(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def _snapshot_changes(instance: InstanceModel, fields: dict) -> dict:
    """{label: {"from": old, "to": new}} for every snapshot field that differs"""
    changes = {}
    for key, value in fields.items():
        old, new = _audit_value(getattr(instance, key)), _audit_value(value)
        if key == "category_snapshot":
            old, new = old or "", new or ""
        if old != new:
            changes[SNAPSHOT_LABELS[key]] = {"from": old, "to": new}
    return changes


def _month_filter_from(year: int, month: int):
    """(year, month) or any later month"""
    return (InstanceModel.year > year) | ((InstanceModel.year == year) & (InstanceModel.month >= month))


class MonthGenerator:
    def __init__(self, db: Session):
        self.db = db
        self.events = InstanceEventRepository(db)

    def ensure_month(self, year: int, month: int) -> int:
        """
        Create missing instances for every active template, then run the
        monthly sinking-fund auto contribution.

        Returns:
            count of new instances
        """
        templates = self.db.query(TemplateModel).filter(TemplateModel.active == True).all()

        existing = {
            row.template_id for row in
            self.db.query(InstanceModel.template_id).filter(
                InstanceModel.year == year,
                InstanceModel.month == month,
            ).all()
        }

        count = 0
        for template in templates:
            if template.id in existing:
                continue
            instance = InstanceModel(
                template_id=template.id,
                year=year,
                month=month,
                status=STATUS_PENDING,
                note=template.default_note,
                **_snapshot_fields(template, year, month),
            )
            self.db.add(instance)
            self.db.flush()
            self.events.append_event(instance.id, "created", {
                "amount": float(instance.amount),
                "due_date": instance.due_date.isoformat(),
            })
            count += 1

        if count > 0:
            logger.info("Generated %d instance(s) for %d-%02d", count, year, month)

        AutoContributeUseCase(self.db).execute(year, month)
        return count

    def apply_template_to_month(self, template: TemplateModel, year: int, month: int) -> bool:
        """
        Overwrite the snapshot of this template's instance in (year, month).

        Status, payments and note are left alone. Returns False when the
        month has no instance of the template (e.g. archived template).
        """
        if template.active:
            self.ensure_month(year, month)

        instance = self.db.query(InstanceModel).filter(
            InstanceModel.template_id == template.id,
            InstanceModel.year == year,
            InstanceModel.month == month,
        ).first()
        if not instance:
            return False

        self._overwrite_snapshot(instance, template)
        self.db.flush()
        return True

    def apply_templates(self, year: int, month: int) -> int:
        """
        Push every template's current definition into the month's instances
        (archived templates included). Returns count updated.
        """
        self.ensure_month(year, month)

        instances = self.db.query(InstanceModel).filter(
            InstanceModel.year == year,
            InstanceModel.month == month,
        ).all()
        if not instances:
            return 0

        template_ids = {i.template_id for i in instances}
        by_id = {
            t.id: t for t in
            self.db.query(TemplateModel).filter(TemplateModel.id.in_(template_ids)).all()
        }

        count = 0
        for instance in instances:
            template = by_id.get(instance.template_id)
            if not template:
                continue
            self._overwrite_snapshot(instance, template)
            count += 1

        self.db.flush()
        return count

    def _overwrite_snapshot(self, instance: InstanceModel, template: TemplateModel) -> None:
        """Copy the template onto the instance; differences land in the audit trail as `edited`"""
        fields = _snapshot_fields(template, instance.year, instance.month)
        changes = _snapshot_changes(instance, fields)
        for key, value in fields.items():
            setattr(instance, key, value)
        if changes:
            self.events.append_event(instance.id, "edited", {"changes": changes, "source": "template"})

    def delete_template_from_month(self, template_id: str, year: int, month: int) -> None:
        """
        Delete a template together with its instances from (year, month)
        onward. Earlier months keep their history.
        """
        instance_ids = [
            row.id for row in
            self.db.query(InstanceModel.id).filter(
                InstanceModel.template_id == template_id,
                _month_filter_from(year, month),
            ).all()
        ]
        if instance_ids:
            self.db.query(PaymentEventModel).filter(
                PaymentEventModel.instance_id.in_(instance_ids)
            ).delete(synchronize_session=False)
            self.db.query(InstanceModel).filter(
                InstanceModel.id.in_(instance_ids)
            ).delete(synchronize_session=False)

        self.db.query(TemplateModel).filter(TemplateModel.id == template_id).delete(
            synchronize_session=False
        )
        self.db.flush()
        logger.info(
            "Template %s deleted from %d-%02d (%d instance(s))",
            template_id, year, month, len(instance_ids),
        )
