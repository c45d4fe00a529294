"""
Backup export / import

The export is a single JSON document holding every bookkeeping table. Import
merges it into the current database by id:

- a template whose id exists with identical fields is reused;
- a template whose id exists with different fields is inserted under a
  fresh id and the incoming instances are re-pointed at it;
- every other row is insert-or-ignore by primary key;
- rows that fail validation are skipped, never fatal.

The whole import runs in the caller's transaction.
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from app.application.errors import LedgerValidationError
from app.application.instances import serialize_payment
from app.application.settings import get_app_settings, save_app_settings
from app.application.sinking_funds import serialize_fund, serialize_sinking_event
from app.application.templates import serialize_template, validate_template_input
from app.config import APP_NAME, APP_VERSION, SCHEMA_VERSION
from app.domain.ledger import STATUS_PENDING, STORED_STATUSES
from app.domain.sinking_fund import (
    EVENT_ADJUSTMENT, EVENT_CONTRIBUTION, EVENT_TYPES,
    normalize_cadence, quantize_money, resolve_months_per_cycle,
)
from app.infrastructure.db.models import (
    TemplateModel, InstanceModel, PaymentEventModel, InstanceEventModel,
    MonthSettingModel, SinkingFundModel, SinkingEventModel, new_id, utcnow,
)
from app.infrastructure.eventlog.repository import serialize_event
from app.utils.money import to_decimal, to_float
from app.utils.validation import clean_text, parse_date_string, parse_year_month, to_boolean

logger = logging.getLogger(__name__)

TEMPLATE_FIELDS = (
    "name", "category", "amount_default", "due_day", "autopay", "essential",
    "active", "default_note", "match_payee_key", "match_amount_tolerance",
)


class BackupValidationError(LedgerValidationError):
    pass


def serialize_instance_row(instance: InstanceModel) -> dict:
    return {
        "id": instance.id,
        "template_id": instance.template_id,
        "year": instance.year,
        "month": instance.month,
        "name_snapshot": instance.name_snapshot,
        "category_snapshot": instance.category_snapshot,
        "amount": to_float(instance.amount),
        "due_date": instance.due_date.isoformat(),
        "autopay_snapshot": instance.autopay_snapshot,
        "essential_snapshot": instance.essential_snapshot,
        "status": instance.status,
        "paid_date": instance.paid_date.isoformat() if instance.paid_date else None,
        "note": instance.note,
        "created_at": instance.created_at.isoformat() if instance.created_at else None,
        "updated_at": instance.updated_at.isoformat() if instance.updated_at else None,
    }


def export_backup(db: Session) -> dict:
    return {
        "app": APP_NAME,
        "app_version": APP_VERSION,
        "schema_version": SCHEMA_VERSION,
        "exported_at": datetime.now().isoformat(timespec="seconds"),
        "templates": [serialize_template(t) for t in db.query(TemplateModel).all()],
        "instances": [serialize_instance_row(i) for i in db.query(InstanceModel).all()],
        "payment_events": [serialize_payment(p) for p in db.query(PaymentEventModel).all()],
        "instance_events": [serialize_event(e) for e in db.query(InstanceEventModel).all()],
        "month_settings": [
            {
                "year": s.year,
                "month": s.month,
                "cash_start": to_float(s.cash_start),
                "updated_at": s.updated_at.isoformat() if s.updated_at else None,
            }
            for s in db.query(MonthSettingModel).all()
        ],
        "sinking_funds": [serialize_fund(f) for f in db.query(SinkingFundModel).all()],
        "sinking_events": [serialize_sinking_event(e) for e in db.query(SinkingEventModel).all()],
        "settings": get_app_settings(db),
    }


def _rows(payload: dict, key: str) -> list[dict]:
    value = payload.get(key)
    if not isinstance(value, list):
        return []
    return [row for row in value if isinstance(row, dict)]


def _timestamp(value, fallback: datetime) -> datetime:
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
        except ValueError:
            pass
    return fallback


def _date_or_none(value, label: str) -> date | None:
    try:
        return parse_date_string(value, label)
    except ValueError:
        return None


def _id_or_none(value) -> str | None:
    return clean_text(value)


def _same_template(existing: TemplateModel, values: dict) -> bool:
    return all(getattr(existing, field) == values[field] for field in TEMPLATE_FIELDS)


class ImportBackupUseCase:
    """
    Merge a backup document into the database.

    Returns:
        per-table count of inserted rows
    """

    def __init__(self, db: Session):
        self.db = db
        self.stamp = utcnow()

    def execute(self, payload: dict) -> dict:
        if not isinstance(payload, dict):
            raise BackupValidationError("Backup must be a JSON object")

        template_ids, inserted_templates = self._import_templates(_rows(payload, "templates"))
        counts = {
            "templates": inserted_templates,
            "instances": self._import_instances(_rows(payload, "instances"), template_ids),
            "payment_events": self._import_payments(_rows(payload, "payment_events")),
            "instance_events": self._import_instance_events(_rows(payload, "instance_events")),
            "month_settings": self._import_month_settings(_rows(payload, "month_settings")),
            "sinking_funds": self._import_funds(_rows(payload, "sinking_funds")),
            "sinking_events": self._import_sinking_events(_rows(payload, "sinking_events")),
        }

        settings = payload.get("settings")
        if isinstance(settings, dict):
            save_app_settings(self.db, settings)

        self.db.flush()
        logger.info("Backup imported: %s", counts)
        return counts

    def _insert_ignore(self, model, values: dict) -> int:
        stmt = sqlite_insert(model.__table__).values(**values).on_conflict_do_nothing()
        return self.db.execute(stmt).rowcount or 0

    def _import_templates(self, rows: list[dict]) -> tuple[dict, int]:
        """Returns (incoming id -> stored id, inserted count)"""
        id_map = {}
        inserted = 0
        for row in rows:
            try:
                values = validate_template_input(**{f: row.get(f) for f in TEMPLATE_FIELDS})
            except LedgerValidationError:
                continue

            incoming_id = _id_or_none(row.get("id"))
            existing = self.db.get(TemplateModel, incoming_id) if incoming_id else None
            if existing and _same_template(existing, values):
                id_map[incoming_id] = incoming_id
                continue

            template_id = incoming_id if incoming_id and not existing else new_id()
            self.db.add(TemplateModel(
                id=template_id,
                created_at=_timestamp(row.get("created_at"), self.stamp),
                updated_at=_timestamp(row.get("updated_at"), self.stamp),
                **values,
            ))
            self.db.flush()
            if incoming_id:
                id_map[incoming_id] = template_id
            inserted += 1

        return id_map, inserted

    def _import_instances(self, rows: list[dict], template_ids: dict) -> int:
        count = 0
        for row in rows:
            incoming_template = _id_or_none(row.get("template_id"))
            template_id = template_ids.get(incoming_template, incoming_template)
            if not template_id:
                continue
            parsed = parse_year_month(row.get("year"), row.get("month"))
            if not parsed:
                continue
            due = _date_or_none(row.get("due_date"), "due_date")
            if not due:
                continue
            amount = to_decimal(row.get("amount"), Decimal("0"))
            if amount is None or amount < 0:
                continue
            status = row.get("status") if row.get("status") in STORED_STATUSES else STATUS_PENDING

            year, month = parsed
            count += self._insert_ignore(InstanceModel, {
                "id": _id_or_none(row.get("id")) or new_id(),
                "template_id": template_id,
                "year": year,
                "month": month,
                "name_snapshot": clean_text(row.get("name_snapshot") or row.get("name")) or "",
                "category_snapshot": clean_text(row.get("category_snapshot") or row.get("category")),
                "amount": quantize_money(amount),
                "due_date": due,
                "autopay_snapshot": bool(row.get("autopay_snapshot")),
                "essential_snapshot": bool(row.get("essential_snapshot")),
                "status": status,
                "paid_date": _date_or_none(row.get("paid_date"), "paid_date"),
                "note": clean_text(row.get("note")),
                "created_at": _timestamp(row.get("created_at"), self.stamp),
                "updated_at": _timestamp(row.get("updated_at"), self.stamp),
            })
        return count

    def _import_payments(self, rows: list[dict]) -> int:
        """Payments are only kept for instances that exist after the instance import"""
        wanted = {_id_or_none(row.get("instance_id")) for row in rows} - {None}
        known = {
            r.id for r in
            self.db.query(InstanceModel.id).filter(InstanceModel.id.in_(wanted)).all()
        } if wanted else set()

        count = 0
        for row in rows:
            instance_id = _id_or_none(row.get("instance_id"))
            if instance_id not in known:
                continue
            amount = to_decimal(row.get("amount"))
            if amount is None or amount <= 0:
                continue
            paid = _date_or_none(row.get("paid_date"), "paid_date")
            if not paid:
                continue
            count += self._insert_ignore(PaymentEventModel, {
                "id": _id_or_none(row.get("id")) or new_id(),
                "instance_id": instance_id,
                "amount": quantize_money(amount),
                "paid_date": paid,
                "created_at": _timestamp(row.get("created_at"), self.stamp),
            })
        return count

    def _import_instance_events(self, rows: list[dict]) -> int:
        count = 0
        for row in rows:
            instance_id = _id_or_none(row.get("instance_id"))
            if not instance_id:
                continue
            detail = row.get("detail")
            if detail is not None and not isinstance(detail, dict):
                detail = {"value": detail}
            count += self._insert_ignore(InstanceEventModel, {
                "id": _id_or_none(row.get("id")) or new_id(),
                "instance_id": instance_id,
                "type": clean_text(row.get("type")) or "updated",
                "detail": detail,
                "created_at": _timestamp(row.get("created_at"), self.stamp),
            })
        return count

    def _import_month_settings(self, rows: list[dict]) -> int:
        """Month settings are upserted: the backup's cash_start wins"""
        count = 0
        for row in rows:
            parsed = parse_year_month(row.get("year"), row.get("month"))
            cash_start = to_decimal(row.get("cash_start"))
            if not parsed or cash_start is None or cash_start < 0:
                continue
            existing = self.db.get(MonthSettingModel, parsed)
            if existing:
                existing.cash_start = quantize_money(cash_start)
            else:
                self.db.add(MonthSettingModel(
                    year=parsed[0],
                    month=parsed[1],
                    cash_start=quantize_money(cash_start),
                    updated_at=_timestamp(row.get("updated_at"), self.stamp),
                ))
            count += 1
        self.db.flush()
        return count

    def _import_funds(self, rows: list[dict]) -> int:
        count = 0
        for row in rows:
            fund_id = _id_or_none(row.get("id"))
            name = clean_text(row.get("name"))
            target = to_decimal(row.get("target_amount"))
            due = _date_or_none(row.get("due_date"), "due_date")
            if not fund_id or not name or target is None or target < 0 or not due:
                continue
            cadence = normalize_cadence(row.get("cadence"))
            months = row.get("months_per_cycle")
            if isinstance(months, bool) or not isinstance(months, int):
                months = None
            count += self._insert_ignore(SinkingFundModel, {
                "id": fund_id,
                "name": name,
                "category": clean_text(row.get("category")),
                "target_amount": quantize_money(target),
                "due_date": due,
                "cadence": cadence,
                "months_per_cycle": resolve_months_per_cycle(cadence, months),
                "essential": to_boolean(row.get("essential"), True),
                "active": to_boolean(row.get("active"), True),
                "auto_contribute": to_boolean(row.get("auto_contribute"), True),
                "created_at": _timestamp(row.get("created_at"), self.stamp),
                "updated_at": _timestamp(row.get("updated_at"), self.stamp),
            })
        return count

    def _import_sinking_events(self, rows: list[dict]) -> int:
        count = 0
        for row in rows:
            event_id = _id_or_none(row.get("id"))
            fund_id = _id_or_none(row.get("fund_id"))
            if not event_id or not fund_id:
                continue
            event_type = str(row.get("type") or EVENT_CONTRIBUTION).upper()
            if event_type not in EVENT_TYPES:
                continue
            amount = to_decimal(row.get("amount"))
            if amount is None or (amount < 0 and event_type != EVENT_ADJUSTMENT):
                continue
            event_day = _date_or_none(row.get("event_date"), "event_date")
            if not event_day:
                continue
            count += self._insert_ignore(SinkingEventModel, {
                "id": event_id,
                "fund_id": fund_id,
                "amount": quantize_money(amount),
                "type": event_type,
                "event_date": event_day,
                "note": clean_text(row.get("note")),
                "created_at": _timestamp(row.get("created_at"), self.stamp),
            })
        return count
