"""
Instance use cases - payments, status changes and field edits for one month's bills.

Amount paid / remaining / derived status are recomputed from payment_events
on every read (attach_payments). Every mutation writes an audit event.
Use cases flush; the caller commits.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Iterable
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.application.errors import LedgerValidationError, NotFoundError
from app.domain.ledger import (
    InstanceView, derive_status,
    STATUS_PENDING, STATUS_PAID, STATUS_SKIPPED, STORED_STATUSES,
)
from app.domain.sinking_fund import quantize_money
from app.infrastructure.db.models import InstanceModel, PaymentEventModel
from app.infrastructure.eventlog.repository import InstanceEventRepository
from app.utils.money import to_decimal, to_float
from app.utils.validation import clean_text, parse_date_string

logger = logging.getLogger(__name__)


class InstanceValidationError(LedgerValidationError):
    pass


class InstanceNotFoundError(NotFoundError):
    pass


class PaymentNotFoundError(NotFoundError):
    pass


# --- Reads ---

def _payment_totals(db: Session, instance_ids: list[str]) -> dict[str, Decimal]:
    if not instance_ids:
        return {}
    rows = (
        db.query(PaymentEventModel.instance_id, func.sum(PaymentEventModel.amount))
        .filter(PaymentEventModel.instance_id.in_(instance_ids))
        .group_by(PaymentEventModel.instance_id)
        .all()
    )
    return {iid: quantize_money(to_decimal(total, Decimal("0"))) for iid, total in rows}


def build_instance_view(instance: InstanceModel, amount_paid: Decimal) -> InstanceView:
    amount = Decimal(instance.amount)
    return InstanceView(
        id=instance.id,
        template_id=instance.template_id,
        year=instance.year,
        month=instance.month,
        name_snapshot=instance.name_snapshot,
        category_snapshot=instance.category_snapshot,
        amount=amount,
        due_date=instance.due_date,
        autopay_snapshot=instance.autopay_snapshot,
        essential_snapshot=instance.essential_snapshot,
        status=instance.status,
        paid_date=instance.paid_date,
        note=instance.note,
        amount_paid=amount_paid,
        amount_remaining=max(Decimal("0"), amount - amount_paid),
        status_derived=derive_status(instance.status, amount, amount_paid),
    )


def attach_payments(db: Session, instances: Iterable[InstanceModel]) -> list[InstanceView]:
    """Instances -> views with payment-derived fields (one grouped SUM query)"""
    instances = list(instances)
    totals = _payment_totals(db, [i.id for i in instances])
    return [build_instance_view(i, totals.get(i.id, Decimal("0"))) for i in instances]


def get_instance(db: Session, instance_id: str) -> InstanceModel:
    instance = db.query(InstanceModel).filter(InstanceModel.id == instance_id).first()
    if not instance:
        raise InstanceNotFoundError("Instance not found")
    return instance


def get_instance_view(db: Session, instance_id: str) -> InstanceView:
    return attach_payments(db, [get_instance(db, instance_id)])[0]


def get_instances(db: Session, year: int, month: int) -> list[InstanceView]:
    """Month instances ordered by due date, then name (case-insensitive)"""
    rows = (
        db.query(InstanceModel)
        .filter(InstanceModel.year == year, InstanceModel.month == month)
        .order_by(InstanceModel.due_date.asc(), func.lower(InstanceModel.name_snapshot).asc())
        .all()
    )
    return attach_payments(db, rows)


def serialize_payment(payment: PaymentEventModel, name: str | None = None) -> dict:
    data = {
        "id": payment.id,
        "instance_id": payment.instance_id,
        "amount": to_float(payment.amount),
        "paid_date": payment.paid_date.isoformat(),
        "created_at": payment.created_at.isoformat() if payment.created_at else None,
    }
    if name is not None:
        data["name"] = name
    return data


def payments_for_month(db: Session, year: int, month: int) -> list[dict]:
    """Payments logged against the month's instances, newest first"""
    rows = (
        db.query(PaymentEventModel, InstanceModel.name_snapshot)
        .join(InstanceModel, InstanceModel.id == PaymentEventModel.instance_id)
        .filter(InstanceModel.year == year, InstanceModel.month == month)
        .order_by(PaymentEventModel.paid_date.desc(), PaymentEventModel.created_at.desc())
        .all()
    )
    return [serialize_payment(payment, name) for payment, name in rows]


def _parse_date(value, label: str) -> date:
    try:
        return parse_date_string(value, label)
    except ValueError as e:
        raise InstanceValidationError(str(e))


# --- Mutations ---

class MarkPaidUseCase:
    """
    Mark an instance paid: log a payment for whatever is still owed (nothing
    when already covered), store status=paid and the paid date.

    Repeating it adds no further payment, so amount_paid never exceeds the
    amount through this path.
    """

    def __init__(self, db: Session):
        self.db = db
        self.events = InstanceEventRepository(db)

    def execute(self, instance_id: str, paid_date: str | None = None) -> InstanceView:
        paid_on = _parse_date(paid_date, "paid_date") if paid_date else date.today()
        instance = get_instance(self.db, instance_id)

        amount_paid = _payment_totals(self.db, [instance.id]).get(instance.id, Decimal("0"))
        remaining = max(Decimal("0"), Decimal(instance.amount) - amount_paid)

        payment_id = None
        if remaining > 0:
            payment = PaymentEventModel(instance_id=instance.id, amount=remaining, paid_date=paid_on)
            self.db.add(payment)
            self.db.flush()
            payment_id = payment.id

        instance.status = STATUS_PAID
        instance.paid_date = paid_on
        self.events.append_event(instance.id, "marked_done", {
            "paid_date": paid_on.isoformat(),
            "amount": to_float(instance.amount),
            "payment_id": payment_id,
        })
        return get_instance_view(self.db, instance.id)


class MarkPendingUseCase:
    """Undo paid: drop every payment and return to pending"""

    def __init__(self, db: Session):
        self.db = db
        self.events = InstanceEventRepository(db)

    def execute(self, instance_id: str) -> InstanceView:
        instance = get_instance(self.db, instance_id)
        previous = instance.status

        self.db.query(PaymentEventModel).filter(
            PaymentEventModel.instance_id == instance.id
        ).delete(synchronize_session=False)
        instance.status = STATUS_PENDING
        instance.paid_date = None
        self.events.append_event(instance.id, "status_changed", {"from": previous, "to": STATUS_PENDING})
        return get_instance_view(self.db, instance.id)


class SkipInstanceUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.events = InstanceEventRepository(db)

    def execute(self, instance_id: str) -> InstanceView:
        instance = get_instance(self.db, instance_id)
        previous = instance.status

        instance.status = STATUS_SKIPPED
        instance.paid_date = None
        self.events.append_event(instance.id, "skipped", {"from": previous, "to": STATUS_SKIPPED})
        return get_instance_view(self.db, instance.id)


class AddPaymentUseCase:
    """Log a (partial) payment toward an instance"""

    def __init__(self, db: Session):
        self.db = db
        self.events = InstanceEventRepository(db)

    def execute(
        self,
        instance_id: str,
        amount,
        paid_date: str | None = None,
    ) -> tuple[PaymentEventModel, InstanceView]:
        value = to_decimal(amount)
        if value is None or value <= 0:
            raise InstanceValidationError("Amount must be > 0")
        paid_on = _parse_date(paid_date, "paid_date") if paid_date else date.today()

        instance = get_instance(self.db, instance_id)
        payment = PaymentEventModel(
            instance_id=instance.id,
            amount=quantize_money(value),
            paid_date=paid_on,
        )
        self.db.add(payment)
        self.db.flush()

        self.events.append_event(instance.id, "log_update", {
            "amount": to_float(payment.amount),
            "date": paid_on.isoformat(),
            "payment_id": payment.id,
        })
        return payment, get_instance_view(self.db, instance.id)


class UndoPaymentUseCase:
    """Remove one payment event"""

    def __init__(self, db: Session):
        self.db = db
        self.events = InstanceEventRepository(db)

    def execute(self, payment_id: str) -> tuple[str, InstanceView | None]:
        payment = self.db.query(PaymentEventModel).filter(PaymentEventModel.id == payment_id).first()
        if not payment:
            raise PaymentNotFoundError("Payment not found")

        instance_id = payment.instance_id
        detail = {
            "amount": to_float(payment.amount),
            "date": payment.paid_date.isoformat(),
            "payment_id": payment.id,
        }
        self.db.delete(payment)
        self.db.flush()
        self.events.append_event(instance_id, "update_removed", detail)

        instance = self.db.query(InstanceModel).filter(InstanceModel.id == instance_id).first()
        view = attach_payments(self.db, [instance])[0] if instance else None
        return instance_id, view


class UpdateInstanceUseCase:
    """
    Edit a single instance. Only the keys present in `fields` are touched.

    Accepted keys: amount, name / name_snapshot, category / category_snapshot,
    due_date, status, paid_date, note.

    Audit trail:
        edited        {"changes": {"amount": {"from": 10.0, "to": 12.0}, ...}}
        note_updated  {"from": "...", "to": "..."}
        skipped / unskipped / status_changed  {"from": ..., "to": ...}
    """

    def __init__(self, db: Session):
        self.db = db
        self.events = InstanceEventRepository(db)

    def execute(self, instance_id: str, fields: dict) -> InstanceView:
        instance = get_instance(self.db, instance_id)
        changes = {}
        status_change = None
        note_change = None
        touched = False

        if "amount" in fields:
            value = to_decimal(fields["amount"])
            if value is None or value < 0:
                raise InstanceValidationError("Amount must be >= 0")
            value = quantize_money(value)
            if Decimal(instance.amount) != value:
                changes["amount"] = {"from": to_float(instance.amount), "to": to_float(value)}
            instance.amount = value
            touched = True

        if "name_snapshot" in fields or "name" in fields:
            raw = fields["name_snapshot"] if "name_snapshot" in fields else fields["name"]
            name = clean_text(raw)
            if not name:
                raise InstanceValidationError("Name is required")
            if instance.name_snapshot != name:
                changes["name"] = {"from": instance.name_snapshot, "to": name}
            instance.name_snapshot = name
            touched = True

        if "category_snapshot" in fields or "category" in fields:
            raw = fields["category_snapshot"] if "category_snapshot" in fields else fields["category"]
            category = clean_text(raw)
            if (instance.category_snapshot or "") != (category or ""):
                changes["category"] = {"from": instance.category_snapshot or "", "to": category or ""}
            instance.category_snapshot = category
            touched = True

        if "due_date" in fields:
            due = _parse_date(fields["due_date"], "due_date")
            if instance.due_date != due:
                changes["due_date"] = {"from": instance.due_date.isoformat(), "to": due.isoformat()}
            instance.due_date = due
            touched = True

        if "status" in fields:
            status = fields["status"]
            if status not in STORED_STATUSES:
                raise InstanceValidationError("Invalid status")
            if instance.status != status:
                status_change = {"from": instance.status, "to": status}
            instance.status = status
            touched = True

        if "paid_date" in fields:
            instance.paid_date = _parse_date(fields["paid_date"], "paid_date")
            touched = True

        if "note" in fields:
            note = fields["note"] or None
            if (instance.note or "") != (note or ""):
                note_change = {"from": instance.note or "", "to": note or ""}
            instance.note = note
            touched = True

        if not touched:
            raise InstanceValidationError("No fields to update")

        self.db.flush()

        if status_change:
            if status_change["to"] == STATUS_SKIPPED:
                event_type = "skipped"
            elif status_change["from"] == STATUS_SKIPPED:
                event_type = "unskipped"
            else:
                event_type = "status_changed"
            self.events.append_event(instance.id, event_type, status_change)
        if note_change:
            self.events.append_event(instance.id, "note_updated", note_change)
        if changes:
            self.events.append_event(instance.id, "edited", {"changes": changes})

        return get_instance_view(self.db, instance.id)
