"""Tests for instance use cases: payments, status changes, edits and the audit trail"""
from datetime import date
from decimal import Decimal

import pytest

from app.application.instances import (
    AddPaymentUseCase, InstanceNotFoundError, InstanceValidationError,
    MarkPaidUseCase, MarkPendingUseCase, PaymentNotFoundError, SkipInstanceUseCase,
    UndoPaymentUseCase, UpdateInstanceUseCase, get_instances, payments_for_month,
)
from app.application.templates import CreateTemplateUseCase
from app.infrastructure.db.models import PaymentEventModel
from app.infrastructure.eventlog.repository import InstanceEventRepository


@pytest.fixture
def instance(db_session):
    CreateTemplateUseCase(db_session).execute(2026, 3, name="Phone", amount_default=100, due_day=12)
    db_session.commit()
    return get_instances(db_session, 2026, 3)[0]


def _event_types(db, instance_id):
    return [e.type for e in InstanceEventRepository(db).list_for_instance(instance_id)]


def test_partial_payments_then_paid(db_session, instance):
    _, view = AddPaymentUseCase(db_session).execute(instance.id, 40, "2026-03-02")
    assert view.status_derived == "partial"
    assert view.amount_remaining == Decimal("60")

    _, view = AddPaymentUseCase(db_session).execute(instance.id, "70", "2026-03-09")
    db_session.commit()
    assert view.amount_paid == Decimal("110")
    assert view.amount_remaining == Decimal("0")
    assert view.status_derived == "paid"


def test_mark_paid_pays_remaining_once(db_session, instance):
    AddPaymentUseCase(db_session).execute(instance.id, 30, "2026-03-01")

    view = MarkPaidUseCase(db_session).execute(instance.id, "2026-03-05")
    assert view.amount_paid == Decimal("100")
    assert view.status == "paid"
    assert view.paid_date == date(2026, 3, 5)

    again = MarkPaidUseCase(db_session).execute(instance.id, "2026-03-06")
    db_session.commit()
    assert again.amount_paid == Decimal("100")
    amounts = sorted(p.amount for p in db_session.query(PaymentEventModel).all())
    assert amounts == [Decimal("30"), Decimal("70")]
    assert _event_types(db_session, instance.id).count("marked_done") == 2


def test_mark_pending_removes_payments(db_session, instance):
    MarkPaidUseCase(db_session).execute(instance.id)
    view = MarkPendingUseCase(db_session).execute(instance.id)
    db_session.commit()

    assert view.status_derived == "pending"
    assert view.paid_date is None
    assert db_session.query(PaymentEventModel).count() == 0
    assert "status_changed" in _event_types(db_session, instance.id)


def test_skip_instance(db_session, instance):
    view = SkipInstanceUseCase(db_session).execute(instance.id)
    db_session.commit()
    assert view.status_derived == "skipped"
    assert "skipped" in _event_types(db_session, instance.id)


def test_undo_payment(db_session, instance):
    payment, _ = AddPaymentUseCase(db_session).execute(instance.id, 25, "2026-03-03")
    payment_id = payment.id
    db_session.commit()

    instance_id, view = UndoPaymentUseCase(db_session).execute(payment_id)
    db_session.commit()
    assert instance_id == instance.id
    assert view.amount_paid == Decimal("0")
    assert "update_removed" in _event_types(db_session, instance.id)

    with pytest.raises(PaymentNotFoundError):
        UndoPaymentUseCase(db_session).execute(payment.id)


@pytest.mark.parametrize("amount", [0, -5, "abc", None])
def test_add_payment_rejects_bad_amount(db_session, instance, amount):
    with pytest.raises(InstanceValidationError, match="Amount must be > 0"):
        AddPaymentUseCase(db_session).execute(instance.id, amount)


def test_add_payment_rejects_bad_date(db_session, instance):
    with pytest.raises(InstanceValidationError, match="paid_date must be YYYY-MM-DD"):
        AddPaymentUseCase(db_session).execute(instance.id, 10, "2026-02-30")


def test_unknown_instance(db_session):
    with pytest.raises(InstanceNotFoundError):
        MarkPaidUseCase(db_session).execute("missing")


def test_update_fields_records_changes(db_session, instance):
    view = UpdateInstanceUseCase(db_session).execute(instance.id, {
        "amount": "120.50",
        "name": "Mobile",
        "due_date": "2026-03-15",
        "note": "new plan",
    })
    db_session.commit()

    assert view.amount == Decimal("120.50")
    assert view.name_snapshot == "Mobile"
    assert view.due_date == date(2026, 3, 15)
    assert view.note == "new plan"

    events = InstanceEventRepository(db_session).list_for_instance(instance.id)
    edited = next(e for e in events if e.type == "edited")
    assert edited.detail["changes"]["amount"] == {"from": 100.0, "to": 120.5}
    assert edited.detail["changes"]["name"] == {"from": "Phone", "to": "Mobile"}
    assert any(e.type == "note_updated" for e in events)


def test_update_status_unskip(db_session, instance):
    UpdateInstanceUseCase(db_session).execute(instance.id, {"status": "skipped"})
    UpdateInstanceUseCase(db_session).execute(instance.id, {"status": "pending"})
    db_session.commit()
    types = _event_types(db_session, instance.id)
    assert "skipped" in types
    assert "unskipped" in types


@pytest.mark.parametrize("fields,message", [
    ({}, "No fields to update"),
    ({"status": "partial"}, "Invalid status"),
    ({"amount": -1}, "Amount must be >= 0"),
    ({"name": "  "}, "Name is required"),
    ({"due_date": "03/15/2026"}, "due_date must be YYYY-MM-DD"),
])
def test_update_validation(db_session, instance, fields, message):
    with pytest.raises(InstanceValidationError, match=message):
        UpdateInstanceUseCase(db_session).execute(instance.id, fields)


def test_payments_for_month(db_session, instance):
    AddPaymentUseCase(db_session).execute(instance.id, 10, "2026-03-01")
    AddPaymentUseCase(db_session).execute(instance.id, 20, "2026-03-04")
    db_session.commit()

    rows = payments_for_month(db_session, 2026, 3)
    assert [r["amount"] for r in rows] == [20.0, 10.0]
    assert rows[0]["name"] == "Phone"
    assert payments_for_month(db_session, 2026, 4) == []
