"""Tests for the idempotent action channel"""
from datetime import date
from unittest.mock import patch

import pytest

from app.application.action_requests import (
    ACTION_TYPES, ActionValidationError, AddSinkingEventAction, UpdateInstanceFieldsAction,
    UpdateTemplateAction, parse_action,
)
from app.application.actions import ActionDispatcher, ActionRequestError
from app.application.instances import get_instances
from app.infrastructure.db.models import (
    ActionModel, InstanceModel, PaymentEventModel, SinkingEventModel, TemplateModel,
)

TODAY = date(2026, 3, 10)


@pytest.fixture
def dispatcher(db_session):
    return ActionDispatcher(db_session, today=TODAY)


@pytest.fixture
def instance_id(dispatcher, db_session):
    outcome = dispatcher.dispatch({
        "action_id": "seed-template",
        "type": "CREATE_TEMPLATE",
        "name": "Internet",
        "amount_default": 60,
        "due_day": 15,
        "year": 2026,
        "month": 3,
    })
    assert outcome.ok
    return get_instances(db_session, 2026, 3)[0].id


# === Parsing ===

def test_every_action_type_is_known():
    assert len(ACTION_TYPES) == 19
    assert "MARK_PAID" in ACTION_TYPES
    assert "GENERATE_MONTH" in ACTION_TYPES


def test_parse_unknown_type():
    with pytest.raises(ActionValidationError, match="Unknown action type"):
        parse_action({"action_id": "x", "type": "DROP_TABLES"})


def test_parse_missing_field():
    with pytest.raises(ActionValidationError, match="instance_id is required"):
        parse_action({"action_id": "x", "type": "MARK_PAID"})


def test_parse_month_range():
    with pytest.raises(ActionValidationError, match="month"):
        parse_action({"action_id": "x", "type": "GENERATE_MONTH", "year": 2026, "month": 13})


def test_parse_accepts_id_alias():
    request = parse_action({"action_id": "x", "type": "UPDATE_TEMPLATE", "id": "t1", "name": "Rent"})
    assert isinstance(request, UpdateTemplateAction)
    assert request.template_id == "t1"


def test_update_fields_only_sent_keys():
    request = parse_action({
        "action_id": "x", "type": "UPDATE_INSTANCE_FIELDS", "instance_id": "i1", "note": None,
    })
    assert isinstance(request, UpdateInstanceFieldsAction)
    assert request.changed_fields() == {"note": None}


def test_parse_sinking_event():
    request = parse_action({
        "action_id": "x", "type": "ADD_SINKING_EVENT", "fund_id": "f1",
        "event_type": "CONTRIBUTION", "amount": "12.5",
    })
    assert isinstance(request, AddSinkingEventAction)
    assert str(request.amount) == "12.5"


# === Dispatch ===

@pytest.mark.parametrize("body,message", [
    ({"type": "MARK_PAID"}, "action_id is required"),
    ({"action_id": "a"}, "type is required"),
    ("not a dict", "Invalid body"),
])
def test_dispatch_rejects_incomplete_body(dispatcher, db_session, body, message):
    with pytest.raises(ActionRequestError, match=message):
        dispatcher.dispatch(body)
    assert db_session.query(ActionModel).count() == 0


def test_mark_paid_is_idempotent(dispatcher, db_session, instance_id):
    body = {"action_id": "pay-1", "type": "MARK_PAID", "instance_id": instance_id}

    first = dispatcher.dispatch(body)
    second = dispatcher.dispatch(body)

    assert first.ok and not first.replayed
    assert second.replayed
    assert second.result == first.result
    assert first.result["instance"]["status_derived"] == "paid"
    assert db_session.query(PaymentEventModel).count() == 1


def test_replay_does_not_rerun(dispatcher, instance_id):
    body = {"action_id": "pay-2", "type": "ADD_PAYMENT", "instance_id": instance_id, "amount": 10}
    dispatcher.dispatch(body)

    with patch("app.application.actions.AddPaymentUseCase") as use_case:
        outcome = dispatcher.dispatch(body)
    use_case.assert_not_called()
    assert outcome.replayed
    assert outcome.result["payment"]["amount"] == 10.0


def test_failure_is_recorded_and_replayed(dispatcher, db_session):
    body = {"action_id": "bad-1", "type": "MARK_PAID", "instance_id": "missing"}

    first = dispatcher.dispatch(body)
    assert not first.ok
    assert first.result == {"ok": False, "error": "Instance not found"}

    stored = db_session.get(ActionModel, "bad-1")
    assert stored.status == "error"

    again = dispatcher.dispatch(body)
    assert again.replayed
    assert again.status == "error"


def test_failed_action_rolls_back_partial_work(dispatcher, db_session):
    outcome = dispatcher.dispatch({
        "action_id": "t-bad",
        "type": "CREATE_TEMPLATE",
        "name": "Rent",
        "amount_default": -5,
        "due_day": 1,
    })
    assert outcome.result == {"ok": False, "error": "Amount must be >= 0"}
    assert db_session.query(TemplateModel).count() == 0


def test_create_template_defaults_to_current_month(dispatcher, db_session):
    outcome = dispatcher.dispatch({
        "action_id": "t-1", "type": "CREATE_TEMPLATE",
        "name": "Gym", "amount_default": 30, "due_day": 31,
    })
    assert outcome.result["template"]["name"] == "Gym"
    instance = db_session.query(InstanceModel).one()
    assert (instance.year, instance.month) == (2026, 3)
    assert instance.due_date == date(2026, 3, 31)


def test_update_and_delete_template(dispatcher, db_session, instance_id):
    template_id = db_session.query(TemplateModel.id).scalar()

    updated = dispatcher.dispatch({
        "action_id": "t-upd", "type": "UPDATE_TEMPLATE", "id": template_id,
        "name": "Fiber", "amount_default": 70, "due_day": 15, "year": 2026, "month": 3,
    })
    assert updated.ok
    assert get_instances(db_session, 2026, 3)[0].name_snapshot == "Fiber"

    deleted = dispatcher.dispatch({
        "action_id": "t-del", "type": "DELETE_TEMPLATE", "template_id": template_id,
        "year": 2026, "month": 3,
    })
    assert deleted.result == {"ok": True}
    assert db_session.query(InstanceModel).count() == 0


def test_generate_and_apply(dispatcher, instance_id):
    generated = dispatcher.dispatch({"action_id": "g-1", "type": "GENERATE_MONTH", "year": 2026, "month": 4})
    assert generated.result == {"ok": True, "created": 1}

    applied = dispatcher.dispatch({"action_id": "ap-1", "type": "APPLY_TEMPLATES", "year": 2026, "month": 4})
    assert applied.result == {"ok": True, "updated": 1}


def test_update_instance_fields_and_skip(dispatcher, instance_id):
    edited = dispatcher.dispatch({
        "action_id": "e-1", "type": "UPDATE_INSTANCE_FIELDS", "instance_id": instance_id, "amount": 65,
    })
    assert edited.result["instance"]["amount"] == 65.0

    skipped = dispatcher.dispatch({"action_id": "s-1", "type": "SKIP_INSTANCE", "instance_id": instance_id})
    assert skipped.result["instance"]["status_derived"] == "skipped"


def test_undo_payment_and_mark_pending(dispatcher, db_session, instance_id):
    added = dispatcher.dispatch({
        "action_id": "p-1", "type": "ADD_PAYMENT", "instance_id": instance_id,
        "amount": 20, "paid_date": "2026-03-02",
    })
    payment_id = added.result["payment"]["id"]

    undone = dispatcher.dispatch({"action_id": "u-1", "type": "UNDO_PAYMENT", "payment_id": payment_id})
    assert undone.result["instance"]["amount_paid"] == 0.0

    dispatcher.dispatch({"action_id": "mp-1", "type": "MARK_PAID", "instance_id": instance_id})
    pending = dispatcher.dispatch({"action_id": "pe-1", "type": "MARK_PENDING", "instance_id": instance_id})
    assert pending.result["instance"]["status_derived"] == "pending"
    assert db_session.query(PaymentEventModel).count() == 0


def test_set_cash_start(dispatcher):
    outcome = dispatcher.dispatch({
        "action_id": "c-1", "type": "SET_CASH_START", "year": 2026, "month": 3, "cash_start": 2500,
    })
    assert outcome.result == {"ok": True}

    negative = dispatcher.dispatch({
        "action_id": "c-2", "type": "SET_CASH_START", "year": 2026, "month": 3, "cash_start": -1,
    })
    assert negative.result == {"ok": False, "error": "cash_start must be >= 0"}


def test_fund_lifecycle(dispatcher, db_session):
    created = dispatcher.dispatch({
        "action_id": "f-1", "type": "CREATE_FUND", "name": "Taxes",
        "target_amount": 1200, "due_date": "2026-08-31", "cadence": "yearly",
    })
    fund_id = created.result["fund"]["id"]

    contribution = dispatcher.dispatch({
        "action_id": "f-2", "type": "ADD_SINKING_EVENT", "fund_id": fund_id,
        "event_type": "CONTRIBUTION", "amount": 100, "event_date": "2026-03-01",
    })
    assert contribution.result["event"]["amount"] == 100.0

    paid = dispatcher.dispatch({
        "action_id": "f-3", "type": "MARK_FUND_PAID", "fund_id": fund_id,
        "amount": 100, "event_date": "2026-03-05",
    })
    assert paid.result["fund"]["due_date"] == "2027-08-31"

    updated = dispatcher.dispatch({
        "action_id": "f-4", "type": "UPDATE_FUND", "id": fund_id, "name": "Income tax",
        "target_amount": 1500, "due_date": "2027-08-31", "cadence": "yearly",
    })
    assert updated.result["fund"]["name"] == "Income tax"

    archived = dispatcher.dispatch({"action_id": "f-5", "type": "ARCHIVE_FUND", "fund_id": fund_id})
    assert archived.ok

    deleted = dispatcher.dispatch({"action_id": "f-6", "type": "DELETE_FUND", "fund_id": fund_id})
    assert deleted.ok
    assert db_session.query(SinkingEventModel).count() == 0


def test_archive_template(dispatcher, db_session, instance_id):
    template_id = db_session.query(TemplateModel.id).scalar()
    outcome = dispatcher.dispatch({"action_id": "a-1", "type": "ARCHIVE_TEMPLATE", "template_id": template_id})
    assert outcome.ok
    assert db_session.get(TemplateModel, template_id).active is False
