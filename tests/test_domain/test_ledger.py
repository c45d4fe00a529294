"""
Tests for ledger math (due-date clamping, derived status, month summary)
"""
from datetime import date
from decimal import Decimal

import pytest

from app.domain.ledger import (
    InstanceView, add_months_to_date, clamp_due_day, compute_summary,
    derive_status, due_date_for,
)


def _view(amount, paid, status="pending", essential=True, due=date(2026, 3, 10), **kw) -> InstanceView:
    amount = Decimal(str(amount))
    paid = Decimal(str(paid))
    return InstanceView(
        id=kw.get("id", "i1"),
        template_id=kw.get("template_id", "t1"),
        year=due.year,
        month=due.month,
        name_snapshot=kw.get("name", "Bill"),
        category_snapshot=None,
        amount=amount,
        due_date=due,
        autopay_snapshot=False,
        essential_snapshot=essential,
        status=status,
        paid_date=None,
        note=None,
        amount_paid=paid,
        amount_remaining=max(Decimal("0"), amount - paid),
        status_derived=derive_status(status, amount, paid),
    )


@pytest.mark.parametrize("year,month,day,expected", [
    (2026, 2, 31, 28),
    (2028, 2, 31, 29),
    (2026, 4, 31, 30),
    (2026, 1, 31, 31),
    (2026, 5, 0, 1),
])
def test_clamp_due_day(year, month, day, expected):
    assert clamp_due_day(year, month, day) == expected


def test_due_day_31_in_february():
    """Day 31 lands on Feb 28 in a non-leap year"""
    assert due_date_for(2026, 2, 31).isoformat() == "2026-02-28"


def test_add_months_clamps_and_rolls_year():
    assert add_months_to_date("2026-01-31", 1) == "2026-02-28"
    assert add_months_to_date("2026-11-15", 3) == "2027-02-15"
    assert add_months_to_date("2026-03-31", 12) == "2027-03-31"


def test_add_months_leaves_malformed_input():
    assert add_months_to_date("not-a-date", 1) == "not-a-date"
    assert add_months_to_date("2026-01", 1) == "2026-01"


def test_derive_status_partition():
    amount = Decimal("100")
    assert derive_status("pending", amount, Decimal("0")) == "pending"
    assert derive_status("pending", amount, Decimal("40")) == "partial"
    assert derive_status("pending", amount, Decimal("100")) == "paid"
    assert derive_status("pending", amount, Decimal("110")) == "paid"
    assert derive_status("skipped", amount, Decimal("100")) == "skipped"
    # stored "paid" without payments is still pending
    assert derive_status("paid", amount, Decimal("0")) == "pending"


def test_overpaid_instance_counts_once_in_summary():
    """40 + 70 toward 100: paid, nothing remaining, summary paid capped at 100"""
    view = _view(100, 110)
    assert view.status_derived == "paid"
    assert view.amount_remaining == 0

    summary = compute_summary([view], 2026, 3)
    assert summary.required_month == Decimal("100")
    assert summary.paid_month == Decimal("100")
    assert summary.remaining_month == Decimal("0")


def test_summary_skips_skipped_and_filters_essentials():
    items = [
        _view(100, 0, id="a"),
        _view(50, 20, essential=False, id="b"),
        _view(300, 0, status="skipped", id="c"),
    ]

    everything = compute_summary(items, 2026, 3)
    assert everything.required_month == Decimal("150")
    assert everything.paid_month == Decimal("20")
    assert everything.remaining_month == Decimal("130")
    assert everything.days_in_month == 31

    essentials = compute_summary(items, 2026, 3, essentials_only=True)
    assert essentials.required_month == Decimal("100")
    assert essentials.paid_month == Decimal("0")


def test_summary_rates():
    summary = compute_summary([_view(310, 0)], 2026, 3)
    assert summary.need_daily_exact == Decimal("10")
    assert summary.need_weekly_exact == Decimal("70")
    assert round(summary.need_weekly_plan, 2) == round(Decimal("310") / Decimal("4.33"), 2)
    assert round(summary.need_daily_plan, 2) == round(Decimal("310") / Decimal("30.4"), 2)


def test_free_for_month():
    paid = _view(100, 100, due=date(2026, 3, 5))
    assert compute_summary([paid], 2026, 3, today=date(2026, 3, 20)).free_for_month is True

    open_item = _view(100, 0, due=date(2026, 3, 25))
    assert compute_summary([paid, open_item], 2026, 3, today=date(2026, 3, 20)).free_for_month is False

    # nothing due at all is not "free"
    assert compute_summary([], 2026, 3).free_for_month is False


def test_summary_to_dict_is_json_friendly():
    data = compute_summary([_view(100, 40)], 2026, 3).to_dict()
    assert data["required_month"] == 100.0
    assert data["paid_month"] == 40.0
    assert isinstance(data["need_daily_exact"], float)
    assert data["free_for_month"] is False
