"""Tests for sinking fund amortization"""
from datetime import date
from decimal import Decimal

from app.domain.sinking_fund import (
    FUND_BEHIND, FUND_DUE, FUND_ON_TRACK, FUND_READY,
    compute_sinking_fund_view, months_remaining, normalize_cadence,
    reference_date_for, resolve_months_per_cycle, signed_amount,
)


def test_months_remaining_counts_current_month_until_due_day():
    ref = date(2026, 1, 15)
    assert months_remaining(ref, date(2026, 7, 10)) == 6
    assert months_remaining(ref, date(2026, 7, 20)) == 7
    assert months_remaining(ref, date(2026, 1, 15)) == 0
    assert months_remaining(ref, date(2025, 12, 1)) == 0


def test_cadence_normalization():
    assert normalize_cadence("custom") == "custom_months"
    assert normalize_cadence(" Quarterly ") == "quarterly"
    assert normalize_cadence("weekly") == "yearly"
    assert normalize_cadence(None) == "yearly"

    assert resolve_months_per_cycle("yearly", 5) == 12
    assert resolve_months_per_cycle("quarterly", None) == 3
    assert resolve_months_per_cycle("custom_months", 6) == 6
    assert resolve_months_per_cycle("custom_months", 0) == 1


def test_withdrawals_are_negative():
    assert signed_amount("WITHDRAWAL", Decimal("50")) == Decimal("-50")
    assert signed_amount("CONTRIBUTION", Decimal("50")) == Decimal("50")
    assert signed_amount("ADJUSTMENT", Decimal("-5")) == Decimal("-5")


def test_1200_over_six_months():
    """target 1200 due in 6 months, nothing saved -> 200 a month"""
    view = compute_sinking_fund_view(
        target_amount=Decimal("1200"),
        due_date=date(2026, 7, 10),
        cadence="custom_months",
        months_per_cycle=6,
        balance=Decimal("0"),
        reference=date(2026, 1, 15),
    )
    assert view.months_remaining == 6
    assert view.monthly_contrib == Decimal("200.00")
    assert view.status == FUND_ON_TRACK

    # one month and one contribution later the fund is still on track
    later = compute_sinking_fund_view(
        target_amount=Decimal("1200"),
        due_date=date(2026, 7, 10),
        cadence="custom_months",
        months_per_cycle=6,
        balance=Decimal("200"),
        reference=date(2026, 2, 15),
    )
    assert later.expected_saved == Decimal("200.00")
    assert later.monthly_contrib == Decimal("200.00")
    assert later.status == FUND_ON_TRACK


def test_fund_statuses():
    common = dict(target_amount=Decimal("1200"), cadence="yearly", months_per_cycle=None)

    due = compute_sinking_fund_view(
        due_date=date(2026, 1, 10), balance=Decimal("0"), reference=date(2026, 1, 15), **common
    )
    assert due.status == FUND_DUE
    assert due.monthly_contrib == Decimal("0.00")

    ready = compute_sinking_fund_view(
        due_date=date(2026, 6, 1), balance=Decimal("1200"), reference=date(2026, 1, 15), **common
    )
    assert ready.status == FUND_READY
    assert ready.progress_ratio == Decimal("1")

    # 5 months left of a 12-month cycle: 700 expected by now
    behind = compute_sinking_fund_view(
        due_date=date(2026, 6, 1), balance=Decimal("100"), reference=date(2026, 1, 15), **common
    )
    assert behind.months_remaining == 5
    assert behind.expected_saved == Decimal("700.00")
    assert behind.status == FUND_BEHIND


def test_zero_target_is_complete():
    view = compute_sinking_fund_view(
        target_amount=Decimal("0"), due_date=date(2026, 6, 1), cadence="monthly",
        months_per_cycle=None, balance=Decimal("0"), reference=date(2026, 1, 1),
    )
    assert view.progress_ratio == Decimal("1")
    assert view.monthly_contrib == Decimal("0.00")


def test_reference_date():
    today = date(2026, 3, 18)
    assert reference_date_for(2026, 3, today) == today
    assert reference_date_for(2026, 5, today) == date(2026, 5, 1)
