"""
Ledger math - pure date clamping, status derivation and month summary.

No I/O here: callers load instances and payment totals and pass plain records in.
"""
import calendar
from dataclasses import dataclass, asdict
from datetime import date
from decimal import Decimal
from typing import Iterable

WEEKS_PER_MONTH = Decimal("4.33")
DAYS_PER_MONTH_AVG = Decimal("30.4")

STATUS_PENDING = "pending"
STATUS_PAID = "paid"
STATUS_SKIPPED = "skipped"
STATUS_PARTIAL = "partial"
STORED_STATUSES = frozenset({STATUS_PENDING, STATUS_PAID, STATUS_SKIPPED})


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def days_in_month(year: int, month: int) -> int:
    return last_day_of_month(year, month)


def clamp_due_day(year: int, month: int, day: int) -> int:
    """Day 31 in February -> 28 (or 29); anything below 1 -> 1."""
    return min(max(1, day), last_day_of_month(year, month))


def to_date_string(year: int, month: int, day: int) -> str:
    return f"{year}-{month:02d}-{day:02d}"


def due_date_for(year: int, month: int, due_day: int) -> date:
    return date(year, month, clamp_due_day(year, month, due_day))


def add_months_to_date(value: str, months: int) -> str:
    """
    Shift an ISO date by N months, clamping the day like instance due dates.

    Example:
        >>> add_months_to_date("2026-01-31", 1)
        "2026-02-28"

    Malformed input is returned unchanged.
    """
    parts = value.split("-") if isinstance(value, str) else []
    if len(parts) != 3:
        return value
    try:
        year, month, day = (int(p) for p in parts)
    except ValueError:
        return value
    index = year * 12 + (month - 1) + months
    target_year, target_month = divmod(index, 12)
    target_month += 1
    return to_date_string(target_year, target_month, clamp_due_day(target_year, target_month, day))


def derive_status(stored_status: str, amount: Decimal, amount_paid: Decimal) -> str:
    if stored_status == STATUS_SKIPPED:
        return STATUS_SKIPPED
    if amount_paid <= 0:
        return STATUS_PENDING
    if amount_paid < amount:
        return STATUS_PARTIAL
    return STATUS_PAID


@dataclass(frozen=True)
class InstanceView:
    """Instance with payment-derived fields attached"""
    id: str
    template_id: str
    year: int
    month: int
    name_snapshot: str
    category_snapshot: str | None
    amount: Decimal
    due_date: date
    autopay_snapshot: bool
    essential_snapshot: bool
    status: str
    paid_date: date | None
    note: str | None
    amount_paid: Decimal
    amount_remaining: Decimal
    status_derived: str

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("amount", "amount_paid", "amount_remaining"):
            data[key] = float(data[key])
        data["due_date"] = self.due_date.isoformat()
        data["paid_date"] = self.paid_date.isoformat() if self.paid_date else None
        return data


@dataclass(frozen=True)
class MonthSummary:
    required_month: Decimal
    paid_month: Decimal
    remaining_month: Decimal
    need_daily_exact: Decimal
    need_weekly_exact: Decimal
    need_daily_plan: Decimal
    need_weekly_plan: Decimal
    free_for_month: bool
    days_in_month: int

    def to_dict(self) -> dict:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Decimal):
                data[key] = float(value)
        return data


def compute_summary(
    instances: Iterable[InstanceView],
    year: int,
    month: int,
    essentials_only: bool = False,
    today: date | None = None,
) -> MonthSummary:
    """
    Month totals.

    Skipped items are left out everywhere. "paid" adds min(amount, amount_paid)
    per item, so an overpaid bill never inflates the covered total.
    """
    items = [
        i for i in instances
        if i.status_derived != STATUS_SKIPPED and (i.essential_snapshot or not essentials_only)
    ]

    required = sum((i.amount for i in items), Decimal("0"))
    paid = sum((min(i.amount, i.amount_paid) for i in items), Decimal("0"))
    remaining = sum((i.amount_remaining for i in items), Decimal("0"))

    n_days = days_in_month(year, month)
    need_daily_exact = required / n_days
    need_weekly_exact = need_daily_exact * 7

    overdue_count = 0
    if today is not None and (today.year, today.month) == (year, month):
        overdue_count = sum(1 for i in items if i.amount_remaining > 0 and i.due_date < today)

    return MonthSummary(
        required_month=required,
        paid_month=paid,
        remaining_month=remaining,
        need_daily_exact=need_daily_exact,
        need_weekly_exact=need_weekly_exact,
        need_daily_plan=required / DAYS_PER_MONTH_AVG,
        need_weekly_plan=required / WEEKS_PER_MONTH,
        free_for_month=required > 0 and remaining == 0 and overdue_count == 0,
        days_in_month=n_days,
    )
