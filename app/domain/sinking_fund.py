"""
Sinking fund amortization math.

A fund turns a future lump-sum bill into even monthly contributions. Nothing is
stored: balance comes from the signed event log, the rest is computed here.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

CADENCE_MONTHLY = "monthly"
CADENCE_QUARTERLY = "quarterly"
CADENCE_YEARLY = "yearly"
CADENCE_CUSTOM = "custom_months"
VALID_CADENCES = frozenset({CADENCE_MONTHLY, CADENCE_QUARTERLY, CADENCE_YEARLY, CADENCE_CUSTOM})

EVENT_CONTRIBUTION = "CONTRIBUTION"
EVENT_WITHDRAWAL = "WITHDRAWAL"
EVENT_ADJUSTMENT = "ADJUSTMENT"
EVENT_TYPES = frozenset({EVENT_CONTRIBUTION, EVENT_WITHDRAWAL, EVENT_ADJUSTMENT})

FUND_DUE = "due"
FUND_READY = "ready"
FUND_BEHIND = "behind"
FUND_ON_TRACK = "on_track"

_CENT = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def normalize_cadence(value: str | None) -> str:
    cadence = (value or CADENCE_YEARLY).strip().lower()
    if cadence == "custom":
        return CADENCE_CUSTOM
    return cadence if cadence in VALID_CADENCES else CADENCE_YEARLY


def resolve_months_per_cycle(cadence: str, months_per_cycle: int | None) -> int:
    if cadence == CADENCE_YEARLY:
        return 12
    if cadence == CADENCE_QUARTERLY:
        return 3
    if cadence == CADENCE_MONTHLY:
        return 1
    if isinstance(months_per_cycle, int) and months_per_cycle >= 1:
        return months_per_cycle
    return 1


def months_remaining(reference: date, due: date) -> int:
    """
    Whole months left to save, counting the current month when the due
    day-of-month has not passed the reference day yet.
    """
    if due <= reference:
        return 0
    months = (due.year - reference.year) * 12 + (due.month - reference.month)
    if due.day >= reference.day:
        months += 1
    return months


def signed_amount(event_type: str, amount: Decimal) -> Decimal:
    return -amount if event_type == EVENT_WITHDRAWAL else amount


@dataclass(frozen=True)
class SinkingFundView:
    balance: Decimal
    monthly_contrib: Decimal
    months_remaining: int
    expected_saved: Decimal
    progress_ratio: Decimal
    status: str


def compute_sinking_fund_view(
    target_amount: Decimal,
    due_date: date,
    cadence: str,
    months_per_cycle: int | None,
    balance: Decimal,
    reference: date,
) -> SinkingFundView:
    """
    Amortize the shortfall evenly over the months left and compare the balance
    with a straight-line expectation across one cadence cycle.
    """
    target = Decimal(target_amount)
    remaining = months_remaining(reference, due_date)

    monthly = Decimal("0")
    if target > 0 and balance < target and remaining > 0:
        monthly = (target - balance) / remaining

    cycle = resolve_months_per_cycle(cadence, months_per_cycle)
    elapsed = max(0, min(cycle, cycle - remaining))
    expected = target * elapsed / cycle if cycle > 0 else Decimal("0")
    progress = balance / target if target > 0 else Decimal("1")

    if due_date <= reference:
        status = FUND_DUE
    elif balance >= target:
        status = FUND_READY
    elif balance + _CENT < expected:
        status = FUND_BEHIND
    else:
        status = FUND_ON_TRACK

    return SinkingFundView(
        balance=balance,
        monthly_contrib=quantize_money(monthly),
        months_remaining=remaining,
        expected_saved=quantize_money(expected),
        progress_ratio=progress,
        status=status,
    )


def reference_date_for(year: int, month: int, today: date) -> date:
    """Today inside the current month, otherwise the 1st of the viewed month."""
    if (today.year, today.month) == (year, month):
        return today
    return date(year, month, 1)
