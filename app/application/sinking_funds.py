"""
Sinking fund use cases - savings buckets for irregular bills

Balances and required contributions are always derived from sinking_events;
nothing here stores a running total. Use cases flush but do not commit: the
caller (route or action dispatcher) owns the transaction.
"""
import logging
from datetime import date
from decimal import Decimal
from sqlalchemy.orm import Session
from sqlalchemy import func, case

from app.application.errors import LedgerValidationError, NotFoundError
from app.domain.ledger import add_months_to_date, last_day_of_month
from app.domain.sinking_fund import (
    EVENT_CONTRIBUTION, EVENT_WITHDRAWAL, EVENT_TYPES,
    compute_sinking_fund_view, normalize_cadence, resolve_months_per_cycle,
    reference_date_for, quantize_money,
)
from app.infrastructure.db.models import SinkingFundModel, SinkingEventModel
from app.utils.money import to_decimal, to_float
from app.utils.validation import clean_text, parse_date_string, to_boolean

logger = logging.getLogger(__name__)

AUTO_CONTRIBUTION_NOTE = "Auto contribution"
FUND_PAID_NOTE = "Bill paid"


class SinkingFundValidationError(LedgerValidationError):
    pass


class SinkingFundNotFoundError(NotFoundError):
    pass


def validate_fund_input(
    name,
    target_amount,
    due_date,
    cadence=None,
    months_per_cycle=None,
    category=None,
    essential=None,
    active=None,
    auto_contribute=None,
) -> dict:
    """Normalize fund fields; raises SinkingFundValidationError."""
    name = clean_text(name)
    if not name:
        raise SinkingFundValidationError("Name is required")

    target = to_decimal(target_amount)
    if target is None or target < 0:
        raise SinkingFundValidationError("Target amount must be >= 0")

    try:
        due = parse_date_string(clean_text(due_date) or "", "due_date")
    except ValueError as e:
        raise SinkingFundValidationError(str(e))

    cadence = normalize_cadence(cadence)
    try:
        months = int(months_per_cycle) if months_per_cycle is not None else None
    except (TypeError, ValueError):
        months = None

    return {
        "name": name,
        "category": clean_text(category),
        "target_amount": quantize_money(target),
        "due_date": due,
        "cadence": cadence,
        "months_per_cycle": resolve_months_per_cycle(cadence, months),
        "essential": to_boolean(essential, True),
        "active": to_boolean(active, True),
        "auto_contribute": to_boolean(auto_contribute, True),
    }


def get_fund(db: Session, fund_id: str) -> SinkingFundModel:
    fund = db.query(SinkingFundModel).filter(SinkingFundModel.id == fund_id).first()
    if not fund:
        raise SinkingFundNotFoundError("Fund not found")
    return fund


def get_balances(db: Session) -> dict[str, Decimal]:
    """Signed sum per fund: contributions/adjustments minus withdrawals"""
    signed = case(
        (SinkingEventModel.type == EVENT_WITHDRAWAL, -SinkingEventModel.amount),
        else_=SinkingEventModel.amount,
    )
    rows = (
        db.query(SinkingEventModel.fund_id, func.sum(signed))
        .group_by(SinkingEventModel.fund_id)
        .all()
    )
    return {fund_id: quantize_money(to_decimal(total, Decimal("0"))) for fund_id, total in rows}


def serialize_fund(fund: SinkingFundModel) -> dict:
    return {
        "id": fund.id,
        "name": fund.name,
        "category": fund.category,
        "target_amount": to_float(fund.target_amount),
        "due_date": fund.due_date.isoformat(),
        "cadence": fund.cadence,
        "months_per_cycle": fund.months_per_cycle,
        "essential": fund.essential,
        "active": fund.active,
        "auto_contribute": fund.auto_contribute,
        "created_at": fund.created_at.isoformat() if fund.created_at else None,
        "updated_at": fund.updated_at.isoformat() if fund.updated_at else None,
    }


def serialize_sinking_event(event: SinkingEventModel) -> dict:
    return {
        "id": event.id,
        "fund_id": event.fund_id,
        "amount": to_float(event.amount),
        "type": event.type,
        "event_date": event.event_date.isoformat(),
        "note": event.note,
        "created_at": event.created_at.isoformat() if event.created_at else None,
    }


def fund_view(fund: SinkingFundModel, balance: Decimal, reference: date) -> dict:
    view = compute_sinking_fund_view(
        target_amount=fund.target_amount,
        due_date=fund.due_date,
        cadence=fund.cadence,
        months_per_cycle=fund.months_per_cycle,
        balance=balance,
        reference=reference,
    )
    data = serialize_fund(fund)
    data.update(
        balance=to_float(view.balance),
        monthly_contrib=to_float(view.monthly_contrib),
        months_remaining=view.months_remaining,
        status=view.status,
        progress_ratio=to_float(view.progress_ratio),
        expected_saved=to_float(view.expected_saved),
    )
    return data


def list_fund_views(
    db: Session,
    year: int,
    month: int,
    today: date | None = None,
    include_inactive: bool = False,
) -> list[dict]:
    """Funds with derived balance / contribution / status as of the viewed month"""
    reference = reference_date_for(year, month, today or date.today())
    query = db.query(SinkingFundModel)
    if not include_inactive:
        query = query.filter(SinkingFundModel.active == True)
    funds = query.order_by(SinkingFundModel.due_date.asc()).all()
    balances = get_balances(db)
    return [fund_view(f, balances.get(f.id, Decimal("0")), reference) for f in funds]


def list_fund_events(db: Session, fund_id: str) -> list[dict]:
    events = (
        db.query(SinkingEventModel)
        .filter(SinkingEventModel.fund_id == fund_id)
        .order_by(SinkingEventModel.event_date.desc(), SinkingEventModel.created_at.desc())
        .all()
    )
    return [serialize_sinking_event(e) for e in events]


class CreateSinkingFundUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, **fields) -> SinkingFundModel:
        values = validate_fund_input(**fields)
        fund = SinkingFundModel(**values)
        self.db.add(fund)
        self.db.flush()
        logger.info("Sinking fund created: %s (%s)", fund.name, fund.id)
        return fund


class UpdateSinkingFundUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, fund_id: str, **fields) -> SinkingFundModel:
        values = validate_fund_input(**fields)
        fund = get_fund(self.db, fund_id)
        for key, value in values.items():
            setattr(fund, key, value)
        self.db.flush()
        return fund


class ArchiveSinkingFundUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, fund_id: str) -> None:
        fund = get_fund(self.db, fund_id)
        fund.active = False
        self.db.flush()


class DeleteSinkingFundUseCase:
    """Delete a fund together with its event log"""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, fund_id: str) -> None:
        get_fund(self.db, fund_id)
        self.db.query(SinkingEventModel).filter(SinkingEventModel.fund_id == fund_id).delete(
            synchronize_session=False
        )
        self.db.query(SinkingFundModel).filter(SinkingFundModel.id == fund_id).delete(
            synchronize_session=False
        )
        self.db.flush()


class AddSinkingEventUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        fund_id: str,
        event_type: str,
        amount,
        event_date: str | None = None,
        note: str | None = None,
    ) -> SinkingEventModel:
        get_fund(self.db, fund_id)

        event_type = (event_type or "").upper()
        if event_type not in EVENT_TYPES:
            raise SinkingFundValidationError("Invalid event_type")

        value = to_decimal(amount)
        if value is None or value == 0:
            raise SinkingFundValidationError("amount must be non-zero")
        if event_type != "ADJUSTMENT" and value < 0:
            raise SinkingFundValidationError("amount must be positive")

        try:
            day = parse_date_string(event_date, "event_date") if event_date else date.today()
        except ValueError as e:
            raise SinkingFundValidationError(str(e))

        event = SinkingEventModel(
            fund_id=fund_id,
            amount=quantize_money(value),
            type=event_type,
            event_date=day,
            note=clean_text(note),
        )
        self.db.add(event)
        self.db.flush()
        return event


class MarkFundPaidUseCase:
    """
    The irregular bill was paid out of the fund: withdraw and roll the due
    date forward by one cadence cycle (clamped like instance due dates).
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        fund_id: str,
        amount=None,
        event_date: str | None = None,
    ) -> tuple[SinkingEventModel, SinkingFundModel]:
        fund = get_fund(self.db, fund_id)

        value = to_decimal(amount) if amount is not None else Decimal(fund.target_amount)
        if value is None or value <= 0:
            raise SinkingFundValidationError("amount must be > 0")

        try:
            day = parse_date_string(event_date, "event_date") if event_date else date.today()
        except ValueError as e:
            raise SinkingFundValidationError(str(e))

        event = SinkingEventModel(
            fund_id=fund.id,
            amount=quantize_money(value),
            type=EVENT_WITHDRAWAL,
            event_date=day,
            note=FUND_PAID_NOTE,
        )
        self.db.add(event)

        months = resolve_months_per_cycle(fund.cadence, fund.months_per_cycle)
        fund.due_date = date.fromisoformat(add_months_to_date(fund.due_date.isoformat(), months))
        self.db.flush()
        return event, fund


class AutoContributeUseCase:
    """
    Once per calendar month, top up every auto-contributing fund by its
    computed monthly requirement. A month that already has a CONTRIBUTION
    (manual or automatic) is left alone.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(self, year: int, month: int) -> int:
        month_start = date(year, month, 1)
        month_end = date(year, month, last_day_of_month(year, month))

        funds = self.db.query(SinkingFundModel).filter(
            SinkingFundModel.active == True,
            SinkingFundModel.auto_contribute == True,
        ).all()
        if not funds:
            return 0

        balances = get_balances(self.db)
        count = 0
        for fund in funds:
            if self._has_contribution(fund.id, month_start, month_end):
                continue
            view = compute_sinking_fund_view(
                target_amount=fund.target_amount,
                due_date=fund.due_date,
                cadence=fund.cadence,
                months_per_cycle=fund.months_per_cycle,
                balance=balances.get(fund.id, Decimal("0")),
                reference=month_start,
            )
            if view.monthly_contrib <= 0:
                continue
            self.db.add(SinkingEventModel(
                fund_id=fund.id,
                amount=view.monthly_contrib,
                type=EVENT_CONTRIBUTION,
                event_date=month_start,
                note=AUTO_CONTRIBUTION_NOTE,
            ))
            count += 1

        if count > 0:
            self.db.flush()
            logger.info("Auto contribution: %d fund(s) for %d-%02d", count, year, month)
        return count

    def _has_contribution(self, fund_id: str, start: date, end: date) -> bool:
        return self.db.query(SinkingEventModel.id).filter(
            SinkingEventModel.fund_id == fund_id,
            SinkingEventModel.type == EVENT_CONTRIBUTION,
            SinkingEventModel.event_date >= start,
            SinkingEventModel.event_date <= end,
        ).first() is not None
