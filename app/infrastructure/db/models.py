"""
SQLAlchemy ORM models (bill ledger tables)
"""
import uuid
from datetime import date as date_type, datetime, timezone
from decimal import Decimal
from sqlalchemy import String, Integer, Text, Date, DateTime, Boolean, Numeric, JSON, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.infrastructure.db.session import Base


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


MONEY = Numeric(precision=12, scale=2)


class TemplateModel(Base):
    """
    Recurring bill definition. Instances snapshot it month by month.
    """
    __tablename__ = "templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(128), nullable=True)
    amount_default: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    due_day: Mapped[int] = mapped_column(Integer, nullable=False)  # 1..31, clamped per month

    autopay: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    essential: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    default_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Payee-matching hints for statement import
    match_payee_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    match_amount_tolerance: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class InstanceModel(Base):
    """
    One template materialized for a (year, month).

    Stored status is pending / paid / skipped; the status shown to users is
    derived from payment events on every read.
    """
    __tablename__ = "instances"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    template_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)

    name_snapshot: Mapped[str] = mapped_column(String(255), nullable=False)
    category_snapshot: Mapped[str | None] = mapped_column(String(128), nullable=True)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    due_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    autopay_snapshot: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    essential_snapshot: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    paid_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("template_id", "year", "month", name="uq_instance_template_month"),
        Index("ix_instances_month", "year", "month"),
        Index("ix_instances_due_status", "due_date", "status"),
    )


class PaymentEventModel(Base):
    """Append-only money applied toward an instance (partial payments allowed)"""
    __tablename__ = "payment_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    instance_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    paid_date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class InstanceEventModel(Base):
    """
    Audit trail for instances (created, marked_done, log_update, edited, ...)

    Immutable once written.
    """
    __tablename__ = "instance_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    instance_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    detail: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)


class MonthSettingModel(Base):
    """Per-month cash on hand at the start of the month"""
    __tablename__ = "month_settings"

    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    month: Mapped[int] = mapped_column(Integer, primary_key=True)
    cash_start: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class SinkingFundModel(Base):
    """
    Savings bucket for an irregular bill.

    Balance and monthly contribution are derived from sinking_events on read.
    """
    __tablename__ = "sinking_funds"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(128), nullable=True)
    target_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    due_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    cadence: Mapped[str] = mapped_column(String(32), nullable=False)  # monthly, quarterly, yearly, custom_months
    months_per_cycle: Mapped[int] = mapped_column(Integer, nullable=False)

    essential: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    auto_contribute: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class SinkingEventModel(Base):
    """Signed fund movements: CONTRIBUTION / ADJUSTMENT add, WITHDRAWAL subtracts"""
    __tablename__ = "sinking_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    fund_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    event_date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class ActionModel(Base):
    """
    Idempotency record for the action channel.

    id is the client-supplied action_id; result is replayed verbatim.
    """
    __tablename__ = "actions"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)  # ok, error
    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class MetaModel(Base):
    """Key/value store (app settings and markers)"""
    __tablename__ = "meta"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[dict | list | None] = mapped_column(JSON, nullable=True)


class AgentCommandLogModel(Base):
    """What the assistant proposed and what the user confirmed"""
    __tablename__ = "agent_command_log"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)
    user_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload: Mapped[dict | list | None] = mapped_column(JSON, nullable=True)
    result: Mapped[dict | list | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
