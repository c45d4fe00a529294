"""
Bill template use cases

Creating a template materializes it into the chosen month; updating pushes
the new definition into that month's instance; deleting removes the chosen
month and everything later, keeping history.
"""
import logging
from decimal import Decimal
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.application.errors import LedgerValidationError, NotFoundError
from app.application.month_generator import MonthGenerator
from app.domain.sinking_fund import quantize_money
from app.infrastructure.db.models import TemplateModel
from app.utils.money import to_decimal, to_float
from app.utils.validation import clean_text, to_boolean

logger = logging.getLogger(__name__)


class TemplateValidationError(LedgerValidationError):
    pass


class TemplateNotFoundError(NotFoundError):
    pass


def _parse_due_day(value) -> int | None:
    if isinstance(value, bool):
        return None
    number = to_decimal(value)
    if number is None or number != number.to_integral_value():
        return None
    return int(number)


def validate_template_input(
    name,
    amount_default,
    due_day,
    category=None,
    autopay=None,
    essential=None,
    active=None,
    default_note=None,
    match_payee_key=None,
    match_amount_tolerance=None,
) -> dict:
    """
    Normalize template fields.

    Raises:
        TemplateValidationError: name missing, amount < 0, due day outside 1..31,
            negative match tolerance
    """
    name = clean_text(name)
    if not name:
        raise TemplateValidationError("Name is required")

    amount = to_decimal(amount_default)
    if amount is None or amount < 0:
        raise TemplateValidationError("Amount must be >= 0")

    day = _parse_due_day(due_day)
    if day is None or day < 1 or day > 31:
        raise TemplateValidationError("Due day must be 1-31")

    tolerance = to_decimal(match_amount_tolerance, Decimal("0")) \
        if match_amount_tolerance not in (None, "") else Decimal("0")
    if tolerance is None or tolerance < 0:
        raise TemplateValidationError("Match amount tolerance must be >= 0")

    return {
        "name": name,
        "category": clean_text(category),
        "amount_default": quantize_money(amount),
        "due_day": day,
        "autopay": to_boolean(autopay, False),
        "essential": to_boolean(essential, True),
        "active": to_boolean(active, True),
        "default_note": clean_text(default_note),
        "match_payee_key": clean_text(match_payee_key),
        "match_amount_tolerance": quantize_money(tolerance),
    }


def get_template(db: Session, template_id: str) -> TemplateModel:
    template = db.query(TemplateModel).filter(TemplateModel.id == template_id).first()
    if not template:
        raise TemplateNotFoundError("Template not found")
    return template


def list_templates(db: Session, active_only: bool = False) -> list[TemplateModel]:
    query = db.query(TemplateModel)
    if active_only:
        query = query.filter(TemplateModel.active == True)
    return query.order_by(func.lower(TemplateModel.name)).all()


def serialize_template(template: TemplateModel) -> dict:
    return {
        "id": template.id,
        "name": template.name,
        "category": template.category,
        "amount_default": to_float(template.amount_default),
        "due_day": template.due_day,
        "autopay": template.autopay,
        "essential": template.essential,
        "active": template.active,
        "default_note": template.default_note,
        "match_payee_key": template.match_payee_key,
        "match_amount_tolerance": to_float(template.match_amount_tolerance),
        "created_at": template.created_at.isoformat() if template.created_at else None,
        "updated_at": template.updated_at.isoformat() if template.updated_at else None,
    }


class CreateTemplateUseCase:
    """
    Create a template and materialize the given month

    Example:
        >>> CreateTemplateUseCase(db).execute(2026, 2, name="Rent", amount_default=1200, due_day=1)
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(self, year: int, month: int, **fields) -> TemplateModel:
        values = validate_template_input(**fields)
        template = TemplateModel(**values)
        self.db.add(template)
        self.db.flush()

        MonthGenerator(self.db).ensure_month(year, month)
        logger.info("Template created: %s (%s)", template.name, template.id)
        return template


class UpdateTemplateUseCase:
    """Replace a template's definition and apply it to (year, month)"""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, template_id: str, year: int, month: int, **fields) -> TemplateModel:
        values = validate_template_input(**fields)
        template = get_template(self.db, template_id)
        for key, value in values.items():
            setattr(template, key, value)
        self.db.flush()

        MonthGenerator(self.db).apply_template_to_month(template, year, month)
        return template


class ArchiveTemplateUseCase:
    """Stop generating the template; existing instances stay"""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, template_id: str) -> None:
        template = get_template(self.db, template_id)
        template.active = False
        self.db.flush()


class DeleteTemplateUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, template_id: str, year: int, month: int) -> None:
        get_template(self.db, template_id)
        MonthGenerator(self.db).delete_template_from_month(template_id, year, month)
