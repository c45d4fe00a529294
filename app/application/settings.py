"""
Month settings (cash on hand) and app-level preferences stored in meta
"""
from decimal import Decimal
from sqlalchemy.orm import Session

from app.application.errors import LedgerValidationError
from app.domain.sinking_fund import quantize_money
from app.infrastructure.db.models import MonthSettingModel, MetaModel
from app.utils.money import to_decimal, to_float
from app.utils.validation import parse_year_month

SETTINGS_KEY = "settings"
ALLOWED_SORTS = ("due_date", "amount", "name", "status")
DEFAULT_DUE_SOON_DAYS = 7


class SettingsValidationError(LedgerValidationError):
    pass


def get_month_settings(db: Session, year: int, month: int) -> dict:
    row = db.query(MonthSettingModel).filter(
        MonthSettingModel.year == year,
        MonthSettingModel.month == month,
    ).first()
    return {
        "year": year,
        "month": month,
        "cash_start": to_float(row.cash_start) if row else 0.0,
    }


class SetCashStartUseCase:
    """Upsert the cash on hand for a month"""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, year, month, cash_start) -> MonthSettingModel:
        parsed = parse_year_month(year, month)
        if not parsed:
            raise SettingsValidationError("year and month are required")
        value = to_decimal(cash_start)
        if value is None or value < 0:
            raise SettingsValidationError("cash_start must be >= 0")

        y, m = parsed
        row = self.db.get(MonthSettingModel, (y, m))
        if row:
            row.cash_start = quantize_money(value)
        else:
            row = MonthSettingModel(year=y, month=m, cash_start=quantize_money(value))
            self.db.add(row)
        self.db.flush()
        return row


def get_meta(db: Session, key: str):
    row = db.get(MetaModel, key)
    return row.value if row else None


def set_meta(db: Session, key: str, value) -> None:
    row = db.get(MetaModel, key)
    if row:
        row.value = value
    else:
        db.add(MetaModel(key=key, value=value))
    db.flush()


def _default_settings() -> dict:
    return {
        "defaults": {"sort": "due_date", "dueSoonDays": DEFAULT_DUE_SOON_DAYS, "defaultPeriod": "month"},
        "categories": [],
        "firstRunCompleted": False,
        "hasCompletedOnboarding": False,
    }


def get_app_settings(db: Session) -> dict:
    stored = get_meta(db, SETTINGS_KEY) or {}
    settings = _default_settings()
    if isinstance(stored.get("defaults"), dict):
        settings["defaults"] = stored["defaults"]
    if isinstance(stored.get("categories"), list):
        settings["categories"] = stored["categories"]
    settings["firstRunCompleted"] = bool(stored.get("firstRunCompleted"))
    settings["hasCompletedOnboarding"] = bool(
        stored.get("hasCompletedOnboarding", stored.get("firstRunCompleted"))
    )
    return settings


def normalize_app_settings(body: dict) -> dict:
    """Clamp user preferences into the supported range; unknown values fall back to defaults."""
    defaults = body.get("defaults") or {}
    sort = defaults.get("sort") if defaults.get("sort") in ALLOWED_SORTS else "due_date"

    due_soon = to_decimal(defaults.get("dueSoonDays"), Decimal(DEFAULT_DUE_SOON_DAYS))
    if due_soon is None or due_soon < 1 or due_soon > 31:
        due_soon = Decimal(DEFAULT_DUE_SOON_DAYS)

    categories = body.get("categories")
    if isinstance(categories, list):
        categories = [str(c).strip() for c in categories if c is not None and str(c).strip()]
    else:
        categories = []

    first_run = body.get("firstRunCompleted") is True
    return {
        "defaults": {"sort": sort, "dueSoonDays": int(due_soon), "defaultPeriod": "month"},
        "categories": categories,
        "firstRunCompleted": first_run,
        "hasCompletedOnboarding": body.get("hasCompletedOnboarding") is True or first_run,
    }


def save_app_settings(db: Session, body: dict) -> dict:
    payload = normalize_app_settings(body or {})
    set_meta(db, SETTINGS_KEY, payload)
    return payload
