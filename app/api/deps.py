"""
FastAPI dependencies and helpers shared by the routers (DB session, month
query params, error mapping, advisor client)
"""
from datetime import date, datetime
from typing import NoReturn

from fastapi import HTTPException, status

from app.application.advisor import AdvisorClient
from app.application.errors import LedgerValidationError, NotFoundError
from app.config import APP_NAME, APP_VERSION, SCHEMA_VERSION, get_settings
from app.infrastructure.db.session import get_db as _get_db
from app.utils.validation import parse_year_month


# Re-export get_db for routers
get_db = _get_db


def get_advisor_client() -> AdvisorClient:
    return AdvisorClient(get_settings())


def require_month(year, month) -> tuple[int, int]:
    """
    Explicit (year, month) query params

    Raises:
        HTTPException(400): missing or invalid
    """
    parsed = parse_year_month(year, month)
    if not parsed:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid year/month")
    return parsed


def month_or_current(year, month) -> tuple[int, int]:
    """(year, month) from query params, or the current month when absent/invalid"""
    parsed = parse_year_month(year, month)
    if parsed:
        return parsed
    today = date.today()
    return today.year, today.month


def raise_http(error: Exception) -> NoReturn:
    """
    Map use-case errors onto HTTP: not found -> 404, validation -> 400

    Usage:
        try:
            ...
        except (LedgerValidationError, NotFoundError) as e:
            raise_http(e)
    """
    if isinstance(error, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, LedgerValidationError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    raise error


def envelope(**fields) -> dict:
    """Versioned wrapper for the stable /api/v1 contract"""
    return {
        "app": APP_NAME,
        "app_version": APP_VERSION,
        "schema_version": SCHEMA_VERSION,
        "generated_at": datetime.now().isoformat(timespec="seconds"),
        **fields,
    }


def period(year: int, month: int) -> str:
    return f"{year}-{month:02d}"
