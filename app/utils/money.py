"""
Money helpers shared by the ledger, the API layer and fallback texts.

Usage:
    from app.utils.money import format_money, to_float

    format_money(1500)            -> "$1,500"
    format_money(12.5, decimals=2) -> "$12.50"
    to_float(Decimal("12.50"))    -> 12.5
"""
from decimal import Decimal, InvalidOperation


def to_decimal(value, default: Decimal | None = None) -> Decimal | None:
    """Parse int / float / str / Decimal into Decimal; default on garbage."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default
    if not result.is_finite():
        return default
    return result


def to_float(amount) -> float:
    """JSON-friendly number for API payloads."""
    if amount is None:
        return 0.0
    return float(amount)


def format_money(amount, currency_symbol: str = "$", decimals: int = 0) -> str:
    """
    Format an amount with thousands separators and a currency prefix.

    Args:
        amount: int / float / Decimal / str
        currency_symbol: prefix ("$" by default)
        decimals: digits after the point (0 - whole units, 2 - cents)
    """
    if isinstance(amount, str):
        amount = Decimal(amount)
    fmt = f"{{:,.{decimals}f}}"
    return f"{currency_symbol}{fmt.format(amount)}"
