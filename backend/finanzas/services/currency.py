from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from finanzas.core.config import settings


class Currency(str, Enum):
    NIO = "NIO"
    USD = "USD"


LOCAL_CURRENCY = Currency.NIO
FOREIGN_CURRENCY = Currency.USD

_CENT = Decimal("0.01")


def normalize_currency(value: Any, default: Currency | None = LOCAL_CURRENCY) -> Currency | None:
    if isinstance(value, Currency):
        return value
    cleaned = str(value or "").strip().upper()
    try:
        return Currency(cleaned)
    except ValueError:
        return default


def _rate(rate: Decimal | None) -> Decimal:
    return Decimal(rate) if rate is not None else settings.usd_to_local_rate


def to_local(amount: Decimal | int | float | None, currency: Any, rate: Decimal | None = None) -> Decimal:
    value = Decimal(str(amount)) if isinstance(amount, float) else Decimal(amount or 0)
    if normalize_currency(currency) == LOCAL_CURRENCY:
        return value
    return value * _rate(rate)


def to_foreign(amount: Decimal | int | float | None, currency: Any, rate: Decimal | None = None) -> Decimal:
    value = Decimal(str(amount)) if isinstance(amount, float) else Decimal(amount or 0)
    if normalize_currency(currency) == FOREIGN_CURRENCY:
        return value
    return value / _rate(rate)


def convert(amount: Decimal | int | float | None, currency: Any, target: Any, rate: Decimal | None = None) -> Decimal:
    if normalize_currency(target) == FOREIGN_CURRENCY:
        return to_foreign(amount, currency, rate)
    return to_local(amount, currency, rate)


def both_currencies(amount: Decimal | int | float | None, currency: Any, rate: Decimal | None = None) -> dict[str, Decimal]:
    return {
        "nio": to_local(amount, currency, rate),
        "usd": to_foreign(amount, currency, rate),
    }


def round_money(value: Decimal | int | float | None) -> Decimal:
    """Round to cents; only used where amounts leave the engine for display."""
    if isinstance(value, float):
        value = Decimal(str(value))
    return Decimal(value or 0).quantize(_CENT, rounding=ROUND_HALF_UP)
