import uuid
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from finanzas.core.errors import InvalidInput

MAX_NOTE_LEN = 255
_MAX_AMOUNT = Decimal("9999999999.99")


def parse_amount(value: Any, field_name: str = "amount", positive: bool = False) -> Decimal:
    if value is None or isinstance(value, bool) or (isinstance(value, str) and not value.strip()):
        raise InvalidInput(f"{field_name} required")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidInput(f"Invalid {field_name}")
    if not amount.is_finite():
        raise InvalidInput(f"Invalid {field_name}")
    if amount.as_tuple().exponent < -2:
        raise InvalidInput(f"{field_name} must have at most two decimals")
    if positive and amount <= 0:
        raise InvalidInput(f"{field_name} must be greater than zero")
    if amount < 0:
        raise InvalidInput(f"{field_name} must be greater than or equal to zero")
    if amount > _MAX_AMOUNT:
        raise InvalidInput(f"{field_name} is too large")
    return amount


def parse_optional_amount(value: Any, field_name: str) -> Decimal | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidInput(f"Invalid {field_name}")
    if not amount.is_finite() or amount.as_tuple().exponent < -2:
        raise InvalidInput(f"Invalid {field_name}")
    return amount


def parse_day(value: Any, field_name: str = "date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value or "").strip()
    if not raw:
        raise InvalidInput(f"{field_name} required")
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        raise InvalidInput(f"Invalid {field_name}, expected YYYY-MM-DD")


def parse_optional_day(value: Any, field_name: str) -> date | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_day(value, field_name)


def parse_uuid_value(value: Any, field_name: str) -> str:
    raw = str(value or "").strip()
    if not raw:
        raise InvalidInput(f"{field_name} required")
    try:
        return str(uuid.UUID(raw))
    except (TypeError, ValueError, AttributeError):
        raise InvalidInput(f"Invalid {field_name}")


def parse_optional_uuid(value: Any, field_name: str) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_uuid_value(value, field_name)


def clean_text(value: Any, max_len: int = MAX_NOTE_LEN, field_name: str = "note") -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if len(text) > max_len:
        raise InvalidInput(f"{field_name} is too long (max {max_len})")
    return text
