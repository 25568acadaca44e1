import calendar
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from finanzas.core.errors import InvalidInput
from finanzas.db.repository import Repository
from finanzas.services.currency import (
    LOCAL_CURRENCY,
    both_currencies,
    convert,
    normalize_currency,
    to_local,
)
from finanzas.services.ledger import ACCOUNT_COLUMNS, MOVEMENT_COLUMNS, TRANSFER_COLUMNS
from finanzas.services.parsing import parse_optional_amount, parse_optional_day

DATASETS = ("incomes", "expenses", "balance")
NAMED_RANGES = ("current-month", "current-year")

ZERO = Decimal("0")


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def resolve_range(
    from_date: Any = None,
    to_date: Any = None,
    range_name: str | None = None,
    today: date | None = None,
) -> tuple[date | None, date | None]:
    if range_name:
        if range_name not in NAMED_RANGES:
            raise InvalidInput(f"Invalid range: {range_name}")
        current = today or today_utc()
        if range_name == "current-month":
            last_day = calendar.monthrange(current.year, current.month)[1]
            return date(current.year, current.month, 1), date(current.year, current.month, last_day)
        return date(current.year, 1, 1), date(current.year, 12, 31)

    start = parse_optional_day(from_date, "from")
    end = parse_optional_day(to_date, "to")
    if start and end and start > end:
        raise InvalidInput("from must be on or before to")
    return start, end


def month_key(value: Any) -> str | None:
    if isinstance(value, (date, datetime)):
        return f"{value.year:04d}-{value.month:02d}"
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        parsed = date.fromisoformat(raw[:10])
    except ValueError:
        return None
    return f"{parsed.year:04d}-{parsed.month:02d}"


def _pool_type(value: Any) -> str:
    return "bank" if value == "bank" else "cash"


def _currency_code(row: dict[str, Any]) -> str:
    return str(row.get("currency") or LOCAL_CURRENCY.value).strip().upper()


def totals_by_currency(rows: list[dict[str, Any]]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = {}
    for row in rows:
        code = _currency_code(row)
        totals[code] = totals.get(code, ZERO) + Decimal(row.get("amount") or 0)
    return totals


def totals_by_pool_type(rows: list[dict[str, Any]]) -> dict[str, Decimal]:
    totals = {"total": ZERO, "bank": ZERO, "cash": ZERO}
    for row in rows:
        amount = to_local(row.get("amount"), row.get("currency"))
        totals["total"] += amount
        totals[_pool_type(row.get("source"))] += amount
    return totals


def transfer_totals(transfers: list[dict[str, Any]]) -> dict[str, dict[str, Decimal]]:
    totals = {
        "bank": {"incoming": ZERO, "outgoing": ZERO},
        "cash": {"incoming": ZERO, "outgoing": ZERO},
    }
    for row in transfers:
        amount = to_local(row.get("amount"), row.get("currency"))
        totals[_pool_type(row.get("from_type"))]["outgoing"] += amount
        totals[_pool_type(row.get("to_type"))]["incoming"] += amount
    return totals


def _empty_bucket(month: str) -> dict[str, Any]:
    return {
        "month": month,
        "count": 0,
        "totals_by_currency": {},
        "incomes": ZERO,
        "expenses": ZERO,
        "incomes_bank": ZERO,
        "incomes_cash": ZERO,
        "expenses_bank": ZERO,
        "expenses_cash": ZERO,
    }


def monthly_series(
    incomes: list[dict[str, Any]],
    expenses: list[dict[str, Any]],
    opening_balance: Decimal | None = None,
    with_carry: bool = False,
    order: str = "asc",
) -> list[dict[str, Any]]:
    """Group movements by calendar month.

    Rows without a usable date are skipped here; callers still count them in
    their overall totals. The carry-forward is always accumulated oldest month
    first, ``order`` only affects the returned sequence.
    """
    buckets: dict[str, dict[str, Any]] = {}

    def accumulate(rows: list[dict[str, Any]], key: str) -> None:
        for row in rows:
            month = month_key(row.get("date"))
            if month is None:
                continue
            bucket = buckets.setdefault(month, _empty_bucket(month))
            bucket["count"] += 1
            code = _currency_code(row)
            native = Decimal(row.get("amount") or 0)
            bucket["totals_by_currency"][code] = bucket["totals_by_currency"].get(code, ZERO) + native
            amount = to_local(native, row.get("currency"))
            bucket[key] += amount
            bucket[f"{key}_{_pool_type(row.get('source'))}"] += amount

    accumulate(incomes, "incomes")
    accumulate(expenses, "expenses")

    series = [buckets[m] for m in sorted(buckets)]
    carry = Decimal(opening_balance or 0)
    for bucket in series:
        bucket["net"] = bucket["incomes"] - bucket["expenses"]
        if with_carry:
            bucket["carry_in"] = carry
            carry = carry + bucket["net"]
            bucket["carry_out"] = carry

    if order == "desc":
        series.reverse()
    return series


def _amounts(native: Decimal, currency: str) -> dict[str, Decimal]:
    return {"native": native, **both_currencies(native, currency)}


def _account_label(account: dict[str, Any] | None) -> str:
    if not account:
        return ""
    return str(account.get("name") or account.get("institution_name") or account.get("bank_institution") or "")


def _breakdown_entry(account_id: str, account: dict[str, Any] | None, currency: str) -> dict[str, Any]:
    initial = Decimal((account or {}).get("initial_balance") or 0)
    return {
        "account_id": account_id,
        "account": account,
        "currency": currency,
        "initial": initial,
        "incomes": ZERO,
        "expenses": ZERO,
        "transfers_in": ZERO,
        "transfers_out": ZERO,
    }


def account_breakdown(
    accounts: list[dict[str, Any]],
    incomes: list[dict[str, Any]],
    expenses: list[dict[str, Any]],
    transfers: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    entries: dict[str, dict[str, Any]] = {}
    for account in accounts:
        currency = normalize_currency(account.get("currency")).value
        entries[account["id"]] = _breakdown_entry(account["id"], account, currency)

    def add(account_id: Any, row: dict[str, Any], key: str) -> None:
        if not account_id:
            return
        entry = entries.get(account_id)
        if entry is None:
            # Movement on an account that is no longer live.
            entry = _breakdown_entry(account_id, None, normalize_currency(row.get("currency")).value)
            entries[account_id] = entry
        entry[key] += convert(row.get("amount"), row.get("currency"), entry["currency"])

    for row in incomes:
        if row.get("source") == "bank":
            add(row.get("account_id"), row, "incomes")
    for row in expenses:
        if row.get("source") == "bank":
            add(row.get("account_id"), row, "expenses")
    for row in transfers:
        if row.get("from_type") == "bank":
            add(row.get("from_account_id"), row, "transfers_out")
        if row.get("to_type") == "bank":
            add(row.get("to_account_id"), row, "transfers_in")

    result = []
    for entry in entries.values():
        currency = entry["currency"]
        net = entry["initial"] + entry["incomes"] + entry["transfers_in"] - entry["expenses"] - entry["transfers_out"]

        account = entry["account"]
        result.append(
            {
                "account_id": entry["account_id"],
                "account": {
                    "id": account.get("id"),
                    "name": account.get("name"),
                    "currency": account.get("currency"),
                    "bank_institution": account.get("bank_institution"),
                    "institution_name": account.get("institution_name"),
                }
                if account
                else None,
                "currency": currency,
                "initial": _amounts(entry["initial"], currency),
                "incomes": _amounts(entry["incomes"], currency),
                "expenses": _amounts(entry["expenses"], currency),
                "transfers": {
                    "incoming": _amounts(entry["transfers_in"], currency),
                    "outgoing": _amounts(entry["transfers_out"], currency),
                },
                "net": _amounts(net, currency),
            }
        )
    result.sort(key=lambda item: _account_label(item["account"]).lower())
    return result


def _range_payload(start: date | None, end: date | None) -> dict[str, str | None]:
    return {
        "from": start.isoformat() if start else None,
        "to": end.isoformat() if end else None,
    }


def _load_rows(
    repo: Repository,
    table: str,
    columns: tuple[str, ...],
    user_id: str,
    start: date | None,
    end: date | None,
    equals: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    return repo.select_live(
        table,
        columns,
        user_id=user_id,
        equals=equals,
        date_from=start,
        date_to=end,
        order_by=[("date", "ASC"), ("created_at", "ASC")],
    )


def build_movement_report(
    repo: Repository,
    user_id: str,
    dataset: str,
    start: date | None,
    end: date | None,
    source: str | None = None,
    order: str = "asc",
) -> dict[str, Any]:
    equals = {}
    if source:
        if source not in ("cash", "bank"):
            raise InvalidInput(f"Invalid source: {source}")
        equals["source"] = source
    rows = _load_rows(repo, dataset, MOVEMENT_COLUMNS, user_id, start, end, equals)
    incomes = rows if dataset == "incomes" else []
    expenses = rows if dataset == "expenses" else []
    return {
        "dataset": dataset,
        "range": _range_payload(start, end),
        "source": source,
        "summary": {
            "count": len(rows),
            "totals_by_currency": totals_by_currency(rows),
            "totals": totals_by_pool_type(rows),
        },
        "rows": rows,
        "series": {"by_month": monthly_series(incomes, expenses, order=order)},
    }


def build_balance_report(
    repo: Repository,
    user_id: str,
    start: date | None,
    end: date | None,
    opening_balance: Decimal | None = None,
    order: str = "asc",
) -> dict[str, Any]:
    incomes = _load_rows(repo, "incomes", MOVEMENT_COLUMNS, user_id, start, end)
    expenses = _load_rows(repo, "expenses", MOVEMENT_COLUMNS, user_id, start, end)
    transfers = _load_rows(repo, "transfers", TRANSFER_COLUMNS, user_id, start, end)
    accounts = repo.select_live("accounts", ACCOUNT_COLUMNS, user_id=user_id)

    incomes_totals = totals_by_pool_type(incomes)
    expenses_totals = totals_by_pool_type(expenses)
    moved = transfer_totals(transfers)
    bank_net = incomes_totals["bank"] - expenses_totals["bank"] + moved["bank"]["incoming"] - moved["bank"]["outgoing"]
    cash_net = incomes_totals["cash"] - expenses_totals["cash"] + moved["cash"]["incoming"] - moved["cash"]["outgoing"]
    opening = Decimal(opening_balance or 0)

    return {
        "dataset": "balance",
        "range": _range_payload(start, end),
        "opening_balance": opening,
        "incomes": incomes_totals,
        "expenses": expenses_totals,
        "balance": incomes_totals["total"] - expenses_totals["total"],
        "balance_breakdown": {"total": bank_net + cash_net, "bank": bank_net, "cash": cash_net},
        "transfers": moved,
        "totals_by_currency": {
            "incomes": totals_by_currency(incomes),
            "expenses": totals_by_currency(expenses),
        },
        "accounts": account_breakdown(accounts, incomes, expenses, transfers),
        "series": {"by_month": monthly_series(incomes, expenses, opening, with_carry=True, order=order)},
    }


def build_report(
    repo: Repository,
    user_id: str,
    dataset: str = "balance",
    from_date: Any = None,
    to_date: Any = None,
    range_name: str | None = None,
    opening_balance: Any = None,
    order: str = "asc",
    source: str | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    if dataset not in DATASETS:
        raise InvalidInput(f"Invalid dataset: {dataset}")
    if order not in ("asc", "desc"):
        raise InvalidInput("order must be asc or desc")
    start, end = resolve_range(from_date, to_date, range_name, today)
    if dataset == "balance":
        opening = parse_optional_amount(opening_balance, "opening_balance")
        return build_balance_report(repo, user_id, start, end, opening, order)
    return build_movement_report(repo, user_id, dataset, start, end, source, order)
