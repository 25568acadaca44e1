import logging
from datetime import date
from decimal import Decimal
from typing import Any

from finanzas.core.config import settings
from finanzas.core.errors import (
    CurrencyMismatch,
    InsufficientBalance,
    InvalidAccount,
    InvalidCategory,
    InvalidInput,
    NotFound,
    SameAccount,
)
from finanzas.db.repository import Repository
from finanzas.services.currency import Currency, both_currencies, normalize_currency
from finanzas.services.ledger import (
    ACCOUNT_COLUMNS,
    MOVEMENT_COLUMNS,
    TRANSFER_COLUMNS,
    compute_balance,
    load_account,
)
from finanzas.services.parsing import (
    clean_text,
    parse_amount,
    parse_day,
    parse_optional_day,
    parse_optional_uuid,
    parse_uuid_value,
)
from finanzas.services.pools import CASH, BankPool, Pool, pool_from_descriptor

logger = logging.getLogger(__name__)

INCOME = "income"
EXPENSE = "expense"
MOVEMENT_TABLES = {INCOME: "incomes", EXPENSE: "expenses"}


def _table_for(kind: str) -> str:
    try:
        return MOVEMENT_TABLES[kind]
    except KeyError:
        raise ValueError(f"Unknown movement kind: {kind!r}")


def _row_pool(pool_type: Any, account_id: Any) -> Pool | None:
    try:
        return pool_from_descriptor(pool_type, account_id)
    except (InvalidAccount, InvalidInput):
        return None


def _parse_pool(pool_type: Any, account_id: Any, field_name: str) -> Pool:
    kind = str(pool_type or "cash").strip().lower()
    if kind == "cash":
        return CASH
    return pool_from_descriptor(kind, parse_optional_uuid(account_id, field_name))


def resolve_pool_account(repo: Repository, user_id: str, pool: Pool) -> dict[str, Any] | None:
    if not isinstance(pool, BankPool):
        return None
    account = load_account(repo, user_id, pool.account_id)
    if not account:
        raise InvalidAccount()
    return account


def resolve_currency(requested: Any, account: dict[str, Any] | None) -> Currency:
    if account:
        return normalize_currency(account.get("currency"))
    return normalize_currency(requested)


def ensure_category(repo: Repository, user_id: str, category_id: str | None, kind: str) -> None:
    if not category_id:
        return
    row = repo.get_live("categories", ("id", "type"), category_id, user_id)
    if not row or row.get("type") != kind:
        raise InvalidCategory(f"The selected category is not valid for {kind}s")


def lock_pool(repo: Repository, user_id: str, pool: Pool, currency: Currency) -> None:
    if not settings.serialize_pool_writes:
        return
    if isinstance(pool, BankPool):
        repo.lock_account(user_id, pool.account_id)
    else:
        repo.lock_cash_pool(user_id, currency.value)


def ensure_available(
    repo: Repository,
    user_id: str,
    pool: Pool,
    currency: Currency,
    account: dict[str, Any] | None,
    amount: Decimal,
    credit_back: Decimal = Decimal("0"),
) -> Decimal:
    lock_pool(repo, user_id, pool, currency)
    available = compute_balance(repo, user_id, pool, currency, account) + credit_back
    if amount > available:
        logger.info(
            "Rejected debit of %s %s on %s pool for user %s (available %s)",
            amount,
            currency.value,
            pool.kind,
            user_id,
            available,
        )
        raise InsufficientBalance(available=available, requested=amount)
    return available


def pool_balance(
    repo: Repository,
    user_id: str,
    source: Any,
    account_id: Any = None,
    currency: Any = None,
) -> dict[str, Any]:
    """Available balance of one pool, as shown before recording a debit."""
    pool = _parse_pool(source, account_id, "account_id")
    account = resolve_pool_account(repo, user_id, pool)
    code = resolve_currency(currency, account)
    balance = compute_balance(repo, user_id, pool, code, account)
    return {
        "source": pool.kind,
        "account_id": pool.account_id,
        "currency": code.value,
        "balance": balance,
        **both_currencies(balance, code),
    }


def _movement_values(
    amount: Decimal,
    currency: Currency,
    pool: Pool,
    movement_date: date,
    category_id: str | None,
    note: str | None,
) -> dict[str, Any]:
    return {
        "amount": amount,
        "currency": currency.value,
        "source": pool.kind,
        "account_id": pool.account_id,
        "date": movement_date,
        "category_id": category_id,
        "note": note,
    }


def create_movement(repo: Repository, user_id: str, kind: str, data: dict[str, Any]) -> dict[str, Any]:
    table = _table_for(kind)
    amount = parse_amount(data.get("amount"))
    pool = _parse_pool(data.get("source"), data.get("account_id"), "account_id")
    account = resolve_pool_account(repo, user_id, pool)
    currency = resolve_currency(data.get("currency"), account)
    category_id = parse_optional_uuid(data.get("category_id"), "category_id")
    ensure_category(repo, user_id, category_id, kind)
    movement_date = parse_day(data.get("date"))
    note = clean_text(data.get("note"))

    if kind == EXPENSE:
        ensure_available(repo, user_id, pool, currency, account, amount)

    values = _movement_values(amount, currency, pool, movement_date, category_id, note)
    row = repo.insert(table, {**values, "user_id": user_id}, MOVEMENT_COLUMNS)
    logger.info("Created %s %s for user %s", kind, row.get("id"), user_id)
    return row


def update_movement(
    repo: Repository,
    user_id: str,
    kind: str,
    movement_id: str,
    data: dict[str, Any],
) -> dict[str, Any]:
    table = _table_for(kind)
    movement_id = parse_uuid_value(movement_id, "id")
    if not data:
        raise InvalidInput("No changes to apply")
    current = repo.get_live(table, MOVEMENT_COLUMNS, movement_id, user_id)
    if not current:
        raise NotFound(f"{kind.capitalize()} not found")

    amount = parse_amount(data["amount"]) if "amount" in data else Decimal(current.get("amount") or 0)
    if "source" in data or "account_id" in data:
        source = data.get("source") or current.get("source")
        if "account_id" in data:
            account_id = data.get("account_id")
        else:
            account_id = current.get("account_id") if source == current.get("source") else None
        pool = _parse_pool(source, account_id, "account_id")
    else:
        pool = _parse_pool(current.get("source"), current.get("account_id"), "account_id")
    account = resolve_pool_account(repo, user_id, pool)
    currency = resolve_currency(data.get("currency", current.get("currency")), account)

    if "category_id" in data:
        category_id = parse_optional_uuid(data.get("category_id"), "category_id")
        ensure_category(repo, user_id, category_id, kind)
    else:
        category_id = current.get("category_id")
    movement_date = parse_day(data["date"]) if "date" in data else parse_day(current.get("date"))
    note = clean_text(data["note"]) if "note" in data else current.get("note")

    if kind == EXPENSE:
        current_pool = _row_pool(current.get("source"), current.get("account_id"))
        current_currency = normalize_currency(current.get("currency"))
        credit_back = Decimal("0")
        if current_pool == pool and current_currency == currency:
            credit_back = Decimal(current.get("amount") or 0)
        ensure_available(repo, user_id, pool, currency, account, amount, credit_back)

    values = _movement_values(amount, currency, pool, movement_date, category_id, note)
    row = repo.update_live(table, movement_id, user_id, values, MOVEMENT_COLUMNS)
    if not row:
        raise NotFound(f"{kind.capitalize()} not found")
    logger.info("Updated %s %s for user %s", kind, movement_id, user_id)
    return row


def delete_movement(repo: Repository, user_id: str, kind: str, movement_id: str) -> None:
    table = _table_for(kind)
    movement_id = parse_uuid_value(movement_id, "id")
    if not repo.soft_delete(table, movement_id, user_id):
        raise NotFound(f"{kind.capitalize()} not found")
    logger.info("Soft-deleted %s %s for user %s", kind, movement_id, user_id)


def list_movements(
    repo: Repository,
    user_id: str,
    kind: str,
    from_date: Any = None,
    to_date: Any = None,
    category_id: Any = None,
) -> list[dict[str, Any]]:
    table = _table_for(kind)
    equals = {}
    category = parse_optional_uuid(category_id, "category_id")
    if category:
        equals["category_id"] = category
    rows = repo.select_live(
        table,
        MOVEMENT_COLUMNS,
        user_id=user_id,
        equals=equals,
        date_from=parse_optional_day(from_date, "from"),
        date_to=parse_optional_day(to_date, "to"),
        order_by=[("date", "DESC"), ("created_at", "DESC")],
    )
    categories = {
        c["id"]: c.get("name")
        for c in repo.select_live("categories", ("id", "name"), user_id=user_id, equals={"type": kind})
    }
    return [{**row, "category_name": categories.get(row.get("category_id"))} for row in rows]


def create_income(repo: Repository, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
    return create_movement(repo, user_id, INCOME, data)


def update_income(repo: Repository, user_id: str, income_id: str, data: dict[str, Any]) -> dict[str, Any]:
    return update_movement(repo, user_id, INCOME, income_id, data)


def delete_income(repo: Repository, user_id: str, income_id: str) -> None:
    delete_movement(repo, user_id, INCOME, income_id)


def create_expense(repo: Repository, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
    return create_movement(repo, user_id, EXPENSE, data)


def update_expense(repo: Repository, user_id: str, expense_id: str, data: dict[str, Any]) -> dict[str, Any]:
    return update_movement(repo, user_id, EXPENSE, expense_id, data)


def delete_expense(repo: Repository, user_id: str, expense_id: str) -> None:
    delete_movement(repo, user_id, EXPENSE, expense_id)


def _validate_transfer(
    repo: Repository,
    user_id: str,
    source: Pool,
    destination: Pool,
    requested_currency: Any,
) -> tuple[Currency, dict[str, Any] | None]:
    source_account = resolve_pool_account(repo, user_id, source)
    destination_account = resolve_pool_account(repo, user_id, destination)

    if isinstance(source, BankPool) and isinstance(destination, BankPool):
        if source.account_id == destination.account_id:
            raise SameAccount()

    if source_account:
        currency = normalize_currency(source_account.get("currency"))
    elif destination_account:
        currency = normalize_currency(destination_account.get("currency"))
    else:
        currency = normalize_currency(requested_currency)

    if destination_account and normalize_currency(destination_account.get("currency"), None) != currency:
        raise CurrencyMismatch("The currency does not match the destination account")
    return currency, source_account


def _transfer_values(
    amount: Decimal,
    currency: Currency,
    source: Pool,
    destination: Pool,
    transfer_date: date,
    note: str | None,
) -> dict[str, Any]:
    return {
        "amount": amount,
        "currency": currency.value,
        "from_type": source.kind,
        "from_account_id": source.account_id,
        "to_type": destination.kind,
        "to_account_id": destination.account_id,
        "date": transfer_date,
        "note": note,
    }


def create_transfer(repo: Repository, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
    amount = parse_amount(data.get("amount"), positive=True)
    source = _parse_pool(data.get("source_type"), data.get("source_account_id"), "source_account_id")
    destination = _parse_pool(
        data.get("destination_type"), data.get("destination_account_id"), "destination_account_id"
    )
    currency, source_account = _validate_transfer(repo, user_id, source, destination, data.get("currency"))
    transfer_date = parse_day(data.get("date"))
    note = clean_text(data.get("note"))

    ensure_available(repo, user_id, source, currency, source_account, amount)

    values = _transfer_values(amount, currency, source, destination, transfer_date, note)
    row = repo.insert("transfers", {**values, "user_id": user_id}, TRANSFER_COLUMNS)
    logger.info("Created transfer %s for user %s", row.get("id"), user_id)
    return row


def _merged_side(data: dict[str, Any], current: dict[str, Any], side: str, type_col: str, account_col: str) -> Pool:
    type_key = f"{side}_type"
    account_key = f"{side}_account_id"
    if type_key in data or account_key in data:
        pool_type = data.get(type_key) or current.get(type_col)
        if account_key in data:
            account_id = data.get(account_key)
        else:
            account_id = current.get(account_col) if pool_type == current.get(type_col) else None
        return _parse_pool(pool_type, account_id, account_key)
    return _parse_pool(current.get(type_col), current.get(account_col), account_key)


def _transfer_side(row: dict[str, Any]) -> tuple[Pool | None, Pool | None, Currency, Decimal]:
    return (
        _row_pool(row.get("from_type"), row.get("from_account_id")),
        _row_pool(row.get("to_type"), row.get("to_account_id")),
        normalize_currency(row.get("currency")),
        Decimal(row.get("amount") or 0),
    )


def ensure_transfer_change(
    repo: Repository,
    user_id: str,
    before: tuple[Pool | None, Pool | None, Currency, Decimal] | None,
    after: tuple[Pool | None, Pool | None, Currency, Decimal] | None,
) -> None:
    """Reject a transfer write that would leave any pool it touches below zero.

    ``before`` and ``after`` are ``(source, destination, currency, amount)``; ``None`` stands
    for a transfer that does not exist on that side of the write. Each pool that loses money
    is checked with what it still receives credited back.
    """
    debits: dict[tuple[Pool, Currency], Decimal] = {}
    credits: dict[tuple[Pool, Currency], Decimal] = {}

    def add(bucket: dict[tuple[Pool, Currency], Decimal], pool: Pool | None, currency: Currency, amount: Decimal):
        if pool is not None:
            bucket[(pool, currency)] = bucket.get((pool, currency), Decimal("0")) + amount

    if after:
        source, destination, currency, amount = after
        add(debits, source, currency, amount)
        add(credits, destination, currency, amount)
    if before:
        # Undoing the stored transfer refunds its source and takes back its destination's credit.
        source, destination, currency, amount = before
        add(credits, source, currency, amount)
        add(debits, destination, currency, amount)

    for pool, currency in sorted(debits, key=lambda k: (k[0].kind, k[0].account_id or "", k[1].value)):
        debit = debits[(pool, currency)]
        credit = credits.get((pool, currency), Decimal("0"))
        if debit <= credit:
            continue
        account = None
        if isinstance(pool, BankPool):
            account = load_account(repo, user_id, pool.account_id)
            if not account:
                # Retired accounts no longer hold a balance.
                continue
        ensure_available(repo, user_id, pool, currency, account, debit, credit)


def update_transfer(repo: Repository, user_id: str, transfer_id: str, data: dict[str, Any]) -> dict[str, Any]:
    transfer_id = parse_uuid_value(transfer_id, "id")
    if not data:
        raise InvalidInput("No changes to apply")
    current = repo.get_live("transfers", TRANSFER_COLUMNS, transfer_id, user_id)
    if not current:
        raise NotFound("Transfer not found")

    amount = (
        parse_amount(data["amount"], positive=True) if "amount" in data else Decimal(current.get("amount") or 0)
    )
    source = _merged_side(data, current, "source", "from_type", "from_account_id")
    destination = _merged_side(data, current, "destination", "to_type", "to_account_id")
    currency, _ = _validate_transfer(repo, user_id, source, destination, data.get("currency", current.get("currency")))
    transfer_date = parse_day(data["date"]) if "date" in data else parse_day(current.get("date"))
    note = clean_text(data["note"]) if "note" in data else current.get("note")

    ensure_transfer_change(repo, user_id, _transfer_side(current), (source, destination, currency, amount))

    values = _transfer_values(amount, currency, source, destination, transfer_date, note)
    row = repo.update_live("transfers", transfer_id, user_id, values, TRANSFER_COLUMNS)
    if not row:
        raise NotFound("Transfer not found")
    logger.info("Updated transfer %s for user %s", transfer_id, user_id)
    return row


def delete_transfer(repo: Repository, user_id: str, transfer_id: str) -> None:
    transfer_id = parse_uuid_value(transfer_id, "id")
    current = repo.get_live("transfers", TRANSFER_COLUMNS, transfer_id, user_id)
    if not current:
        raise NotFound("Transfer not found")
    ensure_transfer_change(repo, user_id, _transfer_side(current), None)
    if not repo.soft_delete("transfers", transfer_id, user_id):
        raise NotFound("Transfer not found")
    logger.info("Soft-deleted transfer %s for user %s", transfer_id, user_id)


def _account_summary(account: dict[str, Any] | None) -> dict[str, Any] | None:
    if not account:
        return None
    return {
        "id": account.get("id"),
        "name": account.get("name"),
        "currency": account.get("currency"),
        "bank_institution": account.get("bank_institution"),
        "institution_name": account.get("institution_name"),
    }


def serialize_transfer(row: dict[str, Any], accounts: dict[str, dict[str, Any]]) -> dict[str, Any]:
    return {
        "id": row.get("id"),
        "amount": row.get("amount"),
        "currency": row.get("currency"),
        "source_type": row.get("from_type"),
        "source_account_id": row.get("from_account_id"),
        "source_account": _account_summary(accounts.get(row.get("from_account_id"))),
        "destination_type": row.get("to_type"),
        "destination_account_id": row.get("to_account_id"),
        "destination_account": _account_summary(accounts.get(row.get("to_account_id"))),
        "date": row.get("date"),
        "note": row.get("note"),
        "created_at": row.get("created_at"),
    }


def _accounts_by_id(repo: Repository, user_id: str) -> dict[str, dict[str, Any]]:
    return {a["id"]: a for a in repo.select_live("accounts", ACCOUNT_COLUMNS, user_id=user_id)}


def get_transfer(repo: Repository, user_id: str, transfer_id: str) -> dict[str, Any]:
    transfer_id = parse_uuid_value(transfer_id, "id")
    row = repo.get_live("transfers", TRANSFER_COLUMNS, transfer_id, user_id)
    if not row:
        raise NotFound("Transfer not found")
    return serialize_transfer(row, _accounts_by_id(repo, user_id))


def list_transfers(repo: Repository, user_id: str, from_date: Any = None, to_date: Any = None) -> list[dict[str, Any]]:
    rows = repo.select_live(
        "transfers",
        TRANSFER_COLUMNS,
        user_id=user_id,
        date_from=parse_optional_day(from_date, "from"),
        date_to=parse_optional_day(to_date, "to"),
        order_by=[("date", "DESC"), ("created_at", "DESC")],
    )
    accounts = _accounts_by_id(repo, user_id)
    return [serialize_transfer(row, accounts) for row in rows]
