from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from finanzas.db.repository import Repository
from finanzas.services.currency import Currency, normalize_currency
from finanzas.services.pools import CASH, BankPool, Pool, pool_columns

ACCOUNT_COLUMNS = (
    "id",
    "name",
    "bank_institution",
    "institution_name",
    "currency",
    "initial_balance",
    "created_at",
    "updated_at",
)
MOVEMENT_COLUMNS = ("id", "amount", "currency", "source", "account_id", "category_id", "date", "note", "created_at")
TRANSFER_COLUMNS = (
    "id",
    "amount",
    "currency",
    "from_type",
    "from_account_id",
    "to_type",
    "to_account_id",
    "date",
    "note",
    "created_at",
)


@dataclass
class Ledger:
    incomes: list[dict[str, Any]] = field(default_factory=list)
    expenses: list[dict[str, Any]] = field(default_factory=list)
    transfers_out: list[dict[str, Any]] = field(default_factory=list)
    transfers_in: list[dict[str, Any]] = field(default_factory=list)


def load_account(repo: Repository, user_id: str, account_id: str | None) -> dict[str, Any] | None:
    if not account_id:
        return None
    return repo.get_live("accounts", ACCOUNT_COLUMNS, account_id, user_id)


def load_ledger(repo: Repository, user_id: str, pool: Pool, currency: Currency | str) -> Ledger:
    code = normalize_currency(currency).value
    incomes = repo.select_live(
        "incomes",
        MOVEMENT_COLUMNS,
        user_id=user_id,
        equals={"currency": code, **pool_columns(pool, "source", "account_id")},
    )
    expenses = repo.select_live(
        "expenses",
        MOVEMENT_COLUMNS,
        user_id=user_id,
        equals={"currency": code, **pool_columns(pool, "source", "account_id")},
    )
    transfers_out = repo.select_live(
        "transfers",
        TRANSFER_COLUMNS,
        user_id=user_id,
        equals={"currency": code, **pool_columns(pool, "from_type", "from_account_id")},
    )
    transfers_in = repo.select_live(
        "transfers",
        TRANSFER_COLUMNS,
        user_id=user_id,
        equals={"currency": code, **pool_columns(pool, "to_type", "to_account_id")},
    )
    return Ledger(incomes=incomes, expenses=expenses, transfers_out=transfers_out, transfers_in=transfers_in)


def sum_amounts(rows: list[dict[str, Any]]) -> Decimal:
    return sum((Decimal(row.get("amount") or 0) for row in rows), Decimal("0"))


def initial_balance(pool: Pool, currency: Currency | str, account: dict[str, Any] | None) -> Decimal:
    if not isinstance(pool, BankPool) or not account:
        return Decimal("0")
    if normalize_currency(account.get("currency")) != normalize_currency(currency):
        return Decimal("0")
    return Decimal(account.get("initial_balance") or 0)


def compute_balance(
    repo: Repository,
    user_id: str,
    pool: Pool,
    currency: Currency | str,
    account: dict[str, Any] | None = None,
) -> Decimal:
    if isinstance(pool, BankPool) and account is None:
        account = load_account(repo, user_id, pool.account_id)
    ledger = load_ledger(repo, user_id, pool, currency)
    return (
        initial_balance(pool, currency, account)
        + sum_amounts(ledger.incomes)
        + sum_amounts(ledger.transfers_in)
        - sum_amounts(ledger.expenses)
        - sum_amounts(ledger.transfers_out)
    )


def pool_balances(repo: Repository, user_id: str) -> dict[str, Any]:
    """Current balance of the cash pool (per currency) and of every live account."""
    cash = {c.value: compute_balance(repo, user_id, CASH, c) for c in Currency}
    accounts = []
    for account in repo.select_live("accounts", ACCOUNT_COLUMNS, user_id=user_id, order_by=[("name", "ASC")]):
        currency = normalize_currency(account.get("currency"))
        accounts.append(
            {
                "account_id": account["id"],
                "name": account.get("name"),
                "currency": currency.value,
                "balance": compute_balance(repo, user_id, BankPool(account["id"]), currency, account),
            }
        )
    return {"cash": cash, "accounts": accounts}
