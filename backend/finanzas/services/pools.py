from dataclasses import dataclass
from typing import Any, Union

from finanzas.core.errors import InvalidAccount, InvalidInput

POOL_CASH = "cash"
POOL_BANK = "bank"


@dataclass(frozen=True)
class CashPool:
    kind = POOL_CASH

    @property
    def account_id(self) -> None:
        return None


@dataclass(frozen=True)
class BankPool:
    account_id: str
    kind = POOL_BANK


Pool = Union[CashPool, BankPool]

CASH = CashPool()


def pool_from_descriptor(pool_type: Any, account_id: Any = None) -> Pool:
    kind = str(pool_type or POOL_CASH).strip().lower()
    if kind == POOL_CASH:
        return CASH
    if kind == POOL_BANK:
        aid = str(account_id or "").strip()
        if not aid:
            raise InvalidAccount("A bank account must be selected")
        return BankPool(aid)
    raise InvalidInput(f"Invalid pool type: {pool_type}")


def pool_columns(pool: Pool, type_column: str, account_column: str) -> dict[str, str | None]:
    """Equality filters selecting rows whose pool side matches ``pool``."""
    return {type_column: pool.kind, account_column: pool.account_id}