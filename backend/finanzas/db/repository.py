import re
from datetime import date, datetime, timezone
from typing import Any, Iterable

from finanzas.core.errors import InvalidInput

TABLES = ("accounts", "categories", "incomes", "expenses", "transfers")

# Every read goes through this predicate; soft-deleted rows never leave the repository.
LIVE_PREDICATE = "deleted_at IS NULL"

_IDENT_RE = re.compile(r"^[a-z_][a-z0-9_]*$")


def _ident(name: str) -> str:
    if not _IDENT_RE.fullmatch(name or ""):
        raise ValueError(f"Unsafe SQL identifier: {name!r}")
    return name


def _table(name: str) -> str:
    if name not in TABLES:
        raise ValueError(f"Unknown table: {name!r}")
    return name


def _columns(columns: Iterable[str]) -> str:
    return ", ".join(f"{_ident(c)}::text AS {c}" if c.endswith("id") else _ident(c) for c in columns)


class Repository:
    """Row store over a psycopg cursor (``dict_row`` factory).

    All statements are scoped by ``user_id``; the caller owns the transaction.
    """

    def __init__(self, cur) -> None:
        self.cur = cur

    def select_live(
        self,
        table: str,
        columns: Iterable[str],
        *,
        user_id: str,
        equals: dict[str, Any] | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        order_by: list[tuple[str, str]] | None = None,
    ) -> list[dict[str, Any]]:
        filters = ["user_id=%s", LIVE_PREDICATE]
        params: list[Any] = [user_id]
        for column, value in (equals or {}).items():
            if value is None:
                filters.append(f"{_ident(column)} IS NULL")
            else:
                filters.append(f"{_ident(column)}=%s")
                params.append(value)
        if date_from is not None:
            filters.append("date >= %s")
            params.append(date_from)
        if date_to is not None:
            filters.append("date <= %s")
            params.append(date_to)

        sql = f"SELECT {_columns(columns)} FROM {_table(table)} WHERE {' AND '.join(filters)}"
        if order_by:
            parts = []
            for column, direction in order_by:
                direction = direction.upper()
                if direction not in ("ASC", "DESC"):
                    raise ValueError(f"Invalid sort direction: {direction!r}")
                parts.append(f"{_ident(column)} {direction}")
            sql += " ORDER BY " + ", ".join(parts)
        self.cur.execute(sql, params)
        return list(self.cur.fetchall())

    def get_live(self, table: str, columns: Iterable[str], row_id: str, user_id: str) -> dict[str, Any] | None:
        self.cur.execute(
            f"""
            SELECT {_columns(columns)}
            FROM {_table(table)}
            WHERE id=%s::uuid AND user_id=%s AND {LIVE_PREDICATE}
            """,
            (row_id, user_id),
        )
        return self.cur.fetchone()

    def exists_live_name(
        self,
        table: str,
        user_id: str,
        name: str,
        equals: dict[str, Any] | None = None,
        exclude_id: str | None = None,
    ) -> bool:
        sql = f"SELECT 1 FROM {_table(table)} WHERE user_id=%s AND {LIVE_PREDICATE} AND lower(name)=lower(%s)"
        params: list[Any] = [user_id, name]
        for column, value in (equals or {}).items():
            sql += f" AND {_ident(column)}=%s"
            params.append(value)
        if exclude_id:
            sql += " AND id <> %s::uuid"
            params.append(exclude_id)
        sql += " LIMIT 1"
        self.cur.execute(sql, params)
        return self.cur.fetchone() is not None

    def insert(self, table: str, values: dict[str, Any], returning: Iterable[str]) -> dict[str, Any]:
        columns = [_ident(c) for c in values.keys()]
        placeholders = ", ".join(["%s"] * len(columns))
        self.cur.execute(
            f"""
            INSERT INTO {_table(table)} ({", ".join(columns)})
            VALUES ({placeholders})
            RETURNING {_columns(returning)}
            """,
            list(values.values()),
        )
        return self.cur.fetchone()

    def update_live(
        self,
        table: str,
        row_id: str,
        user_id: str,
        values: dict[str, Any],
        returning: Iterable[str],
    ) -> dict[str, Any] | None:
        if not values:
            raise InvalidInput("No changes to apply")
        assignments = [f"{_ident(c)}=%s" for c in values.keys()]
        assignments.append("updated_at=%s")
        params = list(values.values()) + [datetime.now(timezone.utc), row_id, user_id]
        self.cur.execute(
            f"""
            UPDATE {_table(table)}
            SET {", ".join(assignments)}
            WHERE id=%s::uuid AND user_id=%s AND {LIVE_PREDICATE}
            RETURNING {_columns(returning)}
            """,
            params,
        )
        return self.cur.fetchone()

    def soft_delete(self, table: str, row_id: str, user_id: str) -> bool:
        self.cur.execute(
            f"""
            UPDATE {_table(table)}
            SET deleted_at=%s
            WHERE id=%s::uuid AND user_id=%s AND {LIVE_PREDICATE}
            RETURNING id::text AS id
            """,
            (datetime.now(timezone.utc), row_id, user_id),
        )
        return self.cur.fetchone() is not None

    def lock_account(self, user_id: str, account_id: str) -> bool:
        self.cur.execute(
            f"""
            SELECT id::text AS id
            FROM accounts
            WHERE id=%s::uuid AND user_id=%s AND {LIVE_PREDICATE}
            FOR UPDATE
            """,
            (account_id, user_id),
        )
        return self.cur.fetchone() is not None

    def lock_cash_pool(self, user_id: str, currency: str) -> None:
        # The cash pool has no row of its own; an advisory lock stands in for it.
        self.cur.execute(
            "SELECT pg_advisory_xact_lock(hashtext(%s))",
            (f"{user_id}:cash:{currency}",),
        )
