import logging
from typing import Any

from finanzas.core.errors import DuplicateName, InvalidInput, NotFound
from finanzas.db.repository import Repository
from finanzas.services.currency import normalize_currency
from finanzas.services.ledger import ACCOUNT_COLUMNS
from finanzas.services.parsing import clean_text, parse_optional_amount, parse_uuid_value

logger = logging.getLogger(__name__)

ACCOUNT_INSTITUTIONS = ("BAC", "Lafise", "Banpro", "Otro")
OTHER_INSTITUTION = "Otro"
CATEGORY_TYPES = ("income", "expense")
CATEGORY_COLUMNS = ("id", "name", "type", "created_at", "updated_at")


def _account_name(value: Any) -> str:
    name = clean_text(value, max_len=120, field_name="name")
    if not name or len(name) < 2:
        raise InvalidInput("The account name must have at least 2 characters")
    return name


def _institution(value: Any) -> str:
    cleaned = str(value or "").strip()
    if not cleaned:
        raise InvalidInput("Select the financial institution")
    if cleaned not in ACCOUNT_INSTITUTIONS:
        raise InvalidInput("The selected institution is not valid")
    return cleaned


def _account_currency(value: Any) -> str:
    currency = normalize_currency(value, default=None)
    if currency is None:
        raise InvalidInput("Select a valid currency")
    return currency.value


def _institution_name(institution: str, value: Any) -> str | None:
    name = clean_text(value, max_len=120, field_name="institution_name")
    if institution == OTHER_INSTITUTION and not name:
        raise InvalidInput('Enter the bank name when selecting "Otro"')
    return name


def list_accounts(repo: Repository, user_id: str) -> list[dict[str, Any]]:
    return repo.select_live("accounts", ACCOUNT_COLUMNS, user_id=user_id, order_by=[("created_at", "DESC")])


def create_account(repo: Repository, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
    institution = _institution(data.get("bank_institution"))
    values = {
        "user_id": user_id,
        "name": _account_name(data.get("name")),
        "bank_institution": institution,
        "institution_name": _institution_name(institution, data.get("institution_name")),
        "currency": _account_currency(data.get("currency")),
        "initial_balance": parse_optional_amount(data.get("initial_balance"), "initial_balance"),
    }
    row = repo.insert("accounts", values, ACCOUNT_COLUMNS)
    logger.info("Created account %s for user %s", row.get("id"), user_id)
    return row


def update_account(repo: Repository, user_id: str, account_id: str, data: dict[str, Any]) -> dict[str, Any]:
    account_id = parse_uuid_value(account_id, "id")
    if not data:
        raise InvalidInput("No changes to apply")
    current = repo.get_live("accounts", ACCOUNT_COLUMNS, account_id, user_id)
    if not current:
        raise NotFound("Account not found")

    institution = _institution(data["bank_institution"]) if "bank_institution" in data else current["bank_institution"]
    values = {
        "name": _account_name(data["name"]) if "name" in data else current["name"],
        "bank_institution": institution,
        "institution_name": _institution_name(
            institution, data["institution_name"] if "institution_name" in data else current.get("institution_name")
        ),
        "currency": _account_currency(data["currency"]) if "currency" in data else current["currency"],
        "initial_balance": parse_optional_amount(data["initial_balance"], "initial_balance")
        if "initial_balance" in data
        else current.get("initial_balance"),
    }
    row = repo.update_live("accounts", account_id, user_id, values, ACCOUNT_COLUMNS)
    if not row:
        raise NotFound("Account not found")
    logger.info("Updated account %s for user %s", account_id, user_id)
    return row


def delete_account(repo: Repository, user_id: str, account_id: str) -> None:
    account_id = parse_uuid_value(account_id, "id")
    if not repo.soft_delete("accounts", account_id, user_id):
        raise NotFound("Account not found")
    logger.info("Soft-deleted account %s for user %s", account_id, user_id)


def _category_name(value: Any) -> str:
    name = clean_text(value, max_len=60, field_name="name")
    if not name or len(name) < 2:
        raise InvalidInput("The category name must have at least 2 characters")
    return name


def _category_type(value: Any) -> str:
    kind = str(value or "").strip().lower()
    if kind not in CATEGORY_TYPES:
        raise InvalidInput("Category type must be income or expense")
    return kind


def list_categories(repo: Repository, user_id: str, kind: str | None = None) -> list[dict[str, Any]]:
    equals = {"type": _category_type(kind)} if kind else None
    return repo.select_live(
        "categories",
        CATEGORY_COLUMNS,
        user_id=user_id,
        equals=equals,
        order_by=[("created_at", "DESC")],
    )


def create_category(repo: Repository, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
    name = _category_name(data.get("name"))
    kind = _category_type(data.get("type"))
    if repo.exists_live_name("categories", user_id, name, equals={"type": kind}):
        raise DuplicateName("A category with that name already exists")
    row = repo.insert("categories", {"user_id": user_id, "name": name, "type": kind}, CATEGORY_COLUMNS)
    logger.info("Created %s category %s for user %s", kind, row.get("id"), user_id)
    return row


def update_category(repo: Repository, user_id: str, category_id: str, data: dict[str, Any]) -> dict[str, Any]:
    category_id = parse_uuid_value(category_id, "id")
    if not data:
        raise InvalidInput("No changes to apply")
    current = repo.get_live("categories", CATEGORY_COLUMNS, category_id, user_id)
    if not current:
        raise NotFound("Category not found")

    name = _category_name(data["name"]) if "name" in data else current["name"]
    kind = _category_type(data["type"]) if "type" in data else current["type"]
    if repo.exists_live_name("categories", user_id, name, equals={"type": kind}, exclude_id=category_id):
        raise DuplicateName("A category with that name already exists")
    row = repo.update_live("categories", category_id, user_id, {"name": name, "type": kind}, CATEGORY_COLUMNS)
    if not row:
        raise NotFound("Category not found")
    return row


def delete_category(repo: Repository, user_id: str, category_id: str) -> None:
    category_id = parse_uuid_value(category_id, "id")
    if not repo.soft_delete("categories", category_id, user_id):
        raise NotFound("Category not found")
