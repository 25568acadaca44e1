from fastapi import APIRouter, Request

from finanzas.db.pool import db_repository
from finanzas.models.requests import (
    AccountCreateRequest,
    AccountUpdateRequest,
    CategoryCreateRequest,
    CategoryUpdateRequest,
)
from finanzas.services.auth import require_user
from finanzas.services.catalog import (
    create_account,
    create_category,
    delete_account,
    delete_category,
    list_accounts,
    list_categories,
    update_account,
    update_category,
)

router = APIRouter(prefix="/v1")


@router.get("/accounts")
def accounts_list(req: Request):
    user_id = require_user(req)
    with db_repository() as repo:
        return {"accounts": list_accounts(repo, user_id)}


@router.post("/accounts", status_code=201)
def accounts_create(req: Request, payload: AccountCreateRequest):
    user_id = require_user(req)
    with db_repository() as repo:
        account = create_account(repo, user_id, payload.model_dump())
    return {"ok": True, "account": account}


@router.put("/accounts/{account_id}")
def accounts_update(account_id: str, req: Request, payload: AccountUpdateRequest):
    user_id = require_user(req)
    with db_repository() as repo:
        account = update_account(repo, user_id, account_id, payload.model_dump(exclude_unset=True))
    return {"ok": True, "account": account}


@router.delete("/accounts/{account_id}")
def accounts_delete(account_id: str, req: Request):
    user_id = require_user(req)
    with db_repository() as repo:
        delete_account(repo, user_id, account_id)
    return {"ok": True}


@router.get("/categories")
def categories_list(req: Request, type: str | None = None):
    user_id = require_user(req)
    with db_repository() as repo:
        return {"categories": list_categories(repo, user_id, type)}


@router.post("/categories", status_code=201)
def categories_create(req: Request, payload: CategoryCreateRequest):
    user_id = require_user(req)
    with db_repository() as repo:
        category = create_category(repo, user_id, payload.model_dump())
    return {"ok": True, "category": category}


@router.put("/categories/{category_id}")
def categories_update(category_id: str, req: Request, payload: CategoryUpdateRequest):
    user_id = require_user(req)
    with db_repository() as repo:
        category = update_category(repo, user_id, category_id, payload.model_dump(exclude_unset=True))
    return {"ok": True, "category": category}


@router.delete("/categories/{category_id}")
def categories_delete(category_id: str, req: Request):
    user_id = require_user(req)
    with db_repository() as repo:
        delete_category(repo, user_id, category_id)
    return {"ok": True}
