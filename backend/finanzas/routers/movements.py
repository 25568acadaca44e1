from fastapi import APIRouter, Request

from finanzas.db.pool import db_repository
from finanzas.models.requests import (
    MovementCreateRequest,
    MovementUpdateRequest,
    TransferCreateRequest,
    TransferUpdateRequest,
)
from finanzas.services.auth import require_user
from finanzas.services.movements import (
    EXPENSE,
    INCOME,
    create_expense,
    create_income,
    create_transfer,
    delete_expense,
    delete_income,
    delete_transfer,
    get_transfer,
    list_movements,
    list_transfers,
    update_expense,
    update_income,
    update_transfer,
)

router = APIRouter(prefix="/v1")


@router.get("/incomes")
def incomes_list(
    req: Request,
    from_date: str | None = None,
    to_date: str | None = None,
    category_id: str | None = None,
):
    user_id = require_user(req)
    with db_repository() as repo:
        rows = list_movements(repo, user_id, INCOME, from_date, to_date, category_id)
    return {"incomes": rows}


@router.post("/incomes", status_code=201)
def incomes_create(req: Request, payload: MovementCreateRequest):
    user_id = require_user(req)
    with db_repository() as repo:
        row = create_income(repo, user_id, payload.model_dump())
    return {"ok": True, "income": row}


@router.put("/incomes/{income_id}")
def incomes_update(income_id: str, req: Request, payload: MovementUpdateRequest):
    user_id = require_user(req)
    with db_repository() as repo:
        row = update_income(repo, user_id, income_id, payload.model_dump(exclude_unset=True))
    return {"ok": True, "income": row}


@router.delete("/incomes/{income_id}")
def incomes_delete(income_id: str, req: Request):
    user_id = require_user(req)
    with db_repository() as repo:
        delete_income(repo, user_id, income_id)
    return {"ok": True}


@router.get("/expenses")
def expenses_list(
    req: Request,
    from_date: str | None = None,
    to_date: str | None = None,
    category_id: str | None = None,
):
    user_id = require_user(req)
    with db_repository() as repo:
        rows = list_movements(repo, user_id, EXPENSE, from_date, to_date, category_id)
    return {"expenses": rows}


@router.post("/expenses", status_code=201)
def expenses_create(req: Request, payload: MovementCreateRequest):
    user_id = require_user(req)
    with db_repository() as repo:
        row = create_expense(repo, user_id, payload.model_dump())
    return {"ok": True, "expense": row}


@router.put("/expenses/{expense_id}")
def expenses_update(expense_id: str, req: Request, payload: MovementUpdateRequest):
    user_id = require_user(req)
    with db_repository() as repo:
        row = update_expense(repo, user_id, expense_id, payload.model_dump(exclude_unset=True))
    return {"ok": True, "expense": row}


@router.delete("/expenses/{expense_id}")
def expenses_delete(expense_id: str, req: Request):
    user_id = require_user(req)
    with db_repository() as repo:
        delete_expense(repo, user_id, expense_id)
    return {"ok": True}


@router.get("/transfers")
def transfers_list(req: Request, from_date: str | None = None, to_date: str | None = None):
    user_id = require_user(req)
    with db_repository() as repo:
        rows = list_transfers(repo, user_id, from_date, to_date)
    return {"transfers": rows}


@router.get("/transfers/{transfer_id}")
def transfers_get(transfer_id: str, req: Request):
    user_id = require_user(req)
    with db_repository() as repo:
        transfer = get_transfer(repo, user_id, transfer_id)
    return {"transfer": transfer}


@router.post("/transfers", status_code=201)
def transfers_create(req: Request, payload: TransferCreateRequest):
    user_id = require_user(req)
    with db_repository() as repo:
        row = create_transfer(repo, user_id, payload.model_dump())
        transfer = get_transfer(repo, user_id, row["id"])
    return {"ok": True, "transfer": transfer}


@router.put("/transfers/{transfer_id}")
def transfers_update(transfer_id: str, req: Request, payload: TransferUpdateRequest):
    user_id = require_user(req)
    with db_repository() as repo:
        row = update_transfer(repo, user_id, transfer_id, payload.model_dump(exclude_unset=True))
        transfer = get_transfer(repo, user_id, row["id"])
    return {"ok": True, "transfer": transfer}


@router.delete("/transfers/{transfer_id}")
def transfers_delete(transfer_id: str, req: Request):
    user_id = require_user(req)
    with db_repository() as repo:
        delete_transfer(repo, user_id, transfer_id)
    return {"ok": True}
