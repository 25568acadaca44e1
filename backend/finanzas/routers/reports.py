from fastapi import APIRouter, Request
from fastapi.responses import Response

from finanzas.db.pool import db_repository
from finanzas.models.requests import ExportRequest, ReportRequest
from finanzas.services.auth import require_user
from finanzas.services.exports import export_report
from finanzas.services.ledger import pool_balances
from finanzas.services.movements import pool_balance
from finanzas.services.reports import build_report

router = APIRouter(prefix="/v1")


def _report(repo, user_id: str, payload: ReportRequest) -> dict:
    return build_report(
        repo,
        user_id,
        dataset=payload.dataset,
        from_date=payload.from_date,
        to_date=payload.to_date,
        range_name=payload.range,
        opening_balance=payload.opening_balance,
        order=payload.order,
        source=payload.source,
    )


@router.get("/balance")
def balance(
    req: Request,
    source: str = "cash",
    account_id: str | None = None,
    currency: str | None = None,
):
    user_id = require_user(req)
    with db_repository() as repo:
        return pool_balance(repo, user_id, source, account_id, currency)


@router.get("/pools/balance")
def balances_by_pool(req: Request):
    user_id = require_user(req)
    with db_repository() as repo:
        return pool_balances(repo, user_id)


@router.post("/reports")
def reports(req: Request, payload: ReportRequest):
    user_id = require_user(req)
    with db_repository() as repo:
        return _report(repo, user_id, payload)


@router.post("/reports/export")
def reports_export(req: Request, payload: ExportRequest):
    user_id = require_user(req)
    with db_repository() as repo:
        report = _report(repo, user_id, payload)

    export_payload = export_report(report, payload.format)
    return Response(
        content=export_payload["content"],
        media_type=export_payload["media_type"],
        headers={"Content-Disposition": f'attachment; filename="{export_payload["filename"]}"'},
    )
