import logging
from contextlib import asynccontextmanager

import psycopg
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from finanzas.core.config import settings
from finanzas.core.errors import InsufficientBalance, LedgerError
from finanzas.core.log import setup_logging
from finanzas.db.pool import close_db_pool, open_db_pool
from finanzas.routers.catalog import router as catalog_router
from finanzas.routers.movements import router as movements_router
from finanzas.routers.reports import router as reports_router
from finanzas.services.state import rate_limiter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging(settings.log_level)
    open_db_pool()
    logger.info("Database pool open, shared rate limits: %s", rate_limiter.shared)
    try:
        yield
    finally:
        close_db_pool()


app = FastAPI(lifespan=lifespan)
if settings.allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


app.include_router(catalog_router)
app.include_router(movements_router)
app.include_router(reports_router)


@app.get("/health")
def health():
    return {"ok": True}


@app.exception_handler(LedgerError)
def ledger_exc_handler(_: Request, exc: LedgerError):
    content = {"ok": False, "code": exc.code, "detail": exc.message}
    if isinstance(exc, InsufficientBalance) and exc.available is not None:
        content["available"] = str(exc.available)
        content["requested"] = str(exc.requested)
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(HTTPException)
def http_exc_handler(_: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "code": "http_error", "detail": exc.detail},
    )


@app.exception_handler(psycopg.Error)
def db_exc_handler(req: Request, exc: psycopg.Error):
    logger.error("Database error on %s %s", req.method, req.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"ok": False, "code": "internal_error", "detail": "Internal error"})
