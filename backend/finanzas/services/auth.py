import hashlib
import logging
from datetime import datetime, timezone

from fastapi import HTTPException, Request

from finanzas.core.config import settings
from finanzas.db.pool import db_conn
from finanzas.services.state import rate_limiter

logger = logging.getLogger(__name__)


def get_client_ip(req: Request) -> str:
    forwarded = req.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = req.headers.get("x-real-ip", "")
    if real_ip:
        return real_ip.strip()
    if req.client:
        return req.client.host
    return "unknown"


def hash_api_key(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def parse_bearer_token(req: Request) -> str:
    header = req.headers.get("authorization", "")
    parts = header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise HTTPException(status_code=401, detail="Missing API key")
    return parts[1].strip()


def get_api_user_by_token(token: str) -> str:
    """Resolve an API key issued by the identity provider to its user id."""
    token_hash = hash_api_key(token)
    with db_conn() as conn, conn.cursor() as cur:
        cur.execute(
            """
            SELECT k.user_id::text AS user_id
            FROM api_keys k
            WHERE k.key_hash=%s AND k.revoked_at IS NULL
            """,
            (token_hash,),
        )
        row = cur.fetchone()
        if not row:
            raise HTTPException(status_code=401, detail="Invalid API key")
        cur.execute(
            "UPDATE api_keys SET last_used_at=%s WHERE key_hash=%s",
            (datetime.now(timezone.utc), token_hash),
        )
        conn.commit()
        return row["user_id"]


def enforce_auth_failure_limit(client_ip: str) -> None:
    if rate_limiter.blocked(f"authfail:ip:{client_ip}", settings.auth_fail_limit, settings.auth_fail_window):
        raise HTTPException(status_code=429, detail="Too many failed authentication attempts. Try again later.")


def record_auth_failure(client_ip: str) -> None:
    rate_limiter.exceeded(f"authfail:ip:{client_ip}", settings.auth_fail_limit, settings.auth_fail_window)


def enforce_api_rate_limit(client_ip: str, token: str) -> None:
    key_hash = hash_api_key(token)[:24]
    if rate_limiter.exceeded(f"api:key:{key_hash}", settings.api_rate_limit, settings.api_rate_window):
        raise HTTPException(status_code=429, detail="Rate limit exceeded")
    if rate_limiter.exceeded(f"api:ip:{client_ip}", settings.api_rate_limit, settings.api_rate_window):
        raise HTTPException(status_code=429, detail="Rate limit exceeded")


def require_user(req: Request) -> str:
    client_ip = get_client_ip(req)
    enforce_auth_failure_limit(client_ip)
    try:
        token = parse_bearer_token(req)
        user_id = get_api_user_by_token(token)
    except HTTPException as exc:
        if exc.status_code == 401:
            record_auth_failure(client_ip)
            logger.info("Rejected API request from %s: %s", client_ip, exc.detail)
        raise
    enforce_api_rate_limit(client_ip, token)
    return user_id
