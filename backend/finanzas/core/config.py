import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation


@dataclass(frozen=True)
class Settings:
    database_url: str
    redis_url: str | None
    redis_prefix: str
    db_pool_min: int
    db_pool_max: int
    db_pool_timeout: float
    db_pool_max_waiting: int
    usd_to_local_rate: Decimal
    serialize_pool_writes: bool
    api_rate_limit: int
    api_rate_window: int
    auth_fail_limit: int
    auth_fail_window: int
    log_level: str
    allowed_origins: tuple[str, ...]


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_rate(name: str, default: str) -> Decimal:
    raw = (os.getenv(name) or default).strip()
    try:
        rate = Decimal(raw)
    except InvalidOperation:
        raise RuntimeError(f"{name} must be a decimal number")
    if rate <= 0:
        raise RuntimeError(f"{name} must be greater than zero")
    return rate


def load_settings() -> Settings:
    database_url = os.getenv("DATABASE_URL", "")
    if not database_url:
        raise RuntimeError("DATABASE_URL is required")

    db_pool_min = max(1, int(os.getenv("DB_POOL_MIN", "1")))
    db_pool_max = max(db_pool_min, int(os.getenv("DB_POOL_MAX", "10")))

    origins = tuple(o.strip() for o in (os.getenv("ALLOWED_ORIGINS") or "").split(",") if o.strip())

    return Settings(
        database_url=database_url,
        redis_url=(os.getenv("REDIS_URL") or "").strip() or None,
        redis_prefix=(os.getenv("REDIS_PREFIX") or "finanzas").strip() or "finanzas",
        db_pool_min=db_pool_min,
        db_pool_max=db_pool_max,
        db_pool_timeout=float(os.getenv("DB_POOL_TIMEOUT", "30")),
        db_pool_max_waiting=int(os.getenv("DB_POOL_MAX_WAITING", "100")),
        # 1 USD = 36.70 C$
        usd_to_local_rate=_env_rate("USD_TO_LOCAL_RATE", "36.7"),
        serialize_pool_writes=_env_bool("SERIALIZE_POOL_WRITES", "true"),
        api_rate_limit=int(os.getenv("API_RATE_LIMIT", "100")),
        api_rate_window=int(os.getenv("API_RATE_WINDOW", "60")),
        auth_fail_limit=int(os.getenv("AUTH_FAIL_LIMIT", "10")),
        auth_fail_window=int(os.getenv("AUTH_FAIL_WINDOW", "300")),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper() or "INFO",
        allowed_origins=origins,
    )


settings = load_settings()
