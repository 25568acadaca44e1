import logging

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once for the API process."""
    log_level = getattr(logging, str(level).upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # psycopg_pool is chatty at INFO about pool growth.
    logging.getLogger("psycopg.pool").setLevel(max(log_level, logging.WARNING))
    logger.debug("Logging configured at %s", logging.getLevelName(log_level))
