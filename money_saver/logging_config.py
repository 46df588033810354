import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import List, Optional


APP_LOGGER_NAME = "money_saver"

# Modules that score, link and de-duplicate transactions. Their chatter is
# controlled separately from the rest of the app.
RECONCILIATION_LOGGERS = [
    "money_saver.services.duplicate_detection",
    "money_saver.services.transaction_matching",
    "money_saver.services.transaction_linking",
    "money_saver.services.automatic_linking",
]

LIBRARY_LOGGERS = [
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "sqlalchemy.orm",
    "alembic",
    "uvicorn.access",
    "uvicorn.error",
    "httpx",
    "faker",
]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _level(value: Optional[str], env_var: str, default: str) -> int:
    name = value or os.getenv(env_var, default)
    return getattr(logging, name.upper(), getattr(logging, default))


def _build_handlers(log_file: Optional[str], max_file_size: int, backup_count: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_file_size,
            backupCount=backup_count
        ))

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(
    app_log_level: Optional[str] = None,
    reconciliation_log_level: Optional[str] = None,
    third_party_log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the ``money_saver`` logger tree.

    Args:
        app_log_level: Level for application logs (env APP_LOG_LEVEL, default INFO)
        reconciliation_log_level: Level for duplicate detection, matching and
            linking (env RECONCILIATION_LOG_LEVEL, defaults to the app level)
        third_party_log_level: Level for library loggers (env THIRD_PARTY_LOG_LEVEL, default WARNING)
        log_file: Optional rotating log file (env LOG_FILE). Console only when unset
        max_file_size: Bytes before the log file rotates
        backup_count: Rotated files to keep

    Returns:
        The application root logger
    """
    app_level = _level(app_log_level, "APP_LOG_LEVEL", "INFO")
    reconciliation_level = _level(
        reconciliation_log_level, "RECONCILIATION_LOG_LEVEL", logging.getLevelName(app_level)
    )
    library_level = _level(third_party_log_level, "THIRD_PARTY_LOG_LEVEL", "WARNING")

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(app_level)

    # Handlers are rebuilt on every call so reconfiguring never duplicates output
    app_logger.handlers.clear()
    for handler in _build_handlers(log_file or os.getenv("LOG_FILE"), max_file_size, backup_count):
        app_logger.addHandler(handler)

    for name in RECONCILIATION_LOGGERS:
        logging.getLogger(name).setLevel(reconciliation_level)

    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    app_logger.propagate = False
    return app_logger


def get_logger(name: str = APP_LOGGER_NAME) -> logging.Logger:
    """Return a logger under ``money_saver``; ``__name__`` values already inside the package are kept as-is."""
    if name == APP_LOGGER_NAME or name.startswith(f"{APP_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{APP_LOGGER_NAME}.{name}")
