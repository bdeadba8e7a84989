"""
Logging configuration for Studio CRM.

Single 'studiocrm' logger used across all modules.

  Log file : $STUDIOCRM_LOG_DIR/studiocrm.log (defaults to logs/ in the project root)
  Rotation : 5 MB × 3 backups
  Level    : LOG_LEVEL env var (DEBUG / INFO / WARNING / ERROR / CRITICAL)
             defaults to INFO when unset

Usage
-----
    from studiocrm.logging_config import configure_logging, log_call

    # Once at startup (idempotent):
    configure_logging()

    # On any command you want traced:
    @log_call
    def contracts_status(contract_id, new_status):
        ...

Log format per line
-------------------
    2026-03-02 09:14:07 | DEBUG    | CALL contracts_status | args=(contract_id=7, new_status='editing')
    2026-03-02 09:14:07 | INFO     | OK   contracts_status | 18ms
    2026-03-02 09:14:09 | WARNING  | REJECTED contracts_status | InvalidTransitionError: Cannot transition from draft to ready | 4ms
    2026-03-02 09:14:11 | ERROR    | FAIL contracts_status | OperationalError: connection refused | 30ms
"""

import functools
import logging
import logging.handlers
import os
import time
from pathlib import Path

_LOG_DIR = Path(os.environ.get("STUDIOCRM_LOG_DIR", Path(__file__).parent.parent / "logs"))
_LOG_FILE = _LOG_DIR / "studiocrm.log"
_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
_BACKUP_COUNT = 3


def configure_logging() -> logging.Logger:
    """
    Set up the studiocrm logger. Idempotent — safe to call on every CLI entry.
    Returns the configured logger.
    """
    _LOG_DIR.mkdir(parents=True, exist_ok=True)

    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger("studiocrm")

    # Guard: don't add duplicate handlers if already configured
    if logger.handlers:
        return logger

    logger.setLevel(level)

    handler = logging.handlers.RotatingFileHandler(
        _LOG_FILE,
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(handler)

    return logger


def log_call(func):
    """
    Decorator: logs entry, clean exit, and exceptions for any function.

    - DEBUG   on entry    : CALL <name> | args=(...)
    - INFO    on success  : OK   <name> | <N>ms
    - WARNING on ValueError (rejected input, illegal transition):
                            REJECTED <name> | ExcType: message | <N>ms
    - ERROR   on anything else : FAIL <name> | ExcType: message | <N>ms
    Always re-raises.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger("studiocrm")
        name = func.__name__
        start = time.perf_counter()

        parts = [repr(a) for a in args] + [f"{k}={v!r}" for k, v in kwargs.items()]
        arg_str = ", ".join(parts) if parts else "—"
        logger.debug(f"CALL {name} | args=({arg_str})")

        try:
            result = func(*args, **kwargs)
            ms = int((time.perf_counter() - start) * 1000)
            logger.info(f"OK   {name} | {ms}ms")
            return result
        except ValueError as exc:
            ms = int((time.perf_counter() - start) * 1000)
            logger.warning(f"REJECTED {name} | {type(exc).__name__}: {exc} | {ms}ms")
            raise
        except Exception as exc:
            ms = int((time.perf_counter() - start) * 1000)
            logger.error(f"FAIL {name} | {type(exc).__name__}: {exc} | {ms}ms")
            raise

    return wrapper
