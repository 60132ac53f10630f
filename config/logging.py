# coding: utf-8
"""
Loguru setup for the Fanova API

Sinks:
- stdout, colored
- logs/api_<date>.log (everything from DEBUG) and logs/error_<date>.log
  when LOG_TO_FILE is on
- Sentry for ERROR and above when SENTRY_DSN is set

Bearer tokens and Stripe secrets are masked in every record before any
sink sees it.
"""
import logging
import re
import sys
from pathlib import Path

import sentry_sdk
from loguru import logger

from config.config import ENVIRONMENT, LOG_DIR, LOG_LEVEL, LOG_TO_FILE, SENTRY_DSN


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[request_id]} | "
    "{name}:{function}:{line} | {message}"
)

_SECRET_PATTERNS = [
    (re.compile(r"Bearer\s+[A-Za-z0-9\-_\.]+"), "Bearer [redacted]"),
    (re.compile(r"\b(sk|rk)_(live|test)_[A-Za-z0-9]+"), r"\1_\2_[redacted]"),
    (re.compile(r"\bwhsec_[A-Za-z0-9]+"), "whsec_[redacted]"),
]

# Chatty libraries kept at WARNING
QUIET_LOGGERS = ("aiohttp", "httpx", "httpcore", "stripe", "openai", "google_genai", "asyncio")


def redact(text: str) -> str:
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def _redact_record(record) -> None:
    record["message"] = redact(record["message"])


def setup_logging() -> None:
    """Configure loguru sinks (idempotent)"""
    logger.remove()
    logger.configure(patcher=_redact_record, extra={"environment": ENVIRONMENT, "request_id": "-"})

    logger.add(sys.stdout, format=CONSOLE_FORMAT, level=LOG_LEVEL, colorize=True)

    if LOG_TO_FILE:
        logs_dir = Path(LOG_DIR)
        logs_dir.mkdir(parents=True, exist_ok=True)

        logger.add(
            logs_dir / "api_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT,
            level="DEBUG",
            rotation="00:00",
            retention="7 days",
            compression="zip",
            encoding="utf-8",
            enqueue=True,
        )
        logger.add(
            logs_dir / "error_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT,
            level="ERROR",
            rotation="00:00",
            retention="30 days",
            compression="zip",
            encoding="utf-8",
            enqueue=True,
            backtrace=True,
        )

    if SENTRY_DSN:
        logger.add(sentry_sink, level="ERROR", format="{message}")

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.ERROR)

    logger.info(f"Logging ready | env={ENVIRONMENT} level={LOG_LEVEL} files={'on' if LOG_TO_FILE else 'off'}")


def sentry_sink(message) -> None:
    """
    Forward ERROR/CRITICAL records to Sentry

    Records carrying an exception are sent as exceptions (grouped by
    traceback), the rest as messages.
    """
    record = message.record

    if record["exception"] and record["exception"].value is not None:
        sentry_sdk.capture_exception(record["exception"].value)
        return

    level = "fatal" if record["level"].name == "CRITICAL" else "error"
    with sentry_sdk.new_scope() as scope:
        scope.set_extra("logger", record["name"])
        scope.set_extra("function", record["function"])
        scope.set_extra("line", record["line"])
        sentry_sdk.capture_message(record["message"], level=level)
