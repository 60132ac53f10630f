# coding: utf-8
"""
Sentry error monitoring

Enabled only when SENTRY_DSN is set. Request headers carrying credentials
are masked and expected client errors (FanovaError with a 4xx status,
HTTPException below 500) are not reported.
"""
from fastapi import HTTPException
import sentry_sdk
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.aiohttp import AioHttpIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from loguru import logger

from config.config import SENTRY_DSN, ENVIRONMENT
from src.core.exceptions import FanovaError


SENSITIVE_HEADERS = {"authorization", "stripe-signature", "x-user-id", "cookie"}


def init_sentry() -> None:
    if not SENTRY_DSN:
        logger.info("SENTRY_DSN not set, error monitoring disabled")
        return

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=ENVIRONMENT,
        integrations=[
            AsyncioIntegration(),
            SqlalchemyIntegration(),
            AioHttpIntegration(),  # Wavespeed / Fal.ai
            FastApiIntegration(),
        ],
        traces_sample_rate=0.1 if ENVIRONMENT == "production" else 1.0,
        send_default_pii=False,
        max_breadcrumbs=50,
        before_send=before_send,
    )
    logger.info(f"Sentry enabled ({ENVIRONMENT})")


def is_client_error(error: BaseException) -> bool:
    if isinstance(error, FanovaError):
        return error.status_code < 500
    if isinstance(error, HTTPException):
        return error.status_code < 500
    return isinstance(error, KeyboardInterrupt)


def before_send(event, hint):
    """Drop client errors, mask credential headers"""
    exc_info = hint.get("exc_info")
    if exc_info and is_client_error(exc_info[1]):
        return None

    headers = (event.get("request") or {}).get("headers") or {}
    for name in list(headers):
        if name.lower() in SENSITIVE_HEADERS:
            headers[name] = "[Filtered]"

    return event


def set_user_context(user_id: str, email: str | None = None) -> None:
    """Tag events with the profile id (the email itself is never sent)"""
    sentry_sdk.set_user({"id": str(user_id), "has_email": bool(email)})
