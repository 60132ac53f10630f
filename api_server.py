"""
Fanova API server

FastAPI app for the Fanova web client: auth/profile, model personas and
image generation, credit ledger, Stripe subscriptions, referrals, admin.

Run:
    alembic upgrade head
    python api_server.py          # or: uvicorn api_server:app
"""

import sys
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from config.config import ENVIRONMENT, FRONTEND_URL, validate_config
from config.logging import setup_logging
from config.sentry import init_sentry
from src.api.rate_limit import limiter
from src.api.router import router as api_router
from src.core.exceptions import FanovaError
from src.database.engine import dispose_engine, ping_database

APP_VERSION = "1.0.0"

# uvicorn imports this module; sinks must exist before the app logs anything
setup_logging()
init_sentry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Fanova API {APP_VERSION} starting ({ENVIRONMENT})")
    yield
    await dispose_engine()
    logger.info("Fanova API stopped")


app = FastAPI(
    title="Fanova API",
    description="AI model personas, image generation, credits and subscriptions",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

DEV_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"]
allowed_origins = [FRONTEND_URL] if ENVIRONMENT == "production" else DEV_ORIGINS + [FRONTEND_URL]

app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted(set(filter(None, allowed_origins))),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """
    Request id for log correlation plus JSON-API security headers

    The id is taken from X-Request-Id when the proxy sets one.
    """
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]

    with logger.contextualize(request_id=request_id):
        response = await call_next(request)

    response.headers["X-Request-Id"] = request_id
    response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if ENVIRONMENT == "production" and request.url.scheme == "https":
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    return response


app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    return {"service": "Fanova API", "version": APP_VERSION, "docs": "/docs"}


@app.get("/health")
async def health():
    """Readiness: 503 while the database is unreachable"""
    if not await ping_database():
        return JSONResponse(status_code=503, content={"status": "unhealthy", "database": "down"})
    return {"status": "healthy", "database": "up"}


@app.exception_handler(FanovaError)
async def fanova_error_handler(request: Request, exc: FanovaError):
    """Domain errors that escaped a route: same body as to_http_exception"""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Dict details ({"error", "code"}) go out as-is, strings as {"detail": ...}"""
    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code} {request.method} {request.url.path}: {exc.detail}")
    elif exc.status_code not in (401, 404):
        logger.warning(f"HTTP {exc.status_code} {request.method} {request.url.path}: {exc.detail}")

    content = exc.detail if isinstance(exc.detail, dict) else {"detail": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Logged with traceback (and sent to Sentry), never echoed to the client"""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


if __name__ == "__main__":
    import uvicorn

    try:
        validate_config()
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    uvicorn.run(
        "api_server:app",
        host="127.0.0.1",  # Behind a reverse proxy
        port=8000,
        reload=ENVIRONMENT == "development",
        log_level="info",
    )
