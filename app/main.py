import logging
import os
import time

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException

from app.config import settings
from app.logging_config import setup_logging, get_logger
from app.logging_utils import request_id_ctx, new_request_id
from app.routes import limiter, router
from connectors.base import FileTooLargeError, MalformedResponseError, UpstreamError

logger = get_logger(__name__)

app = FastAPI(title="HabiCapital document dashboard API")
setup_logging(settings.log_level)


def _sentry_before_send(event, hint):
    req = event.get("request") or {}
    # Remove request body & cookies
    req.pop("data", None)
    req.pop("cookies", None)
    headers = req.get("headers") or {}
    headers = {k: v for k, v in headers.items() if k.lower() not in ("authorization", "x-api-key")}
    req["headers"] = headers
    event["request"] = req
    return event


if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        integrations=[FastApiIntegration()],
        environment=os.getenv("SENTRY_ENVIRONMENT", "dev"),
        send_default_pii=False,
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0") or "0"),
        before_send=_sentry_before_send,
    )


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or new_request_id()
    token = request_id_ctx.set(rid)

    start = time.time()
    try:
        response = await call_next(request)
        duration_ms = int((time.time() - start) * 1000)

        response.headers["X-Request-ID"] = rid

        logging.getLogger("app.request").info(
            "%s %s -> %s (%dms)",
            request.method,
            request.url.path,
            getattr(response, "status_code", "?"),
            duration_ms,
        )
        return response
    finally:
        request_id_ctx.reset(token)


# ============== Error envelope ==============

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    logger.warning(f"upstream error | path={request.url.path} | status={exc.status_code} | err={exc.message}")
    return _error(exc.status_code, exc.message)


@app.exception_handler(MalformedResponseError)
async def malformed_response_handler(request: Request, exc: MalformedResponseError):
    return _error(502, exc.message)


@app.exception_handler(FileTooLargeError)
async def file_too_large_handler(request: Request, exc: FileTooLargeError):
    logger.info(f"upload rejected | bytes={exc.size_bytes} | max={exc.max_bytes}")
    return _error(413, exc.message)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Solicitud inválida", "meta": {"details": jsonable_encoder(exc.errors())}},
    )


# ============== Middleware ==============

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS - configure allowed origins
# In production, set CORS_ORIGINS env var to your domain(s)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

logger.info(f"CORS enabled for origins: {settings.cors_origins}")

app.include_router(router)


@app.get("/health")
def health_check():
    """Health check endpoint. Returns minimal status information."""
    return {
        "status": "healthy",
    }
