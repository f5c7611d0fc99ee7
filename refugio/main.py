"""FastAPI application entrypoint. No business logic; only wiring, middleware and error mapping."""

from dotenv import load_dotenv

load_dotenv()

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from refugio.api.v1 import router as v1_router
from refugio.core.config import settings
from refugio.core.exceptions import (
    AuthError,
    ConfirmationPending,
    Conflict,
    InvalidCredentials,
    InvalidResetToken,
    StoreUnavailable,
    UserNotFound,
    WeakPassword,
)

logger = logging.getLogger(__name__)

# Error class -> (HTTP status, stable code for the UI). Most specific class wins via the MRO walk.
AUTH_ERROR_RESPONSES: dict[type[AuthError], tuple[int, str]] = {
    InvalidCredentials: (status.HTTP_401_UNAUTHORIZED, "invalid_credentials"),
    Conflict: (status.HTTP_409_CONFLICT, "already_registered"),
    WeakPassword: (status.HTTP_422_UNPROCESSABLE_ENTITY, "weak_password"),
    UserNotFound: (status.HTTP_404_NOT_FOUND, "user_not_found"),
    InvalidResetToken: (status.HTTP_400_BAD_REQUEST, "invalid_reset_token"),
    ConfirmationPending: (status.HTTP_202_ACCEPTED, "confirmation_pending"),
    StoreUnavailable: (status.HTTP_503_SERVICE_UNAVAILABLE, "store_unavailable"),
}

RETRY_AFTER_SECONDS = "5"

app = FastAPI(
    title="Refugio Auth API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.APP_ENV == "dev" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(v1_router, prefix=settings.API_V1_PREFIX)


def auth_error_response(exc: AuthError) -> JSONResponse:
    """Render an AuthError as {detail, code, retryable}."""
    status_code, code = status.HTTP_400_BAD_REQUEST, "auth_error"
    for cls in type(exc).__mro__:
        if cls in AUTH_ERROR_RESPONSES:
            status_code, code = AUTH_ERROR_RESPONSES[cls]
            break
    retryable = isinstance(exc, StoreUnavailable)
    headers = {"Retry-After": RETRY_AFTER_SECONDS} if retryable else None
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": code, "retryable": retryable},
        headers=headers,
    )


@app.exception_handler(AuthError)
async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
    return auth_error_response(exc)


@app.exception_handler(OperationalError)
async def handle_database_unavailable(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("Database unavailable", extra={"path": request.url.path})
    return auth_error_response(StoreUnavailable(cause=exc))


@app.get("/")
def root() -> dict[str, str]:
    """Root route; minimal payload for discovery."""
    return {"message": "Refugio Auth API"}
