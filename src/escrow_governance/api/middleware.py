"""FastAPI middleware for request tracing, error handling, and CORS.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware: injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware: catches domain exceptions -> structured JSON errors
    3. CORSMiddleware
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from escrow_governance.domain.exceptions import (
    AlreadyExistsError,
    ConcurrentModificationError,
    EscrowGovernanceError,
    InvalidAmountError,
    InvalidChoiceError,
    InvalidStateError,
    NotAuthorizedError,
    NotFoundError,
    VotingClosedError,
    WalletMismatchError,
    WalletUnresolvedError,
)
from escrow_governance.schemas.common import ErrorResponse

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

# First match wins, so subclasses must precede their bases.
ERROR_STATUS: tuple[tuple[type[EscrowGovernanceError], int], ...] = (
    (NotFoundError, 404),
    (NotAuthorizedError, 403),
    (AlreadyExistsError, 409),
    (InvalidStateError, 409),
    (VotingClosedError, 409),
    (ConcurrentModificationError, 409),
    (InvalidAmountError, 422),
    (InvalidChoiceError, 422),
    (WalletMismatchError, 422),
    (WalletUnresolvedError, 422),
)


def status_for(exc: EscrowGovernanceError) -> int:
    """HTTP status for a domain error; anything unlisted is a plain 400."""
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 400


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except EscrowGovernanceError as exc:
            status_code = status_for(exc)
            if status_code == 400:
                logger.error("domain.error", error=exc.message, code=exc.code)
            else:
                logger.warning(
                    "domain.rejected",
                    error=exc.message,
                    code=exc.code,
                    status=status_code,
                    path=request.url.path,
                )
            return JSONResponse(
                status_code=status_code,
                content=ErrorResponse(error=exc.code, message=exc.message).model_dump(),
            )
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content=ErrorResponse(
                    error="INTERNAL_ERROR",
                    message="An unexpected error occurred",
                ).model_dump(),
            )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    The last added middleware runs first.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIDMiddleware)
