"""
Typed failures raised by the service layer.

Routers never translate these by hand: ``register_exception_handlers`` renders
every ``DomainError`` with the same ``{"detail": ...}`` body FastAPI uses for
``HTTPException`` so clients see one error shape across the cluster.
"""
from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

logger = structlog.get_logger(__name__)


class DomainError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT


class InsufficientStockError(ConflictError):
    """Raised when one or more cart lines cannot be reserved.

    ``details`` is a list of ``{"variant_id", "requested", "available"}``
    dicts, one per failing line.
    """


class PreconditionError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class SecurityError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class UpstreamError(DomainError):
    status_code = status.HTTP_502_BAD_GATEWAY


class GatewayTimeoutError(UpstreamError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.info(
        "request_rejected",
        path=request.url.path,
        error=type(exc).__name__,
        status_code=exc.status_code,
        detail=exc.message,
    )
    body = {"detail": exc.message}
    if exc.details is not None:
        body["errors"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=body)


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"detail": f"Rate limit exceeded: {exc.detail}"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
