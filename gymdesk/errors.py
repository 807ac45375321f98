# gymdesk/errors.py
"""
Error taxonomy and the FastAPI exception handlers that render it.

Every failure leaves the API as
``{"success": false, "message": ..., "error": {"code": ...}}``.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class GymDeskError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal"
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class Unauthenticated(GymDeskError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"
    default_message = "Authentication required."


class TokenExpired(Unauthenticated):
    code = "token_expired"
    default_message = "Token expired. Please refresh your token."


class TokenInvalid(Unauthenticated):
    code = "token_invalid"
    default_message = "Invalid token."


class InsufficientRole(GymDeskError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "insufficient_role"
    default_message = "Access denied. Insufficient permissions."


class AccountBlocked(GymDeskError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "account_blocked"
    default_message = "Account is deactivated. Please contact administrator."


class NoTenantContext(GymDeskError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "no_tenant_context"
    default_message = "Access denied. Gym context not found."


class CrossTenantAccess(GymDeskError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "cross_tenant_access"
    default_message = "Access denied. Cannot access data from another gym."


class NotFound(GymDeskError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Not found"


class DuplicateIdentity(GymDeskError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_identity"
    default_message = "User with this email already exists"


class DuplicatePlanName(GymDeskError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_plan_name"
    default_message = "Plan with this name already exists"


class MalformedCredential(GymDeskError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "malformed_credential"
    default_message = "Invalid QR code format"


class ForeignCredential(GymDeskError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "foreign_credential"
    default_message = "QR code does not belong to this gym"


class UnknownMember(GymDeskError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "unknown_member"
    default_message = "Member not found or does not belong to this gym"


class QRCodePermanent(GymDeskError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "qr_permanent"
    default_message = "QR code is permanent and cannot be regenerated"


class ValidationFailed(GymDeskError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"
    default_message = "Validation error"


class Internal(GymDeskError):
    pass


def _envelope(status_code: int, message: str, code: str, details: Any = None) -> JSONResponse:
    error: Dict[str, Any] = {"code": code}
    if details is not None:
        error["details"] = details
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "error": error},
    )


async def gymdesk_error_handler(request: Request, exc: GymDeskError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return _envelope(exc.status_code, exc.message, exc.code, exc.details)


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    http_exc = exc if isinstance(exc, HTTPException) else HTTPException(status_code=500, detail=str(exc))
    return _envelope(http_exc.status_code, str(http_exc.detail), "http_error")


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    errors = []
    if isinstance(exc, RequestValidationError):
        for error in exc.errors():
            errors.append(
                {
                    "field": ".".join(str(loc) for loc in error["loc"]),
                    "message": error["msg"],
                    "type": error["type"],
                }
            )
    logger.warning("Validation error on %s: %s", request.url.path, errors)
    return _envelope(status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation error", ValidationFailed.code, errors)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, Internal.default_message, Internal.code)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GymDeskError, gymdesk_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
