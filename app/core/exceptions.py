"""
Lifecycle error taxonomy and the FastAPI handlers that render it.

Services raise these directly; routers let them propagate. Every error is
rendered as {"error": {"code": ..., "message": ...}}.
"""
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500, code: str = "INTERNAL_ERROR"):
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class InvalidTransition(AppException):
    def __init__(self, message: str):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT,
                         code="INVALID_TRANSITION")


class MissingRequiredField(AppException):
    def __init__(self, message: str):
        super().__init__(message, status_code=422,
                         code="MISSING_REQUIRED_FIELD")


class InvalidFormat(AppException):
    def __init__(self, message: str):
        super().__init__(message, status_code=422,
                         code="INVALID_FORMAT")


class PaymentGatewayError(AppException):
    """Raised when the payment processor rejects or fails a call."""

    def __init__(self, message: str):
        super().__init__(message, status_code=status.HTTP_502_BAD_GATEWAY,
                         code="PAYMENT_GATEWAY_ERROR")


class AlreadyPromoted(AppException):
    def __init__(self, sample_id):
        super().__init__(
            f"Sample '{sample_id}' has already been promoted to an order",
            status_code=status.HTTP_409_CONFLICT,
            code="ALREADY_PROMOTED")


class InvalidState(AppException):
    def __init__(self, message: str):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT,
                         code="INVALID_STATE")


class NotFound(AppException):
    def __init__(self, entity: str, entity_id: Optional[object] = None):
        msg = f"{entity} not found" if entity_id is None else f"{entity} '{entity_id}' not found"
        super().__init__(msg, status_code=status.HTTP_404_NOT_FOUND, code="NOT_FOUND")


class AssignmentError(AppException):
    def __init__(self, message: str = "No active rep available to assign"):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT,
                         code="ASSIGNMENT_ERROR")


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def _error_body(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the taxonomy handlers to the FastAPI app."""

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        logger.warning(
            f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.code, exc.message),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request,
                                           exc: RequestValidationError) -> JSONResponse:
        # The offending input is left out: NaN cannot be rendered as JSON
        message = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        logger.warning(f"{request.method} {request.url.path} -> INVALID_FORMAT: {message}")
        return JSONResponse(
            status_code=422,
            content=_error_body("INVALID_FORMAT", message),
        )
