"""
Order engine error taxonomy.

Every error a service can raise towards a client carries its HTTP status code,
so routers never translate error strings. Anything that is not an
OrderEngineError is treated as an internal failure and answered with a static
500 message.
"""
import logging
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class OrderEngineError(Exception):
    """Base class for errors that map to a specific HTTP response."""
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> dict:
        return {"detail": self.message}


class ValidationFailed(OrderEngineError):
    """Request payload failed validation; carries every message at once."""
    status_code = 400

    def __init__(self, errors: List[str], message: str = "Validation failed"):
        super().__init__(message)
        self.errors = list(errors)

    def to_payload(self) -> dict:
        return {"detail": self.message, "errors": self.errors}


class OrderNotReady(OrderEngineError):
    status_code = 400


class InvalidEntryPrice(OrderEngineError):
    status_code = 400


class InsufficientBalance(OrderEngineError):
    status_code = 400


class InvalidTransition(OrderEngineError):
    """Requested status change is not allowed from the row's current status."""
    status_code = 400


class Forbidden(OrderEngineError):
    status_code = 403


class NotFound(OrderEngineError):
    status_code = 404


class ExecutionFailed(OrderEngineError):
    status_code = 500


def register_exception_handlers(app: FastAPI) -> None:
    """Install the JSON error mapping on an application."""

    @app.exception_handler(OrderEngineError)
    async def order_engine_error_handler(request: Request, exc: OrderEngineError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            f"{'.'.join(str(part) for part in err['loc'][1:]) or 'body'}: {err['msg']}"
            for err in exc.errors()
        ]
        return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": errors})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        # Internal store errors must not leak to clients
        logger.exception(f"Unhandled exception during {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
