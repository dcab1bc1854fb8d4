"""
D&D Combat Engine - Error Handlers
Formats all exceptions into structured JSON responses.
"""
from datetime import datetime
from typing import Any, Dict, Optional
import logging
import traceback
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from dnd_combat.core.errors import ErrorCode, GameError

logger = logging.getLogger("dnd_engine.errors")

HTTP_STATUS_ERROR_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    429: ErrorCode.AI_RATE_LIMITED,
    500: ErrorCode.UNKNOWN,
    503: ErrorCode.AI_SERVICE_UNAVAILABLE,
}


def _generate_error_id() -> str:
    """Short id to correlate a response with its log line."""
    return str(uuid.uuid4())[:8]


def _error_body(
    code: ErrorCode,
    message: str,
    error_id: str,
    details: Optional[Dict[str, Any]] = None,
    recoverable: bool = True,
    recovery_hint: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "error": {
            "code": code.value,
            "message": message,
            "details": details or {},
            "recoverable": recoverable,
            "recovery_hint": recovery_hint,
            "error_id": error_id,
            "timestamp": datetime.utcnow().isoformat(),
        }
    }


def setup_error_handlers(app: FastAPI, debug: bool = False):
    """
    Setup all error handlers for the FastAPI application.

    Call this function after creating the FastAPI app to register
    exception handlers for GameError and standard exceptions.
    """

    @app.exception_handler(GameError)
    async def game_error_handler(request: Request, exc: GameError):
        """Handle GameError exceptions."""
        error_id = _generate_error_id()

        log = logger.error if exc.http_status >= 500 else logger.warning
        log(
            f"[{error_id}] GameError: {exc.code.value} - {exc.message}",
            extra={
                "error_id": error_id,
                "error_code": exc.code.value,
                "path": str(request.url.path),
            }
        )

        response_data = exc.to_dict()
        response_data["error"]["error_id"] = error_id
        response_data["error"]["timestamp"] = datetime.utcnow().isoformat()

        return JSONResponse(
            status_code=exc.http_status,
            content=response_data
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        """Handle Pydantic validation errors from request parsing."""
        errors = []
        for error in exc.errors():
            field = " -> ".join(str(loc) for loc in error.get("loc", []))
            errors.append({
                "field": field,
                "message": error.get("msg", "Invalid value"),
                "type": error.get("type", "validation_error")
            })

        error_id = _generate_error_id()
        logger.info(f"[{error_id}] Request validation failed on {request.url.path}: {len(errors)} errors")

        return JSONResponse(
            status_code=422,
            content=_error_body(
                ErrorCode.VALIDATION_ERROR,
                "Request validation failed",
                error_id,
                details={"errors": errors},
                recovery_hint="Check the request data and correct any invalid fields",
            )
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle standard HTTP exceptions."""
        error_id = _generate_error_id()
        error_code = HTTP_STATUS_ERROR_CODES.get(exc.status_code, ErrorCode.UNKNOWN)

        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(
                error_code,
                str(exc.detail) if exc.detail else "An error occurred",
                error_id,
                recoverable=exc.status_code < 500,
            )
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions."""
        error_id = _generate_error_id()

        logger.error(
            f"[{error_id}] Unhandled exception on {request.method} {request.url.path}: {type(exc).__name__}: {exc}",
            extra={
                "error_id": error_id,
                "path": str(request.url.path),
                "method": request.method,
            },
            exc_info=True
        )

        content = _error_body(
            ErrorCode.UNKNOWN,
            "An unexpected error occurred",
            error_id,
            recoverable=False,
            recovery_hint="Please try again or contact support",
        )

        # Add debug info if in debug mode
        if debug:
            content["error"]["debug"] = {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
                "traceback": traceback.format_exc().split("\n")
            }

        return JSONResponse(
            status_code=500,
            content=content
        )

    return app
