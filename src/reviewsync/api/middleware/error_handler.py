"""Error handling for the FastAPI application.

Converts integration errors and validation errors into JSON responses of the
form {"code": ..., "message": ...} with the matching HTTP status code.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from reviewsync.integrations.errors import IntegrationError

logger = logging.getLogger(__name__)


def _validation_response(errors: list[dict[str, Any]]) -> JSONResponse:
    formatted = [
        {"field": ".".join(str(loc) for loc in error["loc"]), "message": error["msg"]}
        for error in errors
    ]
    return JSONResponse(
        status_code=400,
        content={
            "code": "validation_error",
            "message": "Request validation failed",
            "errors": formatted,
        },
    )


def setup_error_handlers(app: FastAPI) -> None:
    """Configure exception handlers for the FastAPI application.

    Args:
        app: The FastAPI application instance to configure
    """

    @app.exception_handler(IntegrationError)
    async def handle_integration_error(request: Request, exc: IntegrationError) -> JSONResponse:
        """Handle IntegrationError and subclasses.

        Args:
            request: The incoming request that triggered the error
            exc: The IntegrationError that was raised

        Returns:
            JSONResponse with status code, error code, and message
        """
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _validation_response(list(exc.errors()))

    @app.exception_handler(PydanticValidationError)
    async def handle_validation_error(
        request: Request, exc: PydanticValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation errors raised inside handlers."""
        return _validation_response(list(exc.errors()))

    @app.exception_handler(Exception)
    async def handle_generic_error(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions with generic error response.

        Logs the exception details and returns a generic 500 error to avoid
        exposing internal implementation details to clients.
        """
        logger.exception("Unexpected error occurred: %s", exc)

        return JSONResponse(
            status_code=500,
            content={"code": "internal_error", "message": "An internal server error occurred"},
        )
