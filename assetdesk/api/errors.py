"""
Exception handlers.

Domain errors are turned into responses through the route guard's
``rejection_for`` mapping; guard rejections raised from dependencies
are rendered as-is.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from assetdesk.core.config import settings
from assetdesk.core.exceptions import AssetDeskError
from assetdesk.rbac.guard import Rejection, rejection_for

logger = structlog.get_logger()


class GuardRejected(Exception):
    """Raised by dependencies to stop a request with a guard rejection."""

    def __init__(self, rejection: Rejection):
        super().__init__(rejection.error)
        self.rejection = rejection


def rejection_response(rejection: Rejection) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if rejection.status_code == 401 else None
    return JSONResponse(
        status_code=rejection.status_code,
        content=jsonable_encoder(rejection.to_dict()),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers on an application."""

    @app.exception_handler(GuardRejected)
    async def guard_rejected_handler(request: Request, exc: GuardRejected):
        return rejection_response(exc.rejection)

    @app.exception_handler(AssetDeskError)
    async def domain_error_handler(request: Request, exc: AssetDeskError):
        rejection = rejection_for(exc)
        if rejection.status_code >= 500:
            logger.error("Unmapped domain error", code=exc.code, error=exc.message)
        return rejection_response(rejection)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return rejection_response(
            Rejection(400, "VALIDATION_ERROR", "Invalid request", {"errors": exc.errors()})
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.exception("Unhandled error", path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": str(exc) if settings.debug else "An error occurred",
                "code": "INTERNAL_SERVER_ERROR",
            },
        )
