"""
Global exception handlers. Map domain exceptions to the JSON error envelope:
{"success": false, "error": "<message>", "details": <optional>}
"""
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException

from buildfolio.services.errors import PortfolioError
from buildfolio.services.form_state import EditAccessDenied
from buildfolio.services.media import MediaTransformError
from buildfolio.utils.logger import get_logger

logger = get_logger(__name__)


def error_response(status_code: int, message: str, details: Any = None, **extra: Any) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "error": message}
    if details is not None:
        content["details"] = details
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def _issues(errors: list[dict]) -> list[dict[str, Any]]:
    # ctx may hold exception objects, keep only JSON-safe keys
    return [{"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]} for e in errors]


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PortfolioError)
    async def portfolio_error_handler(request: Request, exc: PortfolioError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "Request failed",
                extra={"path": request.url.path, "error": exc.message, "cause": repr(exc.__cause__)[:200]},
            )
        return error_response(exc.status_code, exc.message, exc.details)

    @app.exception_handler(EditAccessDenied)
    async def edit_access_handler(request: Request, exc: EditAccessDenied) -> JSONResponse:
        return error_response(exc.status_code, exc.message, redirect_to=exc.redirect_to)

    @app.exception_handler(MediaTransformError)
    async def media_error_handler(request: Request, exc: MediaTransformError) -> JSONResponse:
        return error_response(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = _issues(exc.errors())
        logger.debug("Validation error", extra={"errors": errors})
        return error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", errors)

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(
        request: Request, exc: ValidationError
    ) -> JSONResponse:
        errors = _issues(exc.errors())
        logger.debug("Validation error", extra={"errors": errors})
        return error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", errors)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        response = error_response(exc.status_code, str(exc.detail))
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(Exception)
    async def server_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception", extra={"path": request.url.path})
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred"
        )
