"""Application error taxonomy and the FastAPI handlers that render it."""

import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from utils.state import State


class AppError(Exception):
    """Base error carrying an HTTP status and optional field-level errors."""

    status_code = 500

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        errors: list[dict] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors or []

    @property
    def status(self) -> str:
        return "fail" if str(self.status_code).startswith("4") else "error"


class Unauthenticated(AppError):
    status_code = 401


class Forbidden(AppError):
    status_code = 403


class BadRequest(AppError):
    status_code = 400


class Conflict(BadRequest):
    pass


class NotFound(AppError):
    status_code = 404


class Internal(AppError):
    status_code = 500


class ExpiredToken(Unauthenticated):
    def __init__(self, message: str = "Token expired"):
        super().__init__(message)


class InvalidToken(Unauthenticated):
    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


def field_error(path: str, message: str) -> list[dict]:
    return [{"path": path, "message": message}]


def _envelope(request: Request, message: str, errors: list, exc: Exception) -> dict:
    body = {"success": False, "message": message, "errors": errors}
    settings = getattr(request.app.state, "settings", None)
    if settings is not None and not settings.is_production:
        body["stack"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
    return body


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        State.logger.warning(f"{exc.status_code} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_envelope(request, exc.message, exc.errors, exc),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "path": ".".join(str(p) for p in error["loc"] if p != "body"),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Validation failed", "errors": errors},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc.detail), "errors": []},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        State.logger.exception(f"Unhandled error on {request.url.path}: {str(exc)}")
        return JSONResponse(
            status_code=500,
            content=_envelope(request, "Something went wrong", [], exc),
        )
