import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from authstarter.core.errors import AppError, ErrorCode

logger = logging.getLogger(__name__)


def error_body(message: str, code: str | None = None, details: list | None = None) -> dict:
    err: dict = {"message": message}
    if code:
        err["code"] = code
    if details:
        err["details"] = details
    return {"error": err}


def install_error_handlers(app: FastAPI, expose_details: bool = True) -> None:
    """Map every failure onto the `{"error": {...}}` envelope."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{exc.message}", extra={"path": request.url.path, "status_code": exc.status_code})
        message = exc.message if exc.expose else "Internal Server Error"
        code = exc.code.value if isinstance(exc.code, ErrorCode) else exc.code
        return JSONResponse(status_code=exc.status_code, content=error_body(message, code))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = None
        if expose_details:
            details = [
                {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg", ""), "type": e.get("type", "")}
                for e in exc.errors()
            ]
        return JSONResponse(
            status_code=400,
            content=error_body("Invalid request payload", ErrorCode.VALIDATION.value, details),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(
            "Unhandled error", extra={"path": request.url.path, "method": request.method, "status_code": 500}
        )
        return JSONResponse(status_code=500, content=error_body("Internal Server Error"))
