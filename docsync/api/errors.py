from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from docsync.exceptions import ConfigurationError, UpstreamError, ValidationError
from docsync.logging.logger import Log


class ApiError(Exception):
    """An error that maps directly onto an HTTP status and error code."""

    def __init__(self, status_code: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def handle_api_error(_request: Request, exc: ApiError) -> JSONResponse:
        return error_response(exc.status_code, exc.code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        return error_response(400, "VALIDATION_FAILED", details or "Invalid request")

    @app.exception_handler(ValidationError)
    async def handle_validation(_request: Request, exc: ValidationError) -> JSONResponse:
        return error_response(400, "VALIDATION_FAILED", str(exc))

    @app.exception_handler(ConfigurationError)
    async def handle_configuration(
        _request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        Log.warning(f"Request rejected by configuration: {exc}")
        return error_response(400, "VALIDATION_FAILED", str(exc))

    @app.exception_handler(UpstreamError)
    async def handle_upstream(_request: Request, exc: UpstreamError) -> JSONResponse:
        Log.error(f"Storage vendor call failed: {exc}", status_code=exc.status_code)
        return error_response(502, "UPSTREAM_ERROR", "Storage provider request failed")
