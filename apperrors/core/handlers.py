from __future__ import annotations

from typing import Optional, Tuple, Type

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from apperrors.core.errors import AppError, ErrorKind, to_app_error, validation_error
from apperrors.core.logging import get_logger, log_app_error
from apperrors.core.validation import Validator
from apperrors.schemas import ErrorBody, ErrorResponse

INTERNAL_ERROR_MESSAGE = "Internal server error!"
DEFAULT_REQUEST_ID_HEADER = "X-Request-Id"

log = get_logger("apperrors.handlers")


def build_error_response(exc: BaseException, request_id: str) -> Tuple[int, ErrorResponse]:
    """Project any exception onto the client-facing error body."""
    if isinstance(exc, StarletteHTTPException):
        body = ErrorBody(
            kind=ErrorKind.SERVER.value,
            message=str(exc.detail),
            request_id=request_id,
        )
        return exc.status_code, ErrorResponse(error=body)

    err = to_app_error(exc)
    body = ErrorBody(kind=err.kind.value, message=err.message, request_id=request_id)

    if err.kind is ErrorKind.VALIDATION and err.fields:
        body.fields = dict(err.fields)

    # Never leak internals to clients.
    if err.kind is ErrorKind.INTERNAL_SERVER:
        body.message = INTERNAL_ERROR_MESSAGE

    return err.status_code, ErrorResponse(error=body)


def _request_id_header(request: Request) -> str:
    settings = getattr(request.app.state, "settings", None)
    return getattr(settings, "REQUEST_ID_HEADER", DEFAULT_REQUEST_ID_HEADER)


def request_id_of(request: Request) -> str:
    rid = getattr(request.state, "request_id", None)
    if rid:
        return rid
    return request.headers.get(_request_id_header(request), "")


def render_error(request: Request, exc: BaseException) -> JSONResponse:
    request_id = request_id_of(request)
    status_code, payload = build_error_response(exc, request_id)

    if status_code >= 500 and not isinstance(exc, StarletteHTTPException):
        log_app_error(log, to_app_error(exc))

    headers = exc.headers if isinstance(exc, StarletteHTTPException) else None
    resp = JSONResponse(status_code=status_code, content=payload.to_content(), headers=headers)
    if request_id:
        resp.headers[_request_id_header(request)] = request_id
    return resp


def _validator(request: Request) -> Validator:
    v = getattr(request.app.state, "validator", None)
    if v is None:
        v = Validator()
    return v


def _body_schema(request: Request) -> Optional[Type[BaseModel]]:
    """Model of the matched route's request body, when it is a single unembedded one."""
    dependant = getattr(request.scope.get("route"), "dependant", None)
    params = getattr(dependant, "body_params", None) or []
    if len(params) != 1:
        return None
    info = params[0].field_info
    if getattr(info, "embed", False):
        return None
    annotation = getattr(info, "annotation", None)
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    return None


def register_error_handlers(app: FastAPI) -> None:
    """Route every exception reaching the app through render_error."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return render_error(request, exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = _validator(request).translate(exc.errors(), _body_schema(request), strip_source=True)
        return render_error(request, validation_error(fields))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return render_error(request, exc)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        return render_error(request, exc)
