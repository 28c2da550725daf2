from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence

from fastapi import status
from sqlalchemy.exc import DBAPIError, NoResultFound
from starlette.exceptions import HTTPException as StarletteHTTPException

if TYPE_CHECKING:  # pragma: no cover
    from apperrors.core.validation import FieldValidationError  # noqa: F401


PG_UNIQUE_VIOLATION = "23505"
_SQLITE_UNIQUE_NAMES = ("SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY")


class ErrorKind(str, Enum):
    """Category of an application error.

    The value is the machine-readable identifier sent to clients.
    """

    UNKNOWN = "unknown_error"
    INVALID_REQUEST = "invalid_request_error"
    NOT_FOUND = "item_not_found_error"
    RESOURCE_CONFLICT = "resource_conflict_error"
    INTERNAL_SERVER = "internal_server_error"
    VALIDATION = "input_validation_error"
    DATABASE = "database_error"
    UNAUTHORIZED = "authorization_error"
    FORBIDDEN = "forbiden_error"
    REQUEST_TIMEOUT = "request_timeout_err"
    SERVER = "server_error"
    NO_TOKEN = "no_token_error"
    INVALID_TOKEN = "invalid_token_error"
    INVALID_JWT_CLAIMS = "invalid_jwt_claims_error"

    def __str__(self) -> str:
        return self.value

    @property
    def status_code(self) -> int:
        return _DEFAULT_STATUS[self]

    @classmethod
    def parse(cls, value: str) -> "ErrorKind":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


_DEFAULT_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.UNKNOWN: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.RESOURCE_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INTERNAL_SERVER: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.DATABASE: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.REQUEST_TIMEOUT: status.HTTP_408_REQUEST_TIMEOUT,
    ErrorKind.SERVER: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.NO_TOKEN: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INVALID_JWT_CLAIMS: status.HTTP_401_UNAUTHORIZED,
}


@dataclass
class AppError(Exception):
    """A deterministic application error surfaced to clients as JSON.

    Lower layers build one through the constructors below and raise it;
    only the HTTP boundary renders it.
    """

    message: str
    kind: ErrorKind = ErrorKind.UNKNOWN
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    fields: Optional[Dict[str, str]] = None
    cause: Optional[BaseException] = None
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.fields is not None and self.kind is not ErrorKind.VALIDATION:
            raise ValueError(f"only {ErrorKind.VALIDATION} errors carry fields, got {self.kind}")
        if self.cause is not None:
            self.__cause__ = self.cause

    def __str__(self) -> str:
        return f"status: {self.status_code} - message: {self.message} - errors: {self.cause}"

    def with_context(self, *args: Any, **kwargs: Any) -> "AppError":
        """Attach log context and return the same error for chaining.

        A single positional argument is appended to the message. Otherwise
        positional arguments are read as key/value pairs, and keyword
        arguments are further pairs. A ``what`` value is appended to the
        message too.
        """
        if not args and not kwargs:
            return self

        if len(args) == 1:
            self.message = f"{self.message}, {args[0]}"
            args = ()

        attached: Dict[str, Any] = {}
        # a trailing key without a value is dropped
        for i in range(0, len(args) - 1, 2):
            key = args[i]
            if not isinstance(key, str):
                raise TypeError(f"context keys must be str, got {type(key).__name__}")
            attached[key] = args[i + 1]
        attached.update(kwargs)

        self.context.update(attached)
        if "what" in attached:
            self.message = f"{self.message}, {attached['what']}"
        return self


def _new(message: str, kind: ErrorKind, cause: Optional[BaseException] = None) -> AppError:
    return AppError(message=message, kind=kind, status_code=kind.status_code, cause=cause)


def is_kind(exc: BaseException, kind: ErrorKind) -> bool:
    return isinstance(exc, AppError) and exc.kind is kind


def to_app_error(exc: BaseException) -> AppError:
    """Return ``exc`` if it is an AppError, else wrap it as an internal error."""
    if isinstance(exc, AppError):
        return exc
    return internal_server_error(exc)


def invalid_request_error(message: str, cause: Optional[BaseException] = None) -> AppError:
    return _new(message, ErrorKind.INVALID_REQUEST, cause)


def not_found_error(message: str, cause: Optional[BaseException] = None) -> AppError:
    return _new(message, ErrorKind.NOT_FOUND, cause)


def resource_conflict_error(message: str, cause: Optional[BaseException] = None) -> AppError:
    return _new(message, ErrorKind.RESOURCE_CONFLICT, cause)


def internal_server_error(cause: Optional[BaseException] = None) -> AppError:
    return _new(
        "this is an internal server error! our team has been notified",
        ErrorKind.INTERNAL_SERVER,
        cause,
    )


def validation_error(fields: Sequence["FieldValidationError"]) -> AppError:
    return AppError(
        message="could not validate one or more of the submitted fields",
        kind=ErrorKind.VALIDATION,
        status_code=ErrorKind.VALIDATION.status_code,
        fields={f.field: f.message for f in fields},
    )


def unauthorized_error(message: str, cause: Optional[BaseException] = None) -> AppError:
    return _new(message, ErrorKind.UNAUTHORIZED, cause)


def forbidden_error(message: str, cause: Optional[BaseException] = None) -> AppError:
    return _new(message, ErrorKind.FORBIDDEN, cause)


def request_timeout_error(
    message: str = "the request took too long to complete",
    cause: Optional[BaseException] = None,
) -> AppError:
    return _new(message, ErrorKind.REQUEST_TIMEOUT, cause)


def no_token_error(cause: Optional[BaseException] = None) -> AppError:
    return _new("No token found in request header.", ErrorKind.NO_TOKEN, cause)


def invalid_token_error(cause: Optional[BaseException] = None) -> AppError:
    return _new("The provided token is not valid.", ErrorKind.INVALID_TOKEN, cause)


def invalid_jwt_claims_error(cause: Optional[BaseException] = None) -> AppError:
    return _new("The JWT claims are not valid.", ErrorKind.INVALID_JWT_CLAIMS, cause)


def invalid_api_key_error(cause: Optional[BaseException] = None) -> AppError:
    return _new("The provided api key is not valid.", ErrorKind.INVALID_TOKEN, cause)


def invalid_key_attributes_error(cause: Optional[BaseException] = None) -> AppError:
    return _new("The API Key attributes are not valid.", ErrorKind.INVALID_JWT_CLAIMS, cause)


def invalid_auth_method_error(cause: Optional[BaseException] = None) -> AppError:
    return _new("The authentication method is not supported.", ErrorKind.INVALID_JWT_CLAIMS, cause)


def bind_error(exc: BaseException, type_name: str) -> AppError:
    """Wrap a failure to read a request payload into ``type_name``."""
    if isinstance(exc, StarletteHTTPException):
        detail = exc.detail
    else:
        detail = str(exc)
    return invalid_request_error(f"error binding type {type_name}, {detail}")


def _is_unique_violation(exc: BaseException) -> bool:
    # SQLAlchemy keeps the driver exception on .orig
    orig = exc.orig if isinstance(exc, DBAPIError) else exc

    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code == PG_UNIQUE_VIOLATION:
        return True

    if isinstance(orig, sqlite3.IntegrityError):
        name = getattr(orig, "sqlite_errorname", None)
        if name is not None:
            return name in _SQLITE_UNIQUE_NAMES
        return str(orig).startswith("UNIQUE constraint failed")
    return False


def database_error(exc: BaseException) -> AppError:
    """Classify a storage error.

    Missing rows become NOT_FOUND, duplicate keys RESOURCE_CONFLICT, and
    everything else an internal error whose cause is kept for logs only.
    """
    if isinstance(exc, NoResultFound):
        return not_found_error("the resource could not be found in the database", exc)

    if _is_unique_violation(exc):
        return resource_conflict_error("this entry already existed in the database", exc)

    return internal_server_error(exc)
