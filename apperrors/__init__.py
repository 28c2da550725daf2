"""Application error kinds, constructors and JSON rendering for FastAPI services."""

from apperrors.core.errors import (
    AppError,
    ErrorKind,
    bind_error,
    database_error,
    forbidden_error,
    internal_server_error,
    invalid_api_key_error,
    invalid_auth_method_error,
    invalid_jwt_claims_error,
    invalid_key_attributes_error,
    invalid_request_error,
    invalid_token_error,
    is_kind,
    no_token_error,
    not_found_error,
    request_timeout_error,
    resource_conflict_error,
    to_app_error,
    unauthorized_error,
    validation_error,
)
from apperrors.core.handlers import INTERNAL_ERROR_MESSAGE, build_error_response, register_error_handlers, render_error
from apperrors.core.logging import log_app_error
from apperrors.core.validation import (
    Email,
    FieldRules,
    FieldValidationError,
    Password,
    Pin,
    Telephone,
    Validator,
)

__all__ = [
    "AppError",
    "ErrorKind",
    "bind_error",
    "database_error",
    "forbidden_error",
    "internal_server_error",
    "invalid_api_key_error",
    "invalid_auth_method_error",
    "invalid_jwt_claims_error",
    "invalid_key_attributes_error",
    "invalid_request_error",
    "invalid_token_error",
    "is_kind",
    "no_token_error",
    "not_found_error",
    "request_timeout_error",
    "resource_conflict_error",
    "to_app_error",
    "unauthorized_error",
    "validation_error",
    "INTERNAL_ERROR_MESSAGE",
    "build_error_response",
    "register_error_handlers",
    "render_error",
    "log_app_error",
    "Email",
    "FieldRules",
    "FieldValidationError",
    "Password",
    "Pin",
    "Telephone",
    "Validator",
]
