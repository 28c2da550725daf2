from __future__ import annotations

import re
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Annotated, Any, Callable, Dict, Iterable, List, Mapping, Optional, Pattern, Sequence, Tuple, Type, TypeVar, get_args

from pydantic import AfterValidator, BaseModel, ValidationError, ValidationInfo
from pydantic.fields import FieldInfo
from pydantic_core import PydanticCustomError

from apperrors.core.errors import validation_error


PHONE_PATTERN = r"^\+?[1-9]\d{10,15}$"
PASSWORD_PATTERN = r"^(?=.*[a-z])(?=.*[A-Z])(?=.*[0-9])(?=.*[*@$!%*#?&])\S{8,}$"
EMAIL_PATTERN = r"^[a-z0-9._%+\-]+@[a-z0-9.\-]+\.[a-z]{2,4}$"
PIN_PATTERN = r"^\d{4,12}$"

# Where FastAPI puts the request part in front of the field location.
_REQUEST_SOURCES = ("body", "query", "path", "header", "cookie")

# English wording of the rules, keyed by pydantic error type.
MESSAGES: Dict[str, str] = {
    "missing": "{field} is a required field",
    "string_type": "{field} must be a string",
    "string_too_short": "{field} must be at least {min_length} characters in length",
    "string_too_long": "{field} must be a maximum of {max_length} characters in length",
    "string_pattern_mismatch": "{field} does not match the required format",
    "too_short": "{field} must contain at least {min_length} items",
    "too_long": "{field} must contain at maximum {max_length} items",
    "greater_than": "{field} must be greater than {gt}",
    "greater_than_equal": "{field} must be {ge} or greater",
    "less_than": "{field} must be less than {lt}",
    "less_than_equal": "{field} must be {le} or less",
    "int_type": "{field} must be a valid integer",
    "int_parsing": "{field} must be a valid integer",
    "float_type": "{field} must be a valid number",
    "float_parsing": "{field} must be a valid number",
    "bool_type": "{field} must be a boolean",
    "bool_parsing": "{field} must be a boolean",
    "literal_error": "{field} must be one of [{expected}]",
    "enum": "{field} must be one of [{expected}]",
    "url_type": "{field} must be a valid URL",
    "url_parsing": "{field} must be a valid URL",
    "extra_forbidden": "{field} is not an allowed field",
    "tel": "{field} must be a valid phone number",
    "password": (
        "{field} must be at least 8 characters long and contain an uppercase letter,"
        " a lowercase letter, a number and a special character"
    ),
    "email": "{field} must be a valid email address",
    "pin": "{field} must be a valid PIN",
}


@dataclass(frozen=True)
class FieldValidationError:
    field: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message}


@dataclass(frozen=True)
class FieldRules:
    """Compiled patterns behind the custom string rules."""

    phone: Pattern[str] = re.compile(PHONE_PATTERN)
    password: Pattern[str] = re.compile(PASSWORD_PATTERN)
    email: Pattern[str] = re.compile(EMAIL_PATTERN)
    pin: Pattern[str] = re.compile(PIN_PATTERN)

    @classmethod
    def from_patterns(
        cls,
        *,
        phone: str = PHONE_PATTERN,
        password: str = PASSWORD_PATTERN,
        email: str = EMAIL_PATTERN,
        pin: str = PIN_PATTERN,
    ) -> "FieldRules":
        return cls(
            phone=re.compile(phone),
            password=re.compile(password),
            email=re.compile(email),
            pin=re.compile(pin),
        )


DEFAULT_RULES = FieldRules()

# Rules of the app serving the current request; set by the request middleware.
active_rules: ContextVar[FieldRules] = ContextVar("active_rules", default=DEFAULT_RULES)


def use_rules(rules: FieldRules) -> None:
    active_rules.set(rules)


def _rule(error_type: str, attr: str) -> Callable[[str, ValidationInfo], str]:
    def check(value: str, info: ValidationInfo) -> str:
        rules = (info.context or {}).get("field_rules") or active_rules.get()
        if getattr(rules, attr).fullmatch(value) is None:
            raise PydanticCustomError(error_type, "value does not satisfy the '{rule}' rule", {"rule": error_type})
        return value

    return check


Telephone = Annotated[str, AfterValidator(_rule("tel", "phone"))]
Password = Annotated[str, AfterValidator(_rule("password", "password"))]
Email = Annotated[str, AfterValidator(_rule("email", "email"))]
Pin = Annotated[str, AfterValidator(_rule("pin", "pin"))]


def field_tag(name: str, info: FieldInfo) -> str:
    """Externally visible name of a model field ("-" hides it)."""
    tag = info.serialization_alias or info.alias or name
    if tag == "-":
        return ""
    return tag


def _lookup(schema: Type[BaseModel], key: str) -> Optional[Tuple[str, FieldInfo]]:
    for name, info in schema.model_fields.items():
        if key == name or key in (info.alias, info.validation_alias):
            return name, info
    return None


def _model_in(annotation: Any) -> Optional[Type[BaseModel]]:
    # Optional[Model], List[Model], Dict[str, Model] and friends
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    for arg in get_args(annotation):
        found = _model_in(arg)
        if found is not None:
            return found
    return None


def _translate_one(error: Mapping[str, Any], field: str) -> str:
    template = MESSAGES.get(error.get("type", ""))
    if template is None:
        return str(error.get("msg", "is invalid"))

    ctx = dict(error.get("ctx") or {})
    try:
        return template.format(field=field or "value", **ctx)
    except (KeyError, IndexError):
        return str(error.get("msg", "is invalid"))


M = TypeVar("M", bound=BaseModel)


class Validator:
    """Validates payloads against pydantic models with the app's field rules.

    Build one at startup and share it; it holds no per-request state.
    """

    def __init__(self, rules: FieldRules = DEFAULT_RULES) -> None:
        self.rules = rules

    def _validate(self, schema: Type[M], data: Any) -> M:
        if isinstance(data, BaseModel):
            # instances are not re-checked by pydantic, so go through a dump
            return schema.model_validate(
                data.model_dump(exclude_unset=True),
                context={"field_rules": self.rules},
                by_alias=False,
                by_name=True,
            )
        return schema.model_validate(data, context={"field_rules": self.rules})

    def field_name(
        self,
        loc: Sequence[Any],
        schema: Optional[Type[BaseModel]] = None,
        strip_source: bool = False,
    ) -> str:
        """Dotted external name for an error location.

        With ``strip_source`` the leading FastAPI request part ("body",
        "query", ...) is removed, and ``schema`` only applies to body errors.
        """
        parts = list(loc)
        if strip_source and parts and parts[0] in _REQUEST_SOURCES:
            if parts[0] != "body":
                schema = None
            if len(parts) > 1:
                parts = parts[1:]

        names: List[str] = []
        current = schema
        for part in parts:
            found = _lookup(current, part) if current is not None and isinstance(part, str) else None
            if found is None:
                names.append(str(part))
                continue
            name, info = found
            names.append(field_tag(name, info))
            current = _model_in(info.annotation)
        return ".".join(n for n in names if n)

    def translate(
        self,
        errors: Iterable[Mapping[str, Any]],
        schema: Optional[Type[BaseModel]] = None,
        strip_source: bool = False,
    ) -> List[FieldValidationError]:
        out: List[FieldValidationError] = []
        for err in errors:
            name = self.field_name(err.get("loc", ()), schema, strip_source)
            label = name or str((err.get("loc") or ("value",))[-1])
            out.append(FieldValidationError(field=name, message=_translate_one(err, label)))
        return out

    def validate(self, schema: Type[BaseModel], data: Any) -> Optional[List[FieldValidationError]]:
        """Validate ``data`` against ``schema``.

        ``data`` may be a mapping or a model instance. Returns None when
        there is nothing to report, otherwise one FieldValidationError per
        failed rule.
        """
        try:
            self._validate(schema, data)
        except ValidationError as exc:
            return self.translate(exc.errors(), schema) or None
        return None

    def parse(self, schema: Type[M], data: Any) -> M:
        try:
            return self._validate(schema, data)
        except ValidationError as exc:
            raise validation_error(self.translate(exc.errors(), schema)) from exc
