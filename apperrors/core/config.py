from __future__ import annotations

import re
from functools import lru_cache
from typing import Annotated, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from apperrors.core import validation
from apperrors.core.validation import FieldRules


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Notes:
      - CORS_ORIGINS accepts a comma-separated list ("a,b,c") or "*".
      - Extra env vars are ignored.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ---- Service ----
    SERVICE_NAME: str = Field(default="apperrors")
    LOG_LEVEL: str = Field(default="INFO")
    REQUEST_ID_HEADER: str = Field(default="X-Request-Id", description="Header carrying the correlation id")
    # NoDecode: the env value is a plain "a,b,c" string, not JSON
    CORS_ORIGINS: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["*"])

    # ---- Field rules ----
    PHONE_PATTERN: str = Field(default=validation.PHONE_PATTERN)
    PASSWORD_PATTERN: str = Field(default=validation.PASSWORD_PATTERN)
    EMAIL_PATTERN: str = Field(default=validation.EMAIL_PATTERN)
    PIN_PATTERN: str = Field(default=validation.PIN_PATTERN)

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        if v is None or v == "":
            return ["*"]
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            s = v.strip()
            if s == "*":
                return ["*"]
            return [o.strip() for o in s.split(",") if o.strip()]
        return ["*"]

    @field_validator("PHONE_PATTERN", "PASSWORD_PATTERN", "EMAIL_PATTERN", "PIN_PATTERN")
    @classmethod
    def _pattern_compiles(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as exc:
            raise ValueError(f"invalid regular expression: {exc}") from exc
        return v

    @field_validator("REQUEST_ID_HEADER")
    @classmethod
    def _header_not_empty(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("REQUEST_ID_HEADER must not be empty")
        return v2

    def field_rules(self) -> FieldRules:
        return FieldRules.from_patterns(
            phone=self.PHONE_PATTERN,
            password=self.PASSWORD_PATTERN,
            email=self.EMAIL_PATTERN,
            pin=self.PIN_PATTERN,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
