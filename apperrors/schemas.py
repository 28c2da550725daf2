from __future__ import annotations

from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field


class ErrorBody(BaseModel):
    kind: str
    message: str
    request_id: str = ""
    fields: Optional[Dict[str, str]] = None


class ErrorResponse(BaseModel):
    """Envelope of every error body: {"error": {...}}."""

    error: ErrorBody

    def to_content(self) -> Dict[str, Dict[str, object]]:
        return self.model_dump(exclude_none=True)


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    service: str = Field(..., description="Configured SERVICE_NAME")
