"""Error payload shared by all API routes."""

from __future__ import annotations

from pydantic import BaseModel, Field

from app.core.exceptions import InvoicingError


class ErrorEnvelope(BaseModel):
    status: str = "error"
    error_code: str = Field(description="Exception class name, e.g. InvoiceLocked.")
    detail: str

    @classmethod
    def from_exception(cls, exc: InvoicingError) -> "ErrorEnvelope":
        return cls(error_code=type(exc).__name__, detail=str(exc))
