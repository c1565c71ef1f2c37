"""Shared error mapping helpers for API v1 route modules."""

from __future__ import annotations

from fastapi import HTTPException, status

from app.core.exceptions import (
    DuplicateInvoiceNumber,
    InvalidTransition,
    InvoiceLocked,
    InvoicingError,
    LessonAlreadyInvoiced,
    NotFoundError,
    SequenceExhausted,
    ValidationError,
)
from app.schemas.common import ErrorEnvelope

CONFLICT_ERRORS = (
    DuplicateInvoiceNumber,
    InvoiceLocked,
    InvalidTransition,
    LessonAlreadyInvoiced,
    SequenceExhausted,
)


def map_domain_error(exc: InvoicingError) -> tuple[int, ErrorEnvelope]:
    if isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, CONFLICT_ERRORS):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, ValidationError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    else:
        code = status.HTTP_400_BAD_REQUEST
    return code, ErrorEnvelope.from_exception(exc)


def raise_http(exc: InvoicingError) -> None:
    code, envelope = map_domain_error(exc)
    raise HTTPException(status_code=code, detail=envelope.model_dump()) from exc
