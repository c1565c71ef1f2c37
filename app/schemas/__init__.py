"""Pydantic schema package for API contracts."""

from app.schemas.common import ErrorEnvelope
from app.schemas.invoices import (
    GenerateInvoicesRequest,
    GenerationResponse,
    GroupFailureResponse,
    InvoiceCreateRequest,
    InvoiceExportRequest,
    InvoiceItemPayload,
    InvoiceItemResponse,
    InvoiceResponse,
    InvoiceStatusUpdateRequest,
    InvoiceUpdateRequest,
    NextNumberResponse,
)

__all__ = [
    "ErrorEnvelope",
    "GenerateInvoicesRequest",
    "GenerationResponse",
    "GroupFailureResponse",
    "InvoiceCreateRequest",
    "InvoiceExportRequest",
    "InvoiceItemPayload",
    "InvoiceItemResponse",
    "InvoiceResponse",
    "InvoiceStatusUpdateRequest",
    "InvoiceUpdateRequest",
    "NextNumberResponse",
]
