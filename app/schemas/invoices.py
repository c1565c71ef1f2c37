"""Invoice request/response schemas for API contracts."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.base import utc_today
from app.models.enums import InvoiceStatus
from app.models.invoice import Invoice
from app.services.invoice_builder import ItemInput
from app.services.invoice_generator import GenerationResult

TIME_PATTERN = r"^\d{2}:\d{2}$"


class InvoiceItemPayload(BaseModel):
    description: str = Field(min_length=1, max_length=500)
    quantity: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    unit: str = Field(default="Unit", min_length=1, max_length=32)
    unit_price: int = Field(ge=0, description="Minor units (cents).")
    tax_rate: Decimal = Field(ge=0, le=100)
    service_date: dt.date | None = None
    start_time: str | None = Field(default=None, pattern=TIME_PATTERN)
    end_time: str | None = Field(default=None, pattern=TIME_PATTERN)
    lesson_id: int | None = Field(default=None, ge=1)

    def to_input(self) -> ItemInput:
        return ItemInput(**self.model_dump())


class InvoiceCreateRequest(BaseModel):
    customer_id: int = Field(ge=1)
    date: dt.date
    due_date: dt.date
    items: list[InvoiceItemPayload] = Field(default_factory=list)
    notes: str | None = Field(default=None, max_length=10000)
    payment_terms: str | None = Field(default=None, max_length=64)
    manual_number: str | None = Field(default=None, max_length=16)

    @model_validator(mode="after")
    def due_date_not_before_date(self) -> "InvoiceCreateRequest":
        if self.due_date < self.date:
            raise ValueError("due_date must not be before date")
        return self


class InvoiceUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    customer_id: int | None = Field(default=None, ge=1)
    date: dt.date | None = None
    due_date: dt.date | None = None
    items: list[InvoiceItemPayload] | None = None
    notes: str | None = Field(default=None, max_length=10000)
    payment_terms: str | None = Field(default=None, max_length=64)

    def to_fields(self) -> dict:
        fields = self.model_dump(exclude_unset=True)
        for required in ("customer_id", "date", "due_date", "items"):
            if fields.get(required, ...) is None:
                del fields[required]
        if self.items is not None:
            fields["items"] = [item.to_input() for item in self.items]
        return fields


class InvoiceStatusUpdateRequest(BaseModel):
    status: str = Field(min_length=2, max_length=40)


class GenerateInvoicesRequest(BaseModel):
    year: int = Field(ge=2000, le=2099)
    month: int = Field(ge=1, le=12)


class InvoiceExportRequest(BaseModel):
    invoice_ids: list[int] = Field(min_length=1)


class InvoiceItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    position: int
    description: str
    quantity: Decimal
    unit: str
    unit_price: int
    tax_rate: Decimal
    total: int
    service_date: dt.date | None = None
    start_time: str | None = None
    end_time: str | None = None
    lesson_id: int | None = None


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: int
    workspace_id: int
    customer_id: int
    invoice_number: str
    date: dt.date
    due_date: dt.date
    status: InvoiceStatus
    subtotal: int
    tax_total: int
    total: int
    notes: str | None = None
    payment_terms: str | None = None
    sent_at: dt.datetime | None = None
    paid_at: dt.datetime | None = None
    is_overdue: bool = False
    items: list[InvoiceItemResponse] = Field(default_factory=list)

    @classmethod
    def from_invoice(cls, invoice: Invoice, today: dt.date | None = None) -> "InvoiceResponse":
        response = cls.model_validate(invoice, from_attributes=True)
        return response.model_copy(
            update={"is_overdue": invoice.overdue_on(today or utc_today())}
        )


class GroupFailureResponse(BaseModel):
    customer_id: int
    lesson_ids: list[int]
    error_type: str
    message: str


class GenerationResponse(BaseModel):
    workspace_id: int
    year: int
    month: int
    created_ids: list[int]
    failures: list[GroupFailureResponse]
    cancelled: bool

    @classmethod
    def from_result(cls, result: GenerationResult) -> "GenerationResponse":
        return cls(
            workspace_id=result.workspace_id,
            year=result.period.year,
            month=result.period.month,
            created_ids=list(result.created_ids),
            failures=[GroupFailureResponse(**failure.__dict__) for failure in result.failures],
            cancelled=result.cancelled,
        )


class NextNumberResponse(BaseModel):
    workspace_id: int
    year: int
    month: int
    next_number: str
