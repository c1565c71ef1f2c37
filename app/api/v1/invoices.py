"""Invoice endpoints for API v1."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.api.v1._errors import raise_http
from app.core.exceptions import InvoicingError
from app.database.db import get_db
from app.schemas.invoices import (
    GenerateInvoicesRequest,
    GenerationResponse,
    InvoiceCreateRequest,
    InvoiceExportRequest,
    InvoiceResponse,
    InvoiceStatusUpdateRequest,
    InvoiceUpdateRequest,
    NextNumberResponse,
)
from app.services.invoice_service import InvoiceService

router = APIRouter(tags=["invoices"])


def get_invoice_service(db: Session = Depends(get_db)) -> InvoiceService:
    return InvoiceService(db=db)


@router.post(
    "/workspaces/{workspace_id}/invoices",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_invoice(
    workspace_id: int,
    payload: InvoiceCreateRequest,
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceResponse:
    try:
        invoice = service.create_invoice(
            workspace_id=workspace_id,
            customer_id=payload.customer_id,
            invoice_date=payload.date,
            due_date=payload.due_date,
            items=[item.to_input() for item in payload.items],
            notes=payload.notes,
            manual_number=payload.manual_number,
            payment_terms=payload.payment_terms,
        )
    except InvoicingError as exc:
        raise_http(exc)
    return InvoiceResponse.from_invoice(invoice)


@router.get("/workspaces/{workspace_id}/invoices", response_model=list[InvoiceResponse])
def list_invoices(
    workspace_id: int,
    status_filter: str | None = Query(default=None, alias="status"),
    service: InvoiceService = Depends(get_invoice_service),
) -> list[InvoiceResponse]:
    try:
        invoices = service.list_invoices(workspace_id, status=status_filter)
    except InvoicingError as exc:
        raise_http(exc)
    return [InvoiceResponse.from_invoice(invoice) for invoice in invoices]


@router.post("/workspaces/{workspace_id}/invoices/generate", response_model=GenerationResponse)
def generate_monthly_invoices(
    workspace_id: int,
    payload: GenerateInvoicesRequest,
    service: InvoiceService = Depends(get_invoice_service),
) -> GenerationResponse:
    try:
        result = service.generate_monthly_invoices(workspace_id, payload.year, payload.month)
    except InvoicingError as exc:
        raise_http(exc)
    return GenerationResponse.from_result(result)


@router.post("/workspaces/{workspace_id}/invoices/export")
def export_invoices(
    workspace_id: int,
    payload: InvoiceExportRequest,
    service: InvoiceService = Depends(get_invoice_service),
) -> Response:
    content = service.export_csv(workspace_id, payload.invoice_ids)
    return Response(
        content=content.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="invoices-{workspace_id}.csv"'},
    )


@router.get("/workspaces/{workspace_id}/invoice-numbers/next", response_model=NextNumberResponse)
def peek_next_number(
    workspace_id: int,
    year: int = Query(ge=2000, le=2099),
    month: int = Query(ge=1, le=12),
    service: InvoiceService = Depends(get_invoice_service),
) -> NextNumberResponse:
    try:
        next_number = service.peek_next_number(workspace_id, year, month)
    except InvoicingError as exc:
        raise_http(exc)
    return NextNumberResponse(workspace_id=workspace_id, year=year, month=month, next_number=next_number)


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(invoice_id: int, service: InvoiceService = Depends(get_invoice_service)) -> InvoiceResponse:
    try:
        invoice = service.get_invoice(invoice_id)
    except InvoicingError as exc:
        raise_http(exc)
    return InvoiceResponse.from_invoice(invoice)


@router.patch("/invoices/{invoice_id}", response_model=InvoiceResponse)
def update_invoice(
    invoice_id: int,
    payload: InvoiceUpdateRequest,
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceResponse:
    try:
        invoice = service.update_invoice(invoice_id, payload.to_fields())
    except InvoicingError as exc:
        raise_http(exc)
    return InvoiceResponse.from_invoice(invoice)


@router.post("/invoices/{invoice_id}/status", response_model=InvoiceResponse)
def update_invoice_status(
    invoice_id: int,
    payload: InvoiceStatusUpdateRequest,
    service: InvoiceService = Depends(get_invoice_service),
) -> InvoiceResponse:
    try:
        invoice = service.update_invoice_status(invoice_id, payload.status)
    except InvoicingError as exc:
        raise_http(exc)
    return InvoiceResponse.from_invoice(invoice)


@router.delete("/invoices/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(invoice_id: int, service: InvoiceService = Depends(get_invoice_service)) -> Response:
    try:
        service.delete_invoice(invoice_id)
    except InvoicingError as exc:
        raise_http(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
