"""Canonical enum values for the invoicing schema."""

from __future__ import annotations

import enum


class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    CANCELLED = "cancelled"


class AuditAction(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"

    @staticmethod
    def status_change(status: InvoiceStatus) -> str:
        return f"status_change_to_{status.value}"
