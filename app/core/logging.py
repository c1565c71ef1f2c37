"""Structured logging helpers for invoicing events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class LogContext:
    """Normalized context fields expected in structured logs."""

    workspace_id: int | None = None
    invoice_id: int | None = None
    customer_id: int | None = None
    actor_id: int | None = None
    run_id: str | None = None


def build_log_event(event: str, context: LogContext, **fields: Any) -> dict[str, Any]:
    """Build the ``extra`` payload for a structured log record."""
    payload: dict[str, Any] = {
        "event": event,
        "context": {
            "logged_at": datetime.now(timezone.utc).isoformat(),
            "workspace_id": context.workspace_id,
            "invoice_id": context.invoice_id,
            "customer_id": context.customer_id,
            "actor_id": context.actor_id,
            "run_id": context.run_id,
            **fields,
        },
    }
    return payload
