"""Scheduled invoice generation."""

from __future__ import annotations

import logging
import uuid
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.core.exceptions import InvoicingError, PartialGenerationFailure
from app.core.logging import LogContext, build_log_event
from app.database.db import get_session_factory
from app.domain.numbering import Period
from app.models.base import utc_today
from app.models.workspace import Workspace
from app.services.invoice_generator import GenerationResult
from app.services.invoice_service import InvoiceService
from app.tasks.celery_app import celery_app
from app.tasks.hooks import after_task, before_task

logger = logging.getLogger(__name__)

GENERATE_MONTHLY_TASK = "invoices.generate_monthly"


def previous_period(today: date) -> Period:
    if today.month == 1:
        return Period(year=today.year - 1, month=12)
    return Period(year=today.year, month=today.month - 1)


def run_monthly_generation(
    session_factory: sessionmaker | None = None,
    today: date | None = None,
    period: Period | None = None,
) -> list[GenerationResult]:
    """Generate drafts for ``period`` (default: the month before ``today``) in every workspace.

    A workspace whose run fails is reported through ``GenerationResult.error``;
    the remaining workspaces are still processed.
    """
    factory = session_factory or get_session_factory()
    target = period or previous_period(today or utc_today())
    results: list[GenerationResult] = []
    with factory() as session:
        workspace_ids = list(session.execute(select(Workspace.id).order_by(Workspace.id)).scalars())
    for workspace_id in workspace_ids:
        with factory() as session:
            service = InvoiceService(db=session)
            try:
                result = service.generate_monthly_invoices(workspace_id, target.year, target.month)
            except (InvoicingError, SQLAlchemyError) as exc:
                session.rollback()
                result = GenerationResult(
                    workspace_id=workspace_id,
                    period=target,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                logger.error(
                    "invoice_generation.workspace_failed",
                    extra=build_log_event(
                        "invoice_generation.workspace_failed",
                        LogContext(workspace_id=workspace_id),
                        period=target.prefix,
                        error_type=result.error_type,
                        error=result.error,
                    ),
                )
            results.append(result)
    return results


@celery_app.task(bind=True, name=GENERATE_MONTHLY_TASK)
def generate_monthly_invoices_task(self, year: int | None = None, month: int | None = None) -> dict:
    run_id = self.request.id or uuid.uuid4().hex
    period = Period(year=year, month=month) if year is not None and month is not None else None
    logger.info("task.start", extra=before_task(GENERATE_MONTHLY_TASK, run_id))

    results = run_monthly_generation(period=period)
    created = [invoice_id for result in results for invoice_id in result.created_ids]
    failures = [failure.__dict__ for result in results for failure in result.failures]
    failures.extend(
        {"workspace_id": result.workspace_id, "error_type": result.error_type, "message": result.error}
        for result in results
        if result.error is not None
    )
    status = "failed" if failures else "succeeded"
    logger.info(
        "task.finish",
        extra=after_task(
            GENERATE_MONTHLY_TASK,
            run_id,
            status,
            workspaces=len(results),
            created=len(created),
            failed=len(failures),
        ),
    )
    if failures:
        raise PartialGenerationFailure(created, failures)
    return {"run_id": run_id, "status": status, "created_ids": created}
