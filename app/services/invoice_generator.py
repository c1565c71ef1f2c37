"""Monthly draft invoice generation from billable lessons.

One draft per customer with unbilled lessons in the month. Each customer group
is its own transaction: the invoice row is written first, the group's lessons
are linked to it afterwards, and both commit together. A group that fails is
rolled back and reported while the other groups still commit. Lessons already
linked to an invoice are never listed again, so re-running a month only picks
up what is still unbilled.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import Config, get_config
from app.core.exceptions import (
    DuplicateInvoiceNumber,
    InvoicingError,
    MissingRateError,
    NotFoundError,
    PartialGenerationFailure,
)
from app.core.logging import LogContext, build_log_event
from app.domain.line_items import duration_hours
from app.domain.numbering import Period
from app.models.base import utc_today
from app.models.enums import AuditAction, InvoiceStatus
from app.models.invoice import Invoice
from app.models.workspace import Workspace
from app.repositories.customers import SqlCustomerDirectory
from app.repositories.invoices import SqlInvoiceRepository
from app.repositories.lessons import SqlLessonBillingSource
from app.repositories.ports import (
    BillableLesson,
    CustomerDirectory,
    CustomerProfile,
    InvoiceRepository,
    LessonBillingSource,
)
from app.services.audit_service import record_audit
from app.services.base_service import BaseService
from app.services.invoice_builder import ItemInput, apply_totals, build_items
from app.services.number_allocator import InvoiceNumberAllocator
from app.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

_generation_locks = KeyedLock()

DEFAULT_LESSON_DESCRIPTION = "Lesson"
HOURLY_UNIT = "Hour"


def month_bounds(period: Period) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` range of naive UTC datetimes covering the month."""
    start = datetime(period.year, period.month, 1)
    if period.month == 12:
        end = datetime(period.year + 1, 1, 1)
    else:
        end = datetime(period.year, period.month + 1, 1)
    return start, end


@dataclass(frozen=True)
class BillingDefaults:
    tax_rate: int
    payment_terms_days: int
    hourly_rate: int | None
    strict_rates: bool


@dataclass(frozen=True)
class GroupFailure:
    customer_id: int
    lesson_ids: list[int]
    error_type: str
    message: str


@dataclass
class GenerationResult:
    workspace_id: int
    period: Period
    created_ids: list[int] = field(default_factory=list)
    failures: list[GroupFailure] = field(default_factory=list)
    cancelled: bool = False
    # Set when the whole workspace run failed before or outside the customer groups.
    error_type: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return not self.failures and self.error is None

    def raise_for_failures(self) -> None:
        if self.failures:
            raise PartialGenerationFailure(list(self.created_ids), list(self.failures))


def group_by_customer(lessons: Sequence[BillableLesson]) -> dict[int, list[BillableLesson]]:
    groups: dict[int, list[BillableLesson]] = {}
    for lesson in lessons:
        if lesson.invoiced:
            continue
        groups.setdefault(lesson.customer_id, []).append(lesson)
    return groups


class InvoiceGenerator(BaseService):
    def __init__(
        self,
        db: Session | None = None,
        lessons: LessonBillingSource | None = None,
        customers: CustomerDirectory | None = None,
        repository: InvoiceRepository | None = None,
        allocator: InvoiceNumberAllocator | None = None,
        config: Config | None = None,
        today: Callable[[], date] = utc_today,
    ) -> None:
        super().__init__(db)
        self.lessons = lessons or SqlLessonBillingSource(self.db)
        self.customers = customers or SqlCustomerDirectory(self.db)
        self.repository = repository or SqlInvoiceRepository(self.db)
        self.allocator = allocator or InvoiceNumberAllocator(
            sessionmaker(bind=self.db.get_bind(), expire_on_commit=False)
        )
        self.config = config or get_config()
        self.today = today

    def generate_for_period(
        self,
        workspace_id: int,
        year: int,
        month: int,
        cancel_event: threading.Event | None = None,
        actor_id: int | None = None,
    ) -> GenerationResult:
        period = Period(year=year, month=month)
        with _generation_locks.hold((workspace_id, period.year, period.month)):
            return self._generate(workspace_id, period, cancel_event, actor_id)

    def _generate(
        self,
        workspace_id: int,
        period: Period,
        cancel_event: threading.Event | None,
        actor_id: int | None,
    ) -> GenerationResult:
        run_id = uuid.uuid4().hex
        context = LogContext(workspace_id=workspace_id, actor_id=actor_id, run_id=run_id)
        defaults = self.billing_defaults(workspace_id)
        start, end = month_bounds(period)
        groups = group_by_customer(self.lessons.list_unbilled(workspace_id, start, end))
        result = GenerationResult(workspace_id=workspace_id, period=period)

        if not groups:
            logger.info(
                "invoice_generation.no_billable_lessons",
                extra=build_log_event("invoice_generation.no_billable_lessons", context, period=period.prefix),
            )
            return result

        for customer_id, lessons in groups.items():
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                logger.warning(
                    "invoice_generation.cancelled",
                    extra=build_log_event(
                        "invoice_generation.cancelled",
                        context,
                        period=period.prefix,
                        created=len(result.created_ids),
                    ),
                )
                break
            try:
                invoice = self._draft_for_customer(workspace_id, period, customer_id, lessons, defaults)
                self._persist(invoice, lessons, actor_id)
            except (InvoicingError, SQLAlchemyError) as exc:
                self.db.rollback()
                failure = GroupFailure(
                    customer_id=customer_id,
                    lesson_ids=[lesson.id for lesson in lessons],
                    error_type=type(exc).__name__,
                    message=str(exc),
                )
                result.failures.append(failure)
                logger.warning(
                    "invoice_generation.group_failed",
                    extra=build_log_event(
                        "invoice_generation.group_failed",
                        LogContext(workspace_id=workspace_id, customer_id=customer_id, run_id=run_id),
                        error_type=failure.error_type,
                        error=failure.message,
                    ),
                )
                continue
            result.created_ids.append(invoice.id)
            logger.info(
                "invoice.generated",
                extra=build_log_event(
                    "invoice.generated",
                    LogContext(workspace_id=workspace_id, invoice_id=invoice.id, customer_id=customer_id, run_id=run_id),
                    invoice_number=invoice.invoice_number,
                    lessons=len(lessons),
                    total=invoice.total,
                ),
            )

        logger.info(
            "invoice_generation.completed",
            extra=build_log_event(
                "invoice_generation.completed",
                context,
                period=period.prefix,
                created=len(result.created_ids),
                failed=len(result.failures),
                cancelled=result.cancelled,
            ),
        )
        return result

    def billing_defaults(self, workspace_id: int) -> BillingDefaults:
        workspace = self.db.get(Workspace, workspace_id)
        if workspace is None:
            raise NotFoundError(f"Workspace not found: {workspace_id}")
        return BillingDefaults(
            tax_rate=_first_set(workspace.default_tax_rate, self.config.DEFAULT_TAX_RATE),
            payment_terms_days=_first_set(
                workspace.default_payment_terms_days, self.config.DEFAULT_PAYMENT_TERMS_DAYS
            ),
            hourly_rate=_first_set(workspace.default_hourly_rate, self.config.DEFAULT_HOURLY_RATE),
            strict_rates=self.config.STRICT_LESSON_RATES,
        )

    def _draft_for_customer(
        self,
        workspace_id: int,
        period: Period,
        customer_id: int,
        lessons: list[BillableLesson],
        defaults: BillingDefaults,
    ) -> Invoice:
        """Build one customer's unsaved draft; the number is drawn last."""
        customer = self.customers.get(customer_id)
        if customer is None:
            raise NotFoundError(f"Customer not found: {customer_id}")

        tax_rate = 0 if customer.is_vat_exempt else defaults.tax_rate
        # Items are built before a number is drawn so a bad group does not burn one.
        items = build_items(self._line_for_lesson(lesson, customer, defaults, tax_rate) for lesson in lessons)

        invoice_date = self.today()
        terms = _first_set(customer.payment_terms_days, defaults.payment_terms_days)
        invoice_number = self.allocator.allocate(workspace_id, period)

        invoice = Invoice(
            workspace_id=workspace_id,
            customer_id=customer_id,
            invoice_number=invoice_number,
            date=invoice_date,
            due_date=invoice_date + timedelta(days=terms),
            status=InvoiceStatus.DRAFT,
            payment_terms=f"{terms} Days",
        )
        invoice.items = items
        apply_totals(invoice)
        return invoice

    def _persist(self, invoice: Invoice, lessons: list[BillableLesson], actor_id: int | None) -> None:
        """Write the draft, then link its lessons, in one transaction."""
        try:
            with self.unit_of_work():
                invoice_id = self.repository.create(invoice)
                self.lessons.mark_invoiced([lesson.id for lesson in lessons], invoice_id)
                record_audit(self.db, invoice, AuditAction.CREATED.value, actor_id=actor_id)
        except IntegrityError as exc:
            if self.repository.find_by_number(invoice.workspace_id, invoice.invoice_number) is not None:
                raise DuplicateInvoiceNumber(invoice.invoice_number) from exc
            raise

    def _line_for_lesson(
        self,
        lesson: BillableLesson,
        customer: CustomerProfile,
        defaults: BillingDefaults,
        tax_rate: int,
    ) -> ItemInput:
        rate = _first_set(lesson.rate, customer.default_hourly_rate, defaults.hourly_rate)
        if rate is None:
            if defaults.strict_rates:
                raise MissingRateError(f"Lesson {lesson.id} of customer {customer.id} has no billable rate.")
            logger.warning(
                "invoice_generation.lesson_without_rate",
                extra=build_log_event(
                    "invoice_generation.lesson_without_rate",
                    LogContext(workspace_id=customer.workspace_id, customer_id=customer.id),
                    lesson_id=lesson.id,
                ),
            )
            rate = 0
        return ItemInput(
            description=customer.service_description or DEFAULT_LESSON_DESCRIPTION,
            quantity=duration_hours(lesson.start, lesson.end),
            unit=HOURLY_UNIT,
            unit_price=rate,
            tax_rate=tax_rate,
            service_date=lesson.start.date(),
            start_time=lesson.start.strftime("%H:%M"),
            end_time=lesson.end.strftime("%H:%M"),
            lesson_id=lesson.id,
        )


def _first_set(*values):
    for value in values:
        if value is not None:
            return value
    return None
