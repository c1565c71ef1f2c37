"""Canonical state transition helpers for invoice status."""

from __future__ import annotations

from collections.abc import Mapping

from app.core.exceptions import InvalidTransition
from app.models.enums import InvoiceStatus


class StateMachine:
    """Explicit transition table; anything not listed is rejected."""

    def __init__(self, transitions: Mapping[InvoiceStatus, frozenset[InvoiceStatus]]) -> None:
        self._transitions = transitions

    def can_transition(self, current: InvoiceStatus, target: InvoiceStatus) -> bool:
        return target in self._transitions.get(current, frozenset())

    def assert_transition(self, current: InvoiceStatus, target: InvoiceStatus) -> None:
        if not self.can_transition(current=current, target=target):
            raise InvalidTransition(current.value, target.value)

    def is_terminal(self, state: InvoiceStatus) -> bool:
        return not self._transitions.get(state)

    def targets(self, current: InvoiceStatus) -> frozenset[InvoiceStatus]:
        return self._transitions.get(current, frozenset())


INVOICE_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED}),
    InvoiceStatus.SENT: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}

invoice_state_machine = StateMachine(INVOICE_TRANSITIONS)
