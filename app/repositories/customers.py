"""Customer directory backed by the customers table."""

from __future__ import annotations

from sqlalchemy.orm import Session

from app.models.customer import Customer
from app.repositories.ports import CustomerProfile


class SqlCustomerDirectory:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, customer_id: int) -> CustomerProfile | None:
        customer = self.db.get(Customer, customer_id)
        if customer is None:
            return None
        return CustomerProfile(
            id=customer.id,
            workspace_id=customer.workspace_id,
            name=customer.name,
            default_hourly_rate=customer.default_hourly_rate,
            payment_terms_days=customer.payment_terms_days,
            is_vat_exempt=bool(customer.is_vat_exempt),
            service_description=customer.service_description,
        )
