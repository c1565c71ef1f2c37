"""Customer model module."""

from __future__ import annotations

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import AuditMixin, Base, WorkspaceScopedMixin


class Customer(Base, AuditMixin, WorkspaceScopedMixin):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_number: Mapped[str | None] = mapped_column(String(64))
    default_hourly_rate: Mapped[int | None] = mapped_column(Integer)
    payment_terms_days: Mapped[int | None] = mapped_column(Integer)
    is_vat_exempt: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    service_description: Mapped[str | None] = mapped_column(String(255))
