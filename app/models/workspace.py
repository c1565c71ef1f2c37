"""Workspace model module."""

from __future__ import annotations

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import AuditMixin, Base


class Workspace(Base, AuditMixin):
    """Workspace with its billing defaults; unset values fall back to configuration."""

    __tablename__ = "workspaces"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    default_tax_rate: Mapped[int | None] = mapped_column(Integer)
    default_payment_terms_days: Mapped[int | None] = mapped_column(Integer)
    default_hourly_rate: Mapped[int | None] = mapped_column(Integer)
