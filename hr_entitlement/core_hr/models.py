"""Core HR ORM models: Employee.

SQLAlchemy 2.0 async-compatible models with Mapped[] annotations.
Column names match the PostgreSQL schema defined in 001_initial_schema.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_entitlement.database import Base

if TYPE_CHECKING:
    from hr_entitlement.balance.models import (
        InLieuGrant,
        LeaveConsumptionRecord,
        YearlyAllocation,
    )


class Employee(Base):
    """Employee record — tenure plus the denormalized leave balance cache."""

    __tablename__ = "employees"

    # ── Primary key ─────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Identifiers ─────────────────────────────────────────────────
    employee_code: Mapped[str] = mapped_column(
        sa.String(20), unique=True, nullable=False,
    )

    # ── Name / Contact ──────────────────────────────────────────────
    first_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False,
    )

    # ── Tenure ──────────────────────────────────────────────────────
    date_of_joining: Mapped[Optional[date]] = mapped_column(sa.Date)
    years_of_service: Mapped[Optional[int]] = mapped_column(sa.Integer)

    # ── Denormalized balance cache (non-authoritative) ──────────────
    # annual_leave_balance holds the in-lieu subtotal only, at ledger precision;
    # leave_balance holds the composed remainder.
    annual_leave_balance: Mapped[Optional[Decimal]] = mapped_column(
        sa.Numeric(10, 3),
    )
    leave_balance: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(10, 2))
    leave_balance_computed_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
    )
    leave_balance_stale: Mapped[bool] = mapped_column(
        sa.Boolean, server_default=sa.text("TRUE"), default=True,
    )

    # ── Status / Timestamps ─────────────────────────────────────────
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, server_default=sa.text("TRUE"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )

    # ── Relationships ───────────────────────────────────────────────
    allocations: Mapped[list["YearlyAllocation"]] = relationship(
        back_populates="employee",
    )
    in_lieu_grants: Mapped[list["InLieuGrant"]] = relationship(
        back_populates="employee",
    )
    leave_records: Mapped[list["LeaveConsumptionRecord"]] = relationship(
        back_populates="employee",
    )

    # ── Helpers ─────────────────────────────────────────────────────

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return (
            f"<Employee {self.employee_code} "
            f"{self.first_name} {self.last_name}>"
        )
