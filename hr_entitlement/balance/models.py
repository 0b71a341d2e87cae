"""Balance ledger ORM models: YearlyAllocation, InLieuGrant, LeaveConsumptionRecord.

All three ledgers are owned by upstream workflows (allocation admin,
in-lieu approval, leave approval); the engine only reads them, apart from
the in-lieu field migration.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_entitlement.common.constants import (
    IN_LIEU_SCHEMA_CANONICAL,
    AllocationType,
    InLieuStatus,
    LeaveStatus,
)
from hr_entitlement.core_hr.models import Employee
from hr_entitlement.database import Base


class YearlyAllocation(Base):
    """Explicit per-year entitlement override.

    Uniqueness of (employee, year, type) is not enforced; the resolver
    breaks ties by most recent ``created_at``.
    """

    __tablename__ = "leave_allocations"
    __table_args__ = (
        sa.Index("ix_leave_allocations_lookup", "employee_id", "year", "type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    type: Mapped[AllocationType] = mapped_column(
        sa.Enum(AllocationType, name="allocation_type"),
        nullable=False,
        default=AllocationType.annual,
    )
    allocated_days: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(10, 2))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="allocations")


class InLieuGrant(Base):
    """Compensatory day-off credit.

    The day count lives in ``leave_days_added`` (canonical). Rows written
    before the field was standardised carry it in ``days_added`` only; those
    have ``schema_version == 1`` until migrated.
    """

    __tablename__ = "in_lieu_records"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    start_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    end_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    leave_days_added: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(10, 3))
    days_added: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(10, 3))
    schema_version: Mapped[int] = mapped_column(
        sa.SmallInteger, nullable=False, default=IN_LIEU_SCHEMA_CANONICAL,
    )
    status: Mapped[InLieuStatus] = mapped_column(
        sa.Enum(InLieuStatus, name="in_lieu_status"),
        nullable=False,
        default=InLieuStatus.pending,
    )
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="in_lieu_grants")


class LeaveConsumptionRecord(Base):
    """An approved (or pending/rejected) leave request, as consumed days."""

    __tablename__ = "leaves"
    __table_args__ = (
        sa.Index("ix_leaves_employee_dates", "employee_id", "start_date", "end_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    # Free text upstream ("Annual", "annual", "Sick", ...)
    leave_type: Mapped[Optional[str]] = mapped_column(sa.String(50))
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    days_taken: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(10, 2))
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        nullable=False,
        default=LeaveStatus.pending,
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="leave_records")
