"""Allocation resolver — the yearly entitlement base for an employee.

An explicit ``leave_allocations`` row for (employee, year, annual) wins when
its ``allocated_days`` is positive; otherwise the base comes from tenure.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_entitlement.balance.models import YearlyAllocation
from hr_entitlement.balance.utils import coerce_days
from hr_entitlement.common.constants import (
    SENIOR_BASE_DAYS,
    SENIOR_TENURE_YEARS,
    STANDARD_BASE_DAYS,
    AllocationType,
    BalanceSource,
)
from hr_entitlement.common.logging import get_logger


def tenure_base_days(years_of_service: Optional[int]) -> Decimal:
    """Base entitlement from tenure; unknown tenure counts as zero years."""
    if (years_of_service or 0) >= SENIOR_TENURE_YEARS:
        return SENIOR_BASE_DAYS
    return STANDARD_BASE_DAYS


@dataclass
class AllocationOutcome:
    base_days: Decimal
    from_override: bool
    allocation_id: Optional[uuid.UUID] = None
    candidates: int = 0
    failed: bool = False


class AllocationResolver:
    """Resolve the entitlement base, override first, tenure formula second."""

    def __init__(self, db: AsyncSession, logger: Optional[logging.Logger] = None):
        self.db = db
        self.logger = get_logger(__name__, logger)

    async def fetch_allocations(
        self,
        employee_id: uuid.UUID,
        year: int,
    ) -> Sequence[YearlyAllocation]:
        """All annual allocation rows for the key, newest first."""
        result = await self.db.execute(
            select(YearlyAllocation)
            .where(
                YearlyAllocation.employee_id == employee_id,
                YearlyAllocation.year == year,
                YearlyAllocation.type == AllocationType.annual,
            )
            .order_by(
                YearlyAllocation.created_at.desc(),
                YearlyAllocation.id.desc(),
            )
        )
        return result.scalars().all()

    async def resolve(
        self,
        employee_id: uuid.UUID,
        year: int,
        years_of_service: Optional[int],
    ) -> AllocationOutcome:
        fallback = tenure_base_days(years_of_service)

        try:
            # Savepoint: a failed read must not abort the caller's transaction
            async with self.db.begin_nested():
                rows = await self.fetch_allocations(employee_id, year)
        except SQLAlchemyError as exc:
            self.logger.error(
                "Error fetching leave allocation: %s",
                exc,
                extra={
                    "event": "leave_balance.source_failed",
                    "source": BalanceSource.allocation.value,
                    "employee_id": str(employee_id),
                },
            )
            return AllocationOutcome(base_days=fallback, from_override=False, failed=True)

        if len(rows) > 1:
            self.logger.warning(
                "Found %d annual allocations for employee %s in %d; using the most recent",
                len(rows), employee_id, year,
                extra={"event": "leave_balance.duplicate_allocation"},
            )

        if rows:
            chosen = rows[0]
            days = coerce_days(chosen.allocated_days)
            if days is not None and days > 0:
                self.logger.info("Using allocated leave days: %s", days)
                return AllocationOutcome(
                    base_days=days,
                    from_override=True,
                    allocation_id=chosen.id,
                    candidates=len(rows),
                )

        self.logger.info(
            "Using calculated leave days based on years of service: %s", fallback,
        )
        return AllocationOutcome(
            base_days=fallback, from_override=False, candidates=len(rows),
        )
