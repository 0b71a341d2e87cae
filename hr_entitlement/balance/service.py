"""Balance composer — the authoritative remaining-leave computation.

Formula:
    remaining = round2(base + in_lieu - taken)

where ``base`` comes from the allocation resolver, ``in_lieu`` from approved
compensatory grants and ``taken`` from approved annual leave in the year.
The composed result is written through to the employee row afterwards.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_entitlement.balance.allocation import AllocationResolver
from hr_entitlement.balance.cache import CacheWriter
from hr_entitlement.balance.consumption import ConsumptionAggregator
from hr_entitlement.balance.in_lieu import InLieuGrantAggregator
from hr_entitlement.balance.schemas import BalanceResult
from hr_entitlement.balance.utils import round_balance
from hr_entitlement.common.constants import BalanceSource
from hr_entitlement.common.logging import get_logger
from hr_entitlement.core_hr.models import Employee

EmployeeRef = Union[uuid.UUID, str, None]


def current_year() -> int:
    return datetime.now(timezone.utc).year


async def fetch_employee(db: AsyncSession, employee_id: uuid.UUID) -> Optional[Employee]:
    result = await db.execute(select(Employee).where(Employee.id == employee_id))
    return result.scalars().first()


def compose_balance(
    base: Decimal,
    in_lieu: Decimal,
    taken: Decimal,
    *,
    year: Optional[int] = None,
    degraded_sources: Iterable[BalanceSource] = (),
) -> BalanceResult:
    """Pure combination of the three ledger subtotals."""
    degraded = list(degraded_sources)
    return BalanceResult(
        base_leave_balance=base,
        in_lieu_balance=in_lieu,
        leave_taken=taken,
        remaining_balance=round_balance(base + in_lieu - taken),
        year=year,
        partial=bool(degraded),
        degraded_sources=degraded,
    )


class BalanceService:
    """Orchestrates the resolver, both aggregators and the cache writer."""

    def __init__(
        self,
        db: AsyncSession,
        logger: Optional[logging.Logger] = None,
        *,
        allocation_resolver: Optional[AllocationResolver] = None,
        in_lieu_aggregator: Optional[InLieuGrantAggregator] = None,
        consumption_aggregator: Optional[ConsumptionAggregator] = None,
        cache_writer: Optional[CacheWriter] = None,
    ):
        self.db = db
        self.logger = get_logger(__name__, logger)
        self.allocations = allocation_resolver or AllocationResolver(db, self.logger)
        self.in_lieu = in_lieu_aggregator or InLieuGrantAggregator(db, self.logger)
        self.consumption = consumption_aggregator or ConsumptionAggregator(db, self.logger)
        self.cache = cache_writer or CacheWriter(db, self.logger)

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def parse_employee_id(employee_id: EmployeeRef) -> Optional[uuid.UUID]:
        """Return a UUID, or None for a malformed identifier."""
        if isinstance(employee_id, uuid.UUID):
            return employee_id
        try:
            return uuid.UUID(str(employee_id))
        except ValueError:
            return None

    async def load_employee(self, employee_id: uuid.UUID) -> Optional[Employee]:
        return await fetch_employee(self.db, employee_id)

    # ─────────────────────────────────────────────────────────────────
    # Compose
    # ─────────────────────────────────────────────────────────────────

    async def compute(self, employee: Employee, year: int) -> BalanceResult:
        """Run the three ledgers for a resolved employee. No cache write."""
        allocation = await self.allocations.resolve(
            employee.id, year, employee.years_of_service,
        )
        in_lieu = await self.in_lieu.aggregate(employee.id)
        consumption = await self.consumption.aggregate(employee.id, year)

        degraded = [
            source
            for source, outcome in (
                (BalanceSource.allocation, allocation),
                (BalanceSource.in_lieu, in_lieu),
                (BalanceSource.consumption, consumption),
            )
            if outcome.failed
        ]

        return compose_balance(
            allocation.base_days,
            in_lieu.total_days,
            consumption.days_taken,
            year=year,
            degraded_sources=degraded,
        )

    async def calculate_leave_balance(
        self,
        employee_id: EmployeeRef,
        year: Optional[int] = None,
    ) -> BalanceResult:
        """Compute, cache and return the employee's balance for ``year``.

        Only a failure to resolve the employee produces ``error``; ledger
        query failures degrade to zero contributions and set ``partial``.
        """
        target_year = year or current_year()

        if not employee_id:
            return BalanceResult.failed("User ID is required", year=target_year)

        try:
            self.logger.info(
                "Calculating leave balance for user %s for year %d",
                employee_id, target_year,
            )

            emp_uuid = self.parse_employee_id(employee_id)
            if emp_uuid is None:
                return BalanceResult.failed(
                    f"Employee not found: {employee_id}", year=target_year,
                )

            try:
                employee = await self.load_employee(emp_uuid)
            except SQLAlchemyError as exc:
                self.logger.error("Error fetching employee data: %s", exc)
                return BalanceResult.failed(
                    f"Error fetching employee data: {exc}", year=target_year,
                )
            if employee is None:
                self.logger.error("Employee %s not found", emp_uuid)
                return BalanceResult.failed(
                    f"Employee not found: {emp_uuid}", year=target_year,
                )

            result = await self.compute(employee, target_year)
            self.logger.info(
                "Final leave balance calculation: %s (base) + %s (in-lieu) - %s (taken) = %s",
                result.base_leave_balance,
                result.in_lieu_balance,
                result.leave_taken,
                result.remaining_balance,
            )
            if result.partial:
                self.logger.warning(
                    "leave balance degraded",
                    extra={
                        "event": "leave_balance.degraded",
                        "employee_id": str(emp_uuid),
                        "sources": [s.value for s in result.degraded_sources],
                    },
                )

            await self.cache.write(emp_uuid, result)
            return result

        except Exception as exc:
            self.logger.exception("Unexpected error in leave balance calculation: %s", exc)
            return BalanceResult.failed(f"Unexpected error: {exc}", year=target_year)
