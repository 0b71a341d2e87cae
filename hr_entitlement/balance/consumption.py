"""Consumption aggregator — approved annual leave taken in a calendar year."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_entitlement.balance.models import LeaveConsumptionRecord
from hr_entitlement.balance.schemas import LeaveTypeStats
from hr_entitlement.balance.utils import coerce_days, sum_days
from hr_entitlement.common.constants import (
    ANNUAL_LEAVE_TYPE,
    DEFAULT_LEAVE_TYPE_LABEL,
    ZERO,
    BalanceSource,
    LeaveStatus,
)
from hr_entitlement.common.logging import get_logger


def year_window(year: int) -> tuple[date, date]:
    """Inclusive [Jan 1, Dec 31] window for ``year``."""
    return date(year, 1, 1), date(year, 12, 31)


def breakdown_by_leave_type(
    records: Sequence[LeaveConsumptionRecord],
) -> dict[str, LeaveTypeStats]:
    """Group records by leave type label; untyped records count as annual."""
    breakdown: dict[str, LeaveTypeStats] = {}
    for record in records:
        label = record.leave_type or DEFAULT_LEAVE_TYPE_LABEL
        stats = breakdown.setdefault(label, LeaveTypeStats())
        stats.count += 1
        stats.total_days += coerce_days(record.days_taken) or ZERO
    return breakdown


@dataclass
class ConsumptionOutcome:
    days_taken: Decimal
    record_count: int = 0
    failed: bool = False
    breakdown: dict[str, LeaveTypeStats] = field(default_factory=dict)


class ConsumptionAggregator:
    """Sum approved annual-leave days whose whole range sits inside the year."""

    def __init__(self, db: AsyncSession, logger: Optional[logging.Logger] = None):
        self.db = db
        self.logger = get_logger(__name__, logger)

    async def fetch_records(
        self,
        employee_id: uuid.UUID,
        year: int,
        *,
        annual_only: bool = True,
    ) -> Sequence[LeaveConsumptionRecord]:
        window_start, window_end = year_window(year)
        query = select(LeaveConsumptionRecord).where(
            LeaveConsumptionRecord.employee_id == employee_id,
            LeaveConsumptionRecord.status == LeaveStatus.approved,
            LeaveConsumptionRecord.start_date >= window_start,
            LeaveConsumptionRecord.end_date <= window_end,
        )
        if annual_only:
            query = query.where(
                func.lower(LeaveConsumptionRecord.leave_type) == ANNUAL_LEAVE_TYPE
            )
        result = await self.db.execute(
            query.order_by(LeaveConsumptionRecord.start_date)
        )
        return result.scalars().all()

    async def aggregate(self, employee_id: uuid.UUID, year: int) -> ConsumptionOutcome:
        try:
            async with self.db.begin_nested():
                records = await self.fetch_records(employee_id, year)
        except SQLAlchemyError as exc:
            self.logger.error(
                "Error fetching taken leave data: %s",
                exc,
                extra={
                    "event": "leave_balance.source_failed",
                    "source": BalanceSource.consumption.value,
                    "employee_id": str(employee_id),
                },
            )
            return ConsumptionOutcome(days_taken=ZERO, failed=True)

        taken = sum_days(r.days_taken for r in records)
        self.logger.info(
            "Calculated Annual leave taken: %s from %d records", taken, len(records),
        )
        outcome = ConsumptionOutcome(days_taken=taken, record_count=len(records))
        outcome.breakdown = await self.leave_type_breakdown(employee_id, year)
        return outcome

    async def leave_type_breakdown(
        self,
        employee_id: uuid.UUID,
        year: int,
    ) -> dict[str, LeaveTypeStats]:
        """Informational only; never affects the balance."""
        try:
            async with self.db.begin_nested():
                records = await self.fetch_records(employee_id, year, annual_only=False)
        except SQLAlchemyError as exc:
            self.logger.warning("Could not build leave type breakdown: %s", exc)
            return {}

        breakdown = breakdown_by_leave_type(records)
        if breakdown:
            self.logger.info(
                "Leave breakdown for %d: %s",
                year,
                {k: str(v.total_days) for k, v in breakdown.items()},
            )
        return breakdown
