"""Write-through cache of the composed balance on the employee row.

The cached columns are a read optimisation for features that load the
employee directly; they are never authoritative. Writes follow
last-writer-wins and are not transactional with the ledger reads.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_entitlement.balance.schemas import BalanceResult, CachedBalance
from hr_entitlement.common.logging import get_logger
from hr_entitlement.config import settings
from hr_entitlement.core_hr.models import Employee


class CacheWriter:
    """Persist, read and invalidate ``CachedBalance`` values."""

    def __init__(
        self,
        db: AsyncSession,
        logger: Optional[logging.Logger] = None,
        *,
        enabled: Optional[bool] = None,
    ):
        self.db = db
        self.logger = get_logger(__name__, logger)
        self.enabled = settings.BALANCE_CACHE_WRITE_ENABLED if enabled is None else enabled

    async def write(self, employee_id: uuid.UUID, result: BalanceResult) -> bool:
        """Store the result on the employee row. Failures are logged, not raised."""
        if not self.enabled:
            self.logger.debug("Balance cache writes disabled; skipping %s", employee_id)
            return False

        try:
            async with self.db.begin_nested():
                await self.db.execute(
                    update(Employee)
                    .where(Employee.id == employee_id)
                    .values(
                        annual_leave_balance=result.in_lieu_balance,
                        leave_balance=result.remaining_balance,
                        leave_balance_computed_at=datetime.now(timezone.utc),
                        leave_balance_stale=result.partial,
                    )
                )
        except SQLAlchemyError as exc:
            self.logger.error(
                "Error updating employee record: %s",
                exc,
                extra={"event": "leave_balance.cache_write_failed", "employee_id": str(employee_id)},
            )
            return False

        self.logger.info("Successfully updated employee record with latest leave balances")
        return True

    async def read(self, employee_id: uuid.UUID) -> Optional[CachedBalance]:
        result = await self.db.execute(
            select(
                Employee.id,
                Employee.annual_leave_balance,
                Employee.leave_balance,
                Employee.leave_balance_computed_at,
                Employee.leave_balance_stale,
            ).where(Employee.id == employee_id)
        )
        row = result.first()
        if row is None:
            return None
        return CachedBalance(
            employee_id=row.id,
            in_lieu_balance=row.annual_leave_balance,
            remaining_balance=row.leave_balance,
            computed_at=row.leave_balance_computed_at,
            stale=bool(row.leave_balance_stale),
        )

    async def invalidate(self, employee_id: uuid.UUID) -> None:
        """Mark the cached balance stale after an upstream ledger change."""
        await self.db.execute(
            update(Employee)
            .where(Employee.id == employee_id)
            .values(leave_balance_stale=True)
        )
