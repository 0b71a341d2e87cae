"""In-lieu grant aggregation and the legacy day-count migration.

Two column names have carried the grant's day count over the system's
lifetime: ``leave_days_added`` (canonical) and ``days_added`` (legacy).
``read_grant_days`` is the only place that decides between them.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_entitlement.balance.models import InLieuGrant
from hr_entitlement.balance.utils import coerce_days
from hr_entitlement.common.constants import (
    IN_LIEU_SCHEMA_CANONICAL,
    ZERO,
    BalanceSource,
    InLieuStatus,
)
from hr_entitlement.common.logging import get_logger


def read_grant_days(grant: InLieuGrant) -> Decimal:
    """Effective day count: canonical, else legacy, else zero."""
    canonical = coerce_days(grant.leave_days_added)
    if canonical is not None:
        return canonical
    legacy = coerce_days(grant.days_added)
    if legacy is not None:
        return legacy
    return ZERO


@dataclass
class InLieuOutcome:
    total_days: Decimal
    record_count: int = 0
    failed: bool = False


class InLieuGrantAggregator:
    """Sum approved compensatory-day grants for an employee."""

    def __init__(self, db: AsyncSession, logger: Optional[logging.Logger] = None):
        self.db = db
        self.logger = get_logger(__name__, logger)

    async def fetch_grants(
        self,
        employee_id: uuid.UUID,
        status: Optional[InLieuStatus] = InLieuStatus.approved,
    ) -> Sequence[InLieuGrant]:
        """Grants for the employee; ``status=None`` returns every status."""
        query = select(InLieuGrant).where(InLieuGrant.employee_id == employee_id)
        if status is not None:
            query = query.where(InLieuGrant.status == status)
        result = await self.db.execute(query.order_by(InLieuGrant.created_at))
        return result.scalars().all()

    async def aggregate(self, employee_id: uuid.UUID) -> InLieuOutcome:
        try:
            async with self.db.begin_nested():
                grants = await self.fetch_grants(employee_id)
        except SQLAlchemyError as exc:
            self.logger.error(
                "Error fetching in-lieu data: %s",
                exc,
                extra={
                    "event": "leave_balance.source_failed",
                    "source": BalanceSource.in_lieu.value,
                    "employee_id": str(employee_id),
                },
            )
            return InLieuOutcome(total_days=ZERO, failed=True)

        total = sum((read_grant_days(g) for g in grants), ZERO)
        self.logger.info(
            "Calculated in-lieu days: %s from %d records", total, len(grants),
        )
        return InLieuOutcome(total_days=total, record_count=len(grants))


class InLieuFieldMigrator:
    """Backfill ``leave_days_added`` from ``days_added``.

    Rows that already carry a canonical value are never overwritten; when
    the two fields disagree the row is counted as a conflict and left for
    the reconciliation auditor to report.
    """

    def __init__(self, db: AsyncSession, logger: Optional[logging.Logger] = None):
        self.db = db
        self.logger = get_logger(__name__, logger)

    async def migrate(
        self,
        employee_id: Optional[uuid.UUID] = None,
    ) -> tuple[int, int]:
        """Return ``(migrated, conflicts)``. Safe to run repeatedly."""
        query = select(InLieuGrant).where(InLieuGrant.days_added.is_not(None))
        if employee_id is not None:
            query = query.where(InLieuGrant.employee_id == employee_id)
        result = await self.db.execute(query)

        migrated = 0
        conflicts = 0
        now = datetime.now(timezone.utc)
        for grant in result.scalars().all():
            legacy = coerce_days(grant.days_added)
            canonical = coerce_days(grant.leave_days_added)
            if canonical is None and legacy is not None:
                grant.leave_days_added = legacy
                grant.schema_version = IN_LIEU_SCHEMA_CANONICAL
                grant.updated_at = now
                migrated += 1
            elif canonical is not None and legacy is not None and canonical != legacy:
                conflicts += 1
            elif grant.schema_version != IN_LIEU_SCHEMA_CANONICAL and canonical is not None:
                grant.schema_version = IN_LIEU_SCHEMA_CANONICAL
                grant.updated_at = now

        await self.db.flush()
        self.logger.info(
            "In-lieu legacy migration: %d migrated, %d conflicts",
            migrated, conflicts,
            extra={"event": "in_lieu.migrated"},
        )
        return migrated, conflicts
