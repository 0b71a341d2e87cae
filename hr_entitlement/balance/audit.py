"""Reconciliation auditor — read-only diagnosis of balance drift.

Re-fetches every ledger and the employee row, then reports:
  - per-grant disagreement between ``days_added`` and ``leave_days_added``
  - totals from each field on its own
  - the recomputed balance next to the cached employee columns
  - record-level data quality issues

Nothing here writes, and nothing here feeds back into normal reads.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_entitlement.balance.allocation import AllocationResolver, tenure_base_days
from hr_entitlement.balance.consumption import (
    ConsumptionAggregator,
    breakdown_by_leave_type,
)
from hr_entitlement.balance.in_lieu import InLieuGrantAggregator, read_grant_days
from hr_entitlement.balance.models import (
    InLieuGrant,
    LeaveConsumptionRecord,
    YearlyAllocation,
)
from hr_entitlement.balance.schemas import (
    AllocationSummary,
    CacheComparison,
    ConsumptionSummary,
    DataIssue,
    EmployeeSnapshot,
    GrantFinding,
    InLieuSummary,
    ReconciliationIssue,
    ReconciliationReport,
)
from hr_entitlement.balance.service import compose_balance, current_year, fetch_employee
from hr_entitlement.balance.utils import coerce_days, round_balance, sum_days
from hr_entitlement.common.constants import (
    ANNUAL_LEAVE_TYPE,
    ZERO,
    BalanceSource,
    InLieuStatus,
    IssueSeverity,
)
from hr_entitlement.common.exceptions import NotFoundException
from hr_entitlement.common.logging import get_logger
from hr_entitlement.core_hr.models import Employee


# ═════════════════════════════════════════════════════════════════════
# Pure analysis helpers
# ═════════════════════════════════════════════════════════════════════


def inspect_grant(grant: InLieuGrant) -> GrantFinding:
    """Field-level finding for one grant; drift means both set and unequal."""
    canonical = coerce_days(grant.leave_days_added)
    legacy = coerce_days(grant.days_added)
    difference = None
    if canonical is not None and legacy is not None:
        difference = legacy - canonical
    return GrantFinding(
        grant_id=grant.id,
        status=grant.status,
        schema_version=grant.schema_version,
        leave_days_added=canonical,
        days_added=legacy,
        has_canonical=canonical is not None,
        has_legacy=legacy is not None,
        effective_days=read_grant_days(grant),
        difference=difference,
        drift=difference is not None and difference != ZERO,
    )


def summarize_grants(grants: Sequence[InLieuGrant]) -> InLieuSummary:
    """Totals per field plus drift issues; effective total counts approved only."""
    summary = InLieuSummary(total_records=len(grants))
    for grant in grants:
        finding = inspect_grant(grant)
        summary.findings.append(finding)

        if finding.has_canonical:
            summary.has_canonical_field = True
            summary.canonical_total += finding.leave_days_added
        if finding.has_legacy:
            summary.has_legacy_field = True
            summary.legacy_total += finding.days_added
            if not finding.has_canonical:
                summary.unmigrated_count += 1
        if finding.status == InLieuStatus.approved:
            summary.effective_total += finding.effective_days
        if finding.drift:
            summary.issues.append(
                ReconciliationIssue(
                    grant_id=finding.grant_id,
                    days_added=finding.days_added,
                    leave_days_added=finding.leave_days_added,
                    difference=finding.difference,
                )
            )
    return summary


def compare_cache(
    employee: Employee,
    recomputed_remaining: Decimal,
    recomputed_in_lieu: Decimal,
) -> CacheComparison:
    cached_remaining = coerce_days(employee.leave_balance)
    cached_in_lieu = coerce_days(employee.annual_leave_balance)

    def _diff(cached: Optional[Decimal], fresh: Decimal) -> Optional[Decimal]:
        return None if cached is None else round_balance(cached - fresh)

    remaining_diff = _diff(cached_remaining, recomputed_remaining)
    in_lieu_diff = _diff(cached_in_lieu, recomputed_in_lieu)
    return CacheComparison(
        cached_leave_balance=cached_remaining,
        recomputed_remaining_balance=recomputed_remaining,
        leave_balance_matches=remaining_diff == ZERO,
        leave_balance_difference=remaining_diff,
        cached_annual_leave_balance=cached_in_lieu,
        recomputed_in_lieu_balance=recomputed_in_lieu,
        in_lieu_matches=in_lieu_diff == ZERO,
        in_lieu_difference=in_lieu_diff,
    )


def find_data_issues(
    employee: Employee,
    allocations: Sequence[YearlyAllocation],
    grants: Sequence[InLieuGrant],
    records: Sequence[LeaveConsumptionRecord],
) -> list[DataIssue]:
    issues: list[DataIssue] = []

    if employee.years_of_service is None:
        issues.append(DataIssue(
            table="employees", record_id=employee.id,
            issue="Missing years_of_service", severity=IssueSeverity.high,
        ))

    for allocation in allocations:
        days = coerce_days(allocation.allocated_days)
        if days is None:
            issues.append(DataIssue(
                table="leave_allocations", record_id=allocation.id,
                issue="Missing allocated_days", severity=IssueSeverity.high,
            ))
        elif days <= 0:
            issues.append(DataIssue(
                table="leave_allocations", record_id=allocation.id,
                issue="Non-positive allocated_days; tenure formula used instead",
                severity=IssueSeverity.medium,
            ))

    for grant in grants:
        if coerce_days(grant.leave_days_added) is None:
            if coerce_days(grant.days_added) is None:
                issues.append(DataIssue(
                    table="in_lieu_records", record_id=grant.id,
                    issue="Missing leave_days_added and days_added",
                    severity=IssueSeverity.high,
                ))
            else:
                issues.append(DataIssue(
                    table="in_lieu_records", record_id=grant.id,
                    issue="leave_days_added not backfilled from days_added",
                    severity=IssueSeverity.low,
                ))

    for record in records:
        if coerce_days(record.days_taken) is None:
            issues.append(DataIssue(
                table="leaves", record_id=record.id,
                issue="Missing days_taken", severity=IssueSeverity.high,
            ))
        if not record.leave_type:
            issues.append(DataIssue(
                table="leaves", record_id=record.id,
                issue="Missing leave_type", severity=IssueSeverity.medium,
            ))
        if record.end_date < record.start_date:
            issues.append(DataIssue(
                table="leaves", record_id=record.id,
                issue="end_date precedes start_date", severity=IssueSeverity.high,
            ))

    return issues


# ═════════════════════════════════════════════════════════════════════
# Auditor
# ═════════════════════════════════════════════════════════════════════


class ReconciliationAuditor:
    """Stateless, read-only consistency check for one employee."""

    def __init__(self, db: AsyncSession, logger: Optional[logging.Logger] = None):
        self.db = db
        self.logger = get_logger(__name__, logger)
        self.allocations = AllocationResolver(db, self.logger)
        self.in_lieu = InLieuGrantAggregator(db, self.logger)
        self.consumption = ConsumptionAggregator(db, self.logger)

    async def audit(
        self,
        employee_id: uuid.UUID,
        year: Optional[int] = None,
    ) -> ReconciliationReport:
        target_year = year or current_year()
        self.logger.info("Auditing employee: %s", employee_id)

        employee = await fetch_employee(self.db, employee_id)
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))

        degraded: list[BalanceSource] = []

        # ── Allocations ─────────────────────────────────────────────
        allocations: Sequence[YearlyAllocation] = []
        allocation_summary = AllocationSummary()
        try:
            async with self.db.begin_nested():
                allocations = await self.allocations.fetch_allocations(employee.id, target_year)
        except SQLAlchemyError as exc:
            self.logger.error("Error fetching leave allocations: %s", exc)
            allocation_summary.error = str(exc)
            degraded.append(BalanceSource.allocation)
        allocation_summary.count = len(allocations)
        allocation_summary.duplicate = len(allocations) > 1
        allocation_summary.allocated_days = [
            coerce_days(a.allocated_days) for a in allocations
        ]

        base = tenure_base_days(employee.years_of_service)
        if allocations:
            chosen = coerce_days(allocations[0].allocated_days)
            if chosen is not None and chosen > 0:
                base = chosen

        # ── In-lieu grants (every status) ───────────────────────────
        grants: Sequence[InLieuGrant] = []
        try:
            async with self.db.begin_nested():
                grants = await self.in_lieu.fetch_grants(employee.id, status=None)
            in_lieu_summary = summarize_grants(grants)
        except SQLAlchemyError as exc:
            self.logger.error("Error fetching in-lieu records: %s", exc)
            in_lieu_summary = InLieuSummary(error=str(exc))
            degraded.append(BalanceSource.in_lieu)

        # ── Consumption ─────────────────────────────────────────────
        records: Sequence[LeaveConsumptionRecord] = []
        consumption_summary = ConsumptionSummary()
        try:
            async with self.db.begin_nested():
                records = await self.consumption.fetch_records(
                    employee.id, target_year, annual_only=False,
                )
        except SQLAlchemyError as exc:
            self.logger.error("Error fetching leave records: %s", exc)
            consumption_summary.error = str(exc)
            degraded.append(BalanceSource.consumption)
        annual = [
            r for r in records
            if (r.leave_type or "").lower() == ANNUAL_LEAVE_TYPE
        ]
        consumption_summary.annual_record_count = len(annual)
        consumption_summary.annual_days_taken = sum_days(r.days_taken for r in annual)
        consumption_summary.by_leave_type = breakdown_by_leave_type(records)

        # ── Recompute & compare ─────────────────────────────────────
        recomputed = compose_balance(
            base,
            in_lieu_summary.effective_total,
            consumption_summary.annual_days_taken,
            year=target_year,
            degraded_sources=degraded,
        )
        comparison = compare_cache(
            employee, recomputed.remaining_balance, recomputed.in_lieu_balance,
        )

        report = ReconciliationReport(
            generated_at=datetime.now(timezone.utc),
            year=target_year,
            employee=EmployeeSnapshot(
                id=employee.id,
                name=employee.full_name,
                years_of_service=employee.years_of_service,
                stored_leave_balance=employee.leave_balance,
                stored_annual_leave_balance=employee.annual_leave_balance,
                cache_computed_at=employee.leave_balance_computed_at,
                cache_stale=bool(employee.leave_balance_stale),
            ),
            allocations=allocation_summary,
            in_lieu=in_lieu_summary,
            consumption=consumption_summary,
            recomputed=recomputed,
            cache_comparison=comparison,
            data_issues=find_data_issues(employee, allocations, grants, records),
        )

        if report.has_drift:
            self.logger.warning(
                "Reconciliation drift for employee %s: %d grant issue(s), cache match=%s",
                employee.id,
                len(in_lieu_summary.issues),
                comparison.leave_balance_matches and comparison.in_lieu_matches,
                extra={"event": "leave_balance.drift"},
            )
        return report
