"""Balance engine Pydantic v2 schemas — engine results and diagnostic reports.

Naming conventions:
  - *Result           → engine output (transient, recomputed per call)
  - Cached*           → denormalized copy stored on the employee row
  - *Finding / *Issue → auditor diagnostics
  - *Report / *Summary → auditor aggregates
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from hr_entitlement.common.constants import (
    ZERO,
    BalanceSource,
    InLieuStatus,
    IssueSeverity,
)


class _CamelModel(BaseModel):
    """Serialises to camelCase for API consumers, accepts snake_case too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ═════════════════════════════════════════════════════════════════════
# Engine output
# ═════════════════════════════════════════════════════════════════════


class BalanceResult(_CamelModel):
    """Composed entitlement balance for one employee and year."""

    base_leave_balance: Decimal = ZERO
    in_lieu_balance: Decimal = ZERO
    leave_taken: Decimal = ZERO
    remaining_balance: Decimal = ZERO
    year: Optional[int] = None
    error: Optional[str] = None
    partial: bool = False
    degraded_sources: list[BalanceSource] = Field(default_factory=list)

    @classmethod
    def failed(cls, error: str, *, year: Optional[int] = None) -> BalanceResult:
        """Zeroed result for a fatal (employee resolution) failure."""
        return cls(year=year, error=error)


class CachedBalance(_CamelModel):
    """The write-through copy held on ``employees``; may be stale."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True,
    )

    employee_id: uuid.UUID
    in_lieu_balance: Optional[Decimal] = None
    remaining_balance: Optional[Decimal] = None
    computed_at: Optional[datetime] = None
    stale: bool = True


# ═════════════════════════════════════════════════════════════════════
# Consumption breakdown
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeStats(BaseModel):
    count: int = 0
    total_days: Decimal = ZERO


# ═════════════════════════════════════════════════════════════════════
# Reconciliation report
# ═════════════════════════════════════════════════════════════════════


class GrantFinding(BaseModel):
    """Field-level view of one in-lieu grant."""

    grant_id: uuid.UUID
    status: InLieuStatus
    schema_version: int
    leave_days_added: Optional[Decimal] = None
    days_added: Optional[Decimal] = None
    has_canonical: bool
    has_legacy: bool
    effective_days: Decimal
    # legacy − canonical, only when both are present
    difference: Optional[Decimal] = None
    drift: bool = False


class ReconciliationIssue(BaseModel):
    grant_id: uuid.UUID
    days_added: Decimal
    leave_days_added: Decimal
    difference: Decimal


class InLieuSummary(BaseModel):
    total_records: int = 0
    has_canonical_field: bool = False
    has_legacy_field: bool = False
    canonical_total: Decimal = ZERO
    legacy_total: Decimal = ZERO
    effective_total: Decimal = ZERO
    unmigrated_count: int = 0
    findings: list[GrantFinding] = Field(default_factory=list)
    issues: list[ReconciliationIssue] = Field(default_factory=list)
    error: Optional[str] = None


class AllocationSummary(BaseModel):
    count: int = 0
    duplicate: bool = False
    allocated_days: list[Optional[Decimal]] = Field(default_factory=list)
    error: Optional[str] = None


class ConsumptionSummary(BaseModel):
    annual_days_taken: Decimal = ZERO
    annual_record_count: int = 0
    by_leave_type: dict[str, LeaveTypeStats] = Field(default_factory=dict)
    error: Optional[str] = None


class EmployeeSnapshot(BaseModel):
    id: uuid.UUID
    name: str
    years_of_service: Optional[int] = None
    stored_leave_balance: Optional[Decimal] = None
    stored_annual_leave_balance: Optional[Decimal] = None
    cache_computed_at: Optional[datetime] = None
    cache_stale: bool = True


class CacheComparison(BaseModel):
    """Cached vs recomputed values, side by side. Diagnosis only."""

    cached_leave_balance: Optional[Decimal] = None
    recomputed_remaining_balance: Decimal
    leave_balance_matches: bool
    leave_balance_difference: Optional[Decimal] = None
    cached_annual_leave_balance: Optional[Decimal] = None
    recomputed_in_lieu_balance: Decimal
    in_lieu_matches: bool
    in_lieu_difference: Optional[Decimal] = None


class DataIssue(BaseModel):
    table: str
    record_id: uuid.UUID
    issue: str
    severity: IssueSeverity


class ReconciliationReport(BaseModel):
    generated_at: datetime
    year: int
    employee: EmployeeSnapshot
    allocations: AllocationSummary
    in_lieu: InLieuSummary
    consumption: ConsumptionSummary
    recomputed: BalanceResult
    cache_comparison: CacheComparison
    data_issues: list[DataIssue] = Field(default_factory=list)

    @property
    def has_drift(self) -> bool:
        return bool(self.in_lieu.issues) or not (
            self.cache_comparison.leave_balance_matches
            and self.cache_comparison.in_lieu_matches
        )


class LegacyMigrationOut(BaseModel):
    migrated: int
    conflicts: int
