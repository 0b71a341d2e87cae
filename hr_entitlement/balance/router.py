"""Balance router — own balance, HR lookups, cached reads, audit and migration.

All endpoints require authentication. Lookups for other employees need
hr_admin; the legacy migration needs system_admin. The audit endpoint is
not served in production.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hr_entitlement.auth.dependencies import get_current_user, require_role
from hr_entitlement.balance.audit import ReconciliationAuditor
from hr_entitlement.balance.cache import CacheWriter
from hr_entitlement.balance.in_lieu import InLieuFieldMigrator
from hr_entitlement.balance.schemas import (
    BalanceResult,
    CachedBalance,
    LegacyMigrationOut,
    ReconciliationReport,
)
from hr_entitlement.balance.service import BalanceService
from hr_entitlement.common.constants import UserRole
from hr_entitlement.common.exceptions import NotFoundException
from hr_entitlement.common.rate_limit import limiter
from hr_entitlement.config import settings
from hr_entitlement.core_hr.models import Employee
from hr_entitlement.database import get_db

router = APIRouter(prefix="", tags=["entitlement"])

_YEAR_QUERY = Query(None, ge=1970, le=9999, description="Leave year; defaults to current year")


# ── GET /balance ────────────────────────────────────────────────────

@router.get("/balance", response_model=BalanceResult)
async def my_balance(
    year: Optional[int] = _YEAR_QUERY,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Compute the authenticated user's remaining annual leave."""
    return await BalanceService(db).calculate_leave_balance(employee.id, year)


# ── GET /employees/{id}/balance ─────────────────────────────────────

@router.get("/employees/{employee_id}/balance", response_model=BalanceResult)
async def employee_balance(
    employee_id: uuid.UUID,
    year: Optional[int] = _YEAR_QUERY,
    _: Employee = Depends(require_role(UserRole.hr_admin, UserRole.system_admin)),
    db: AsyncSession = Depends(get_db),
):
    """Compute another employee's balance (HR)."""
    service = BalanceService(db)
    if await service.load_employee(employee_id) is None:
        raise NotFoundException("Employee", str(employee_id))
    return await service.calculate_leave_balance(employee_id, year)


# ── GET /employees/{id}/cached-balance ──────────────────────────────

@router.get("/employees/{employee_id}/cached-balance", response_model=CachedBalance)
async def cached_balance(
    employee_id: uuid.UUID,
    _: Employee = Depends(require_role(UserRole.hr_admin, UserRole.system_admin)),
    db: AsyncSession = Depends(get_db),
):
    """Return the denormalized balance stored on the employee row, unverified."""
    cached = await CacheWriter(db).read(employee_id)
    if cached is None:
        raise NotFoundException("Employee", str(employee_id))
    return cached


# ── GET /employees/{id}/audit ───────────────────────────────────────

@router.get("/employees/{employee_id}/audit", response_model=ReconciliationReport)
@limiter.limit("30/minute")
async def audit_balance(
    request: Request,
    employee_id: uuid.UUID,
    year: Optional[int] = _YEAR_QUERY,
    _: Employee = Depends(require_role(UserRole.hr_admin, UserRole.system_admin)),
    db: AsyncSession = Depends(get_db),
):
    """Diagnostic reconciliation report. Not available in production."""
    if settings.is_production:
        raise NotFoundException("Endpoint", request.url.path)
    return await ReconciliationAuditor(db).audit(employee_id, year)


# ── POST /in-lieu/migrate-legacy ────────────────────────────────────

@router.post("/in-lieu/migrate-legacy", response_model=LegacyMigrationOut)
async def migrate_legacy_in_lieu(
    employee_id: Optional[uuid.UUID] = Query(None),
    _: Employee = Depends(require_role(UserRole.system_admin)),
    db: AsyncSession = Depends(get_db),
):
    """Backfill leave_days_added from days_added on legacy in-lieu rows."""
    migrated, conflicts = await InLieuFieldMigrator(db).migrate(employee_id)
    return LegacyMigrationOut(migrated=migrated, conflicts=conflicts)
