"""Enums and constants for the entitlement engine — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum
from decimal import Decimal


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    hr_admin = "hr_admin"
    system_admin = "system_admin"


# ── Leave ledgers ───────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


class InLieuStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class AllocationType(str, enum.Enum):
    annual = "annual"


class IssueSeverity(str, enum.Enum):
    high = "high"
    medium = "medium"
    low = "low"


# ── Balance sources (used in degraded-mode signalling) ──────────────

class BalanceSource(str, enum.Enum):
    allocation = "allocation"
    in_lieu = "in_lieu"
    consumption = "consumption"


# ── In-lieu schema versions ─────────────────────────────────────────

IN_LIEU_SCHEMA_LEGACY = 1      # only days_added populated
IN_LIEU_SCHEMA_CANONICAL = 2   # leave_days_added populated


# ── Entitlement rules ───────────────────────────────────────────────

SENIOR_TENURE_YEARS = 10
SENIOR_BASE_DAYS = Decimal("24.67")
STANDARD_BASE_DAYS = Decimal("18.67")

ANNUAL_LEAVE_TYPE = "annual"
# Leave records with no leave_type are reported as annual in breakdowns
DEFAULT_LEAVE_TYPE_LABEL = "Annual"

BALANCE_PRECISION = Decimal("0.01")
ZERO = Decimal("0")


# ── Role hierarchy: each role implicitly includes lower roles ──────

ROLE_HIERARCHY: dict[UserRole, set[UserRole]] = {
    UserRole.system_admin: {UserRole.system_admin, UserRole.hr_admin, UserRole.manager, UserRole.employee},
    UserRole.hr_admin: {UserRole.hr_admin, UserRole.manager, UserRole.employee},
    UserRole.manager: {UserRole.manager, UserRole.employee},
    UserRole.employee: {UserRole.employee},
}
