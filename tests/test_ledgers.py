"""Ledger test suite — allocation resolution, in-lieu aggregation and the
legacy field migration, annual consumption windows and numeric helpers.

Tests run against SQLite via the shared conftest.py fixtures.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_entitlement.balance.allocation import AllocationResolver, tenure_base_days
from hr_entitlement.balance.consumption import (
    ConsumptionAggregator,
    breakdown_by_leave_type,
    year_window,
)
from hr_entitlement.balance.in_lieu import (
    InLieuFieldMigrator,
    InLieuGrantAggregator,
    read_grant_days,
)
from hr_entitlement.balance.models import InLieuGrant
from hr_entitlement.balance.utils import coerce_days, round_balance, sum_days
from hr_entitlement.common.constants import (
    IN_LIEU_SCHEMA_CANONICAL,
    IN_LIEU_SCHEMA_LEGACY,
    InLieuStatus,
    LeaveStatus,
)
from tests.conftest import seed_allocation, seed_employee, seed_grant, seed_leave

YEAR = 2026


# ═════════════════════════════════════════════════════════════════════
# Numeric helpers
# ═════════════════════════════════════════════════════════════════════


class TestNumericHelpers:

    @pytest.mark.parametrize(
        "value, expected",
        [
            (Decimal("2.5"), Decimal("2.5")),
            (3, Decimal("3")),
            (1.25, Decimal("1.25")),
            (None, None),
            ("2", None),
            (True, None),
            (float("nan"), None),
            (Decimal("Infinity"), None),
        ],
    )
    def test_coerce_days(self, value, expected):
        assert coerce_days(value) == expected

    def test_sum_days_skips_non_numeric(self):
        assert sum_days([Decimal("1"), None, "x", 2]) == Decimal("3")

    def test_round_balance_half_up(self):
        assert round_balance(Decimal("2.005")) == Decimal("2.01")
        assert round_balance(Decimal("-0.005")) == Decimal("-0.01")


# ═════════════════════════════════════════════════════════════════════
# Allocation resolver
# ═════════════════════════════════════════════════════════════════════


class TestTenureFormula:

    @pytest.mark.parametrize(
        "years, expected",
        [
            (0, Decimal("18.67")),
            (9, Decimal("18.67")),
            (10, Decimal("24.67")),
            (25, Decimal("24.67")),
            (None, Decimal("18.67")),
        ],
    )
    def test_threshold(self, years, expected):
        assert tenure_base_days(years) == expected


class TestAllocationResolver:

    async def test_override_wins(self, db: AsyncSession):
        emp = await seed_employee(db, years_of_service=12)
        allocation = await seed_allocation(
            db, emp.id, year=YEAR, allocated_days=Decimal("22.5"),
        )

        outcome = await AllocationResolver(db).resolve(emp.id, YEAR, 12)

        assert outcome.base_days == Decimal("22.5")
        assert outcome.from_override is True
        assert outcome.allocation_id == allocation.id

    async def test_other_year_ignored(self, db: AsyncSession):
        emp = await seed_employee(db, years_of_service=12)
        await seed_allocation(db, emp.id, year=YEAR - 1, allocated_days=Decimal("30"))

        outcome = await AllocationResolver(db).resolve(emp.id, YEAR, 12)

        assert outcome.base_days == Decimal("24.67")
        assert outcome.from_override is False

    async def test_zero_allocation_falls_back_to_tenure(self, db: AsyncSession):
        emp = await seed_employee(db, years_of_service=4)
        await seed_allocation(db, emp.id, year=YEAR, allocated_days=Decimal("0"))

        outcome = await AllocationResolver(db).resolve(emp.id, YEAR, 4)

        assert outcome.base_days == Decimal("18.67")
        assert outcome.from_override is False
        assert outcome.candidates == 1

    async def test_negative_and_missing_allocation_fall_back(self, db: AsyncSession):
        emp = await seed_employee(db, years_of_service=11)
        await seed_allocation(db, emp.id, year=YEAR, allocated_days=Decimal("-3"))
        other = await seed_employee(db, years_of_service=11)
        await seed_allocation(db, other.id, year=YEAR, allocated_days=None)
        resolver = AllocationResolver(db)

        assert (await resolver.resolve(emp.id, YEAR, 11)).base_days == Decimal("24.67")
        assert (await resolver.resolve(other.id, YEAR, 11)).base_days == Decimal("24.67")

    async def test_duplicate_allocations_newest_wins(self, db: AsyncSession, caplog):
        emp = await seed_employee(db)
        now = datetime.now(timezone.utc)
        await seed_allocation(
            db, emp.id, year=YEAR, allocated_days=Decimal("15"),
            created_at=now - timedelta(days=30),
        )
        await seed_allocation(
            db, emp.id, year=YEAR, allocated_days=Decimal("21"), created_at=now,
        )

        with caplog.at_level(logging.WARNING):
            outcome = await AllocationResolver(db).resolve(emp.id, YEAR, 3)

        assert outcome.base_days == Decimal("21")
        assert outcome.candidates == 2
        assert any(
            getattr(r, "event", None) == "leave_balance.duplicate_allocation"
            for r in caplog.records
        )

    async def test_query_failure_falls_back(self, db: AsyncSession):
        emp = await seed_employee(db, years_of_service=10)
        resolver = AllocationResolver(db)

        with patch.object(
            resolver, "fetch_allocations",
            side_effect=OperationalError("SELECT", {}, Exception("db down")),
        ):
            outcome = await resolver.resolve(emp.id, YEAR, 10)

        assert outcome.failed is True
        assert outcome.base_days == Decimal("24.67")


# ═════════════════════════════════════════════════════════════════════
# In-lieu grants
# ═════════════════════════════════════════════════════════════════════


class TestReadGrantDays:

    def test_canonical_preferred(self):
        grant = SimpleNamespace(leave_days_added=Decimal("2"), days_added=Decimal("3"))
        assert read_grant_days(grant) == Decimal("2")

    def test_legacy_fallback(self):
        grant = SimpleNamespace(leave_days_added=None, days_added=Decimal("1.5"))
        assert read_grant_days(grant) == Decimal("1.5")

    def test_non_numeric_canonical_falls_through(self):
        grant = SimpleNamespace(leave_days_added="two", days_added=Decimal("1"))
        assert read_grant_days(grant) == Decimal("1")

    def test_neither_field(self):
        grant = SimpleNamespace(leave_days_added=None, days_added=None)
        assert read_grant_days(grant) == Decimal("0")


class TestInLieuGrantAggregator:

    async def test_only_approved_grants_count(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_grant(db, emp.id, leave_days_added=Decimal("2"))
        await seed_grant(db, emp.id, days_added=Decimal("1"))
        await seed_grant(db, emp.id, leave_days_added=Decimal("4"), status=InLieuStatus.pending)
        await seed_grant(db, emp.id, leave_days_added=Decimal("8"), status=InLieuStatus.rejected)

        outcome = await InLieuGrantAggregator(db).aggregate(emp.id)

        assert outcome.total_days == Decimal("3")
        assert outcome.record_count == 2
        assert outcome.failed is False

    async def test_no_grants(self, db: AsyncSession):
        emp = await seed_employee(db)
        outcome = await InLieuGrantAggregator(db).aggregate(emp.id)
        assert outcome.total_days == Decimal("0")

    async def test_fetch_all_statuses(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_grant(db, emp.id, leave_days_added=Decimal("2"))
        await seed_grant(db, emp.id, leave_days_added=Decimal("4"), status=InLieuStatus.pending)

        grants = await InLieuGrantAggregator(db).fetch_grants(emp.id, status=None)

        assert len(grants) == 2

    async def test_query_failure_degrades(self, db: AsyncSession):
        emp = await seed_employee(db)
        aggregator = InLieuGrantAggregator(db)

        with patch.object(
            aggregator, "fetch_grants",
            side_effect=OperationalError("SELECT", {}, Exception("db down")),
        ):
            outcome = await aggregator.aggregate(emp.id)

        assert outcome.failed is True
        assert outcome.total_days == Decimal("0")


class TestInLieuFieldMigrator:

    async def test_backfills_legacy_rows(self, db: AsyncSession):
        emp = await seed_employee(db)
        legacy = await seed_grant(db, emp.id, days_added=Decimal("1.5"))
        assert legacy.schema_version == IN_LIEU_SCHEMA_LEGACY

        migrated, conflicts = await InLieuFieldMigrator(db).migrate()

        row = (
            await db.execute(select(InLieuGrant).where(InLieuGrant.id == legacy.id))
        ).scalars().one()
        assert (migrated, conflicts) == (1, 0)
        assert row.leave_days_added == Decimal("1.5")
        assert row.schema_version == IN_LIEU_SCHEMA_CANONICAL

    async def test_conflicting_rows_left_untouched(self, db: AsyncSession):
        emp = await seed_employee(db)
        grant = await seed_grant(
            db, emp.id, leave_days_added=Decimal("2"), days_added=Decimal("3"),
        )

        migrated, conflicts = await InLieuFieldMigrator(db).migrate()

        assert (migrated, conflicts) == (0, 1)
        assert grant.leave_days_added == Decimal("2")

    async def test_second_run_is_noop(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_grant(db, emp.id, days_added=Decimal("1"))
        migrator = InLieuFieldMigrator(db)

        first = await migrator.migrate()
        second = await migrator.migrate()

        assert first == (1, 0)
        assert second == (0, 0)

    async def test_scoped_to_employee(self, db: AsyncSession):
        emp = await seed_employee(db)
        other = await seed_employee(db)
        await seed_grant(db, emp.id, days_added=Decimal("1"))
        untouched = await seed_grant(db, other.id, days_added=Decimal("2"))

        migrated, _ = await InLieuFieldMigrator(db).migrate(emp.id)

        assert migrated == 1
        assert untouched.leave_days_added is None

    async def test_migration_preserves_balance(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_grant(db, emp.id, days_added=Decimal("2"))
        await seed_grant(db, emp.id, leave_days_added=Decimal("1"))
        aggregator = InLieuGrantAggregator(db)

        before = await aggregator.aggregate(emp.id)
        await InLieuFieldMigrator(db).migrate()
        after = await aggregator.aggregate(emp.id)

        assert before.total_days == after.total_days == Decimal("3")


# ═════════════════════════════════════════════════════════════════════
# Consumption
# ═════════════════════════════════════════════════════════════════════


class TestConsumptionAggregator:

    def test_year_window(self):
        assert year_window(YEAR) == (date(YEAR, 1, 1), date(YEAR, 12, 31))

    async def test_annual_match_is_case_insensitive(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_leave(db, emp.id, start_date=date(YEAR, 1, 5), leave_type="annual")
        await seed_leave(db, emp.id, start_date=date(YEAR, 2, 5), leave_type="ANNUAL")
        await seed_leave(db, emp.id, start_date=date(YEAR, 3, 5), leave_type="Annual")
        await seed_leave(db, emp.id, start_date=date(YEAR, 4, 5), leave_type="Sick")

        outcome = await ConsumptionAggregator(db).aggregate(emp.id, YEAR)

        assert outcome.days_taken == Decimal("3")
        assert outcome.record_count == 3

    async def test_only_approved_records(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_leave(db, emp.id, start_date=date(YEAR, 6, 1), days_taken=Decimal("2"))
        await seed_leave(
            db, emp.id, start_date=date(YEAR, 6, 8), days_taken=Decimal("4"),
            status=LeaveStatus.pending,
        )
        await seed_leave(
            db, emp.id, start_date=date(YEAR, 6, 15), days_taken=Decimal("1"),
            status=LeaveStatus.cancelled,
        )

        outcome = await ConsumptionAggregator(db).aggregate(emp.id, YEAR)

        assert outcome.days_taken == Decimal("2")

    async def test_boundary_days_included(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_leave(db, emp.id, start_date=date(YEAR, 1, 1))
        await seed_leave(db, emp.id, start_date=date(YEAR, 12, 31))

        outcome = await ConsumptionAggregator(db).aggregate(emp.id, YEAR)

        assert outcome.days_taken == Decimal("2")

    async def test_cross_year_leave_excluded(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_leave(
            db, emp.id, start_date=date(YEAR - 1, 12, 29), end_date=date(YEAR, 1, 2),
            days_taken=Decimal("4"),
        )
        await seed_leave(
            db, emp.id, start_date=date(YEAR, 12, 30), end_date=date(YEAR + 1, 1, 2),
            days_taken=Decimal("3"),
        )

        outcome = await ConsumptionAggregator(db).aggregate(emp.id, YEAR)

        assert outcome.days_taken == Decimal("0")

    async def test_missing_days_taken_counts_zero(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_leave(db, emp.id, start_date=date(YEAR, 7, 1), days_taken=None)
        await seed_leave(db, emp.id, start_date=date(YEAR, 7, 2), days_taken=Decimal("1.5"))

        outcome = await ConsumptionAggregator(db).aggregate(emp.id, YEAR)

        assert outcome.days_taken == Decimal("1.5")

    async def test_breakdown_by_leave_type(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_leave(db, emp.id, start_date=date(YEAR, 1, 5), days_taken=Decimal("2"))
        await seed_leave(db, emp.id, start_date=date(YEAR, 2, 5), leave_type="Sick")
        await seed_leave(db, emp.id, start_date=date(YEAR, 3, 5), leave_type="Sick")

        outcome = await ConsumptionAggregator(db).aggregate(emp.id, YEAR)

        assert outcome.days_taken == Decimal("2")
        assert outcome.breakdown["Annual"].count == 1
        assert outcome.breakdown["Sick"].count == 2
        assert outcome.breakdown["Sick"].total_days == Decimal("2")

    def test_untyped_records_grouped_as_annual(self):
        records = [
            SimpleNamespace(leave_type=None, days_taken=Decimal("1")),
            SimpleNamespace(leave_type="Annual", days_taken=Decimal("2")),
        ]

        breakdown = breakdown_by_leave_type(records)

        assert list(breakdown) == ["Annual"]
        assert breakdown["Annual"].count == 2
        assert breakdown["Annual"].total_days == Decimal("3")

    async def test_breakdown_failure_does_not_affect_total(self, db: AsyncSession):
        emp = await seed_employee(db)
        await seed_leave(db, emp.id, start_date=date(YEAR, 1, 5), days_taken=Decimal("2"))
        aggregator = ConsumptionAggregator(db)
        annual = await aggregator.fetch_records(emp.id, YEAR)

        with patch.object(
            aggregator, "fetch_records",
            side_effect=[annual, OperationalError("SELECT", {}, Exception("db down"))],
        ):
            outcome = await aggregator.aggregate(emp.id, YEAR)

        assert outcome.breakdown == {}
        assert outcome.days_taken == Decimal("2")
        assert outcome.failed is False
