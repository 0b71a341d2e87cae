"""001 – Entitlement schema: employees, allocations, in-lieu grants, leaves.

Revision ID: 001_entitlement_schema
Revises:
Create Date: 2026-10-05 10:00:00.000000+00:00
"""

from alembic import op

# Revision identifiers
revision = "001_entitlement_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("leave_status", ["pending", "approved", "rejected", "cancelled"]),
    ("in_lieu_status", ["pending", "approved", "rejected"]),
    ("allocation_type", ["annual"]),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id                        UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_code             VARCHAR(20)  NOT NULL UNIQUE,
            first_name                VARCHAR(100) NOT NULL,
            last_name                 VARCHAR(100) NOT NULL,
            email                     VARCHAR(255) NOT NULL UNIQUE,
            date_of_joining           DATE,
            years_of_service          INTEGER,
            annual_leave_balance      NUMERIC(10,3),
            leave_balance             NUMERIC(10,2),
            leave_balance_computed_at TIMESTAMPTZ,
            leave_balance_stale       BOOLEAN DEFAULT TRUE,
            is_active                 BOOLEAN DEFAULT TRUE,
            created_at                TIMESTAMPTZ DEFAULT NOW(),
            updated_at                TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. leave_allocations ──────────────────────────────────────────────
    # (employee_id, year, type) is deliberately not UNIQUE: historical data
    # contains duplicates, resolved by most recent created_at.
    op.execute("""
        CREATE TABLE leave_allocations (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id     UUID NOT NULL REFERENCES employees(id),
            year            INTEGER NOT NULL,
            type            allocation_type NOT NULL DEFAULT 'annual',
            allocated_days  NUMERIC(10,2),
            created_at      TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_allocations_lookup
            ON leave_allocations (employee_id, year, type)
    """)

    # ── 3. in_lieu_records ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE in_lieu_records (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id       UUID NOT NULL REFERENCES employees(id),
            start_date        DATE,
            end_date          DATE,
            leave_days_added  NUMERIC(10,3),
            days_added        NUMERIC(10,3),
            schema_version    SMALLINT NOT NULL DEFAULT 2,
            status            in_lieu_status NOT NULL DEFAULT 'pending',
            notes             TEXT,
            created_at        TIMESTAMPTZ DEFAULT NOW(),
            updated_at        TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX ix_in_lieu_records_employee_status
            ON in_lieu_records (employee_id, status)
    """)

    # ── 4. leaves ─────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leaves (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id  UUID NOT NULL REFERENCES employees(id),
            leave_type   VARCHAR(50),
            start_date   DATE NOT NULL,
            end_date     DATE NOT NULL,
            days_taken   NUMERIC(10,2),
            status       leave_status NOT NULL DEFAULT 'pending',
            created_at   TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX ix_leaves_employee_dates
            ON leaves (employee_id, start_date, end_date)
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for t in ["leaves", "in_lieu_records", "leave_allocations", "employees"]:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
