"""002 – Standardize in-lieu day counts on leave_days_added.

Rows created before the canonical column existed carry their day count in
days_added only (schema_version = 1). Backfill leave_days_added from
days_added where it is missing and promote those rows to schema_version 2.
Rows where both columns are populated but disagree are left untouched;
the reconciliation audit reports them.

Revision ID: 002_standardize_in_lieu_fields
Revises: 001_entitlement_schema
Create Date: 2026-10-05 10:30:00.000000+00:00
"""

from alembic import op

# Revision identifiers
revision = "002_standardize_in_lieu_fields"
down_revision = "001_entitlement_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("""
        UPDATE in_lieu_records
           SET leave_days_added = days_added,
               schema_version   = 2,
               updated_at       = NOW()
         WHERE leave_days_added IS NULL
           AND days_added IS NOT NULL
    """)
    op.execute("""
        UPDATE in_lieu_records
           SET schema_version = 2
         WHERE leave_days_added IS NOT NULL
           AND (days_added IS NULL OR days_added = leave_days_added)
           AND schema_version <> 2
    """)


def downgrade() -> None:
    # Backfilled values are indistinguishable from originals; nothing to undo.
    pass
