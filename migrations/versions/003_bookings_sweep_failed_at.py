"""Track failed stale-draft cancellations.

Revision ID: 003_sweep_failed_at
Revises: 002_paid_booking_overlap
Create Date: 2026-10-20
"""

from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "003_sweep_failed_at"
down_revision = "002_paid_booking_overlap"
branch_labels = None
depends_on = None

_SQL_FILE = Path(__file__).resolve().parents[1] / "sql" / "003_bookings_sweep_failed_at.sql"


def upgrade() -> None:
    op.execute(_SQL_FILE.read_text(encoding="utf-8"))


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS bookings_unpaid_sweep_idx")
    op.execute(
        "CREATE INDEX IF NOT EXISTS bookings_unpaid_booked_at_idx "
        "ON bookings (booked_at) WHERE NOT payment_status"
    )
    op.execute("ALTER TABLE bookings DROP COLUMN IF EXISTS sweep_failed_at")
