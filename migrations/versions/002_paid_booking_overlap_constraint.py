"""Exclusion constraint: paid bookings of one room never overlap.

Revision ID: 002_paid_booking_overlap
Revises: 001_bookings_schema
Create Date: 2026-10-19
"""

from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "002_paid_booking_overlap"
down_revision = "001_bookings_schema"
branch_labels = None
depends_on = None

_SQL_FILE = Path(__file__).resolve().parents[1] / "sql" / "002_paid_booking_overlap_constraint.sql"


def upgrade() -> None:
    op.execute(_SQL_FILE.read_text(encoding="utf-8"))


def downgrade() -> None:
    op.execute("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS no_paid_booking_overlap")
    # btree_gist is left installed; other indexes may use it.
