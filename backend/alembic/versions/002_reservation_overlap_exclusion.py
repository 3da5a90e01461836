# backend/alembic/versions/002_reservation_overlap_exclusion.py
"""Exclusion constraint against overlapping active reservations

Revision ID: 002_reservation_overlap_exclusion
Revises: 001_initial_schema
Create Date: 2026-09-28 00:00:01.000000

PostgreSQL only. The partial unique index from 001 rejects identical
starts everywhere; this constraint also rejects partial overlaps on
``[start_time, end_time)`` for the same activity and date. Other
dialects keep the unique index alone.
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002_reservation_overlap_exclusion"
down_revision: Union[str, None] = "001_initial_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _is_postgres() -> bool:
    bind = op.get_bind()
    return bind is not None and bind.dialect.name == "postgresql"


def upgrade() -> None:
    if not _is_postgres():
        print("Skipping reservation exclusion constraint (not PostgreSQL)")
        return

    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
    op.execute(
        """
        ALTER TABLE reservations
          ADD COLUMN IF NOT EXISTS slot_span tsrange
          GENERATED ALWAYS AS (
            tsrange(
              (booking_date::timestamp + start_time),
              (booking_date::timestamp + end_time),
              '[)'
            )
          ) STORED
        """
    )
    op.execute(
        """
        ALTER TABLE reservations
          ADD CONSTRAINT reservations_no_overlap_per_activity
          EXCLUDE USING gist (
            activity_id WITH =,
            slot_span WITH &&
          )
          WHERE (status <> 'canceled')
        """
    )


def downgrade() -> None:
    if not _is_postgres():
        return
    op.execute(
        "ALTER TABLE reservations DROP CONSTRAINT IF EXISTS reservations_no_overlap_per_activity"
    )
    op.execute("ALTER TABLE reservations DROP COLUMN IF EXISTS slot_span")
