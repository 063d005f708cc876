"""Add a per-claim attempt counter to video_jobs.

Revision ID: 8d3f0b6a41c2
Revises: 5a1c9e7d2b40
Create Date: 2026-10-19 14:00:00.000000
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "8d3f0b6a41c2"
down_revision = "5a1c9e7d2b40"
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.add_column("video_jobs", sa.Column("attempt", sa.Integer(), server_default=sa.text("0"), nullable=False))


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_column("video_jobs", "attempt")
