"""005: record who proposed a market

Revision ID: 005
Revises: 004
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("ALTER TABLE markets ADD COLUMN proposer_id VARCHAR(64) REFERENCES users (id);")
    op.execute("CREATE INDEX idx_markets_status_created ON markets (status, created_at DESC);")


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_markets_status_created;")
    op.execute("ALTER TABLE markets DROP COLUMN IF EXISTS proposer_id;")
