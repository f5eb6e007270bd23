"""003: create positions table

Revision ID: 003
Revises: 002
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE positions (
            id          UUID            PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id     VARCHAR(64)     NOT NULL REFERENCES users (id),
            market_id   VARCHAR(64)     NOT NULL REFERENCES markets (id),
            yes_shares  NUMERIC(24, 6)  NOT NULL DEFAULT 0,
            no_shares   NUMERIC(24, 6)  NOT NULL DEFAULT 0,
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_positions_user_market   UNIQUE (user_id, market_id),
            CONSTRAINT ck_positions_yes_gte_0     CHECK (yes_shares >= 0),
            CONSTRAINT ck_positions_no_gte_0      CHECK (no_shares >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_positions_user ON positions (user_id);")
    op.execute("""
        CREATE TRIGGER trg_positions_updated_at
            BEFORE UPDATE ON positions
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute(
        "COMMENT ON TABLE positions IS 'One row per user per market; deleted when both sides reach zero';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS positions CASCADE;")
