"""004: create trades table (audit trail)

Revision ID: 004
Revises: 003
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE trades (
            id          VARCHAR(64)     PRIMARY KEY,
            user_id     VARCHAR(64)     NOT NULL,
            market_id   VARCHAR(64)     NOT NULL,
            outcome     VARCHAR(3)      NOT NULL,
            direction   VARCHAR(4)      NOT NULL,
            amount      NUMERIC(20, 2)  NOT NULL,
            shares      NUMERIC(24, 6)  NOT NULL,
            price       NUMERIC         NOT NULL,
            status      VARCHAR(10)     NOT NULL DEFAULT 'PENDING',
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_trades_outcome   CHECK (outcome IN ('YES', 'NO')),
            CONSTRAINT ck_trades_direction CHECK (direction IN ('BUY', 'SELL')),
            CONSTRAINT ck_trades_status    CHECK (status IN ('PENDING', 'COMPLETED', 'FAILED'))
        );
    """)
    op.execute("CREATE INDEX idx_trades_user_created ON trades (user_id, created_at DESC);")
    op.execute("""
        CREATE TRIGGER trg_trades_updated_at
            BEFORE UPDATE ON trades
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE trades IS 'Append-only trade audit trail; only status changes';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS trades CASCADE;")
