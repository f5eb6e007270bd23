"""002: create markets table

Revision ID: 002
Revises: 001
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE markets (
            id                  VARCHAR(64)     PRIMARY KEY,
            title               VARCHAR(500)    NOT NULL DEFAULT '',
            description         TEXT,
            status              VARCHAR(20)     NOT NULL DEFAULT 'PROPOSED',
            total_yes_shares    NUMERIC(24, 6)  NOT NULL DEFAULT 0,
            total_no_shares     NUMERIC(24, 6)  NOT NULL DEFAULT 0,
            version             BIGINT          NOT NULL DEFAULT 0,
            resolution_date     TIMESTAMPTZ,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_markets_yes_shares_gte_0 CHECK (total_yes_shares >= 0),
            CONSTRAINT ck_markets_no_shares_gte_0  CHECK (total_no_shares >= 0),
            CONSTRAINT ck_markets_status CHECK (
                status IN ('PROPOSED', 'TRADING', 'RESOLVING', 'RESOLVED')
            )
        );
    """)
    op.execute("CREATE INDEX idx_markets_status ON markets (status);")
    op.execute("""
        CREATE TRIGGER trg_markets_updated_at
            BEFORE UPDATE ON markets
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute(
        "COMMENT ON TABLE markets IS 'Binary markets; outcome totals drive the share-ratio price';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS markets CASCADE;")
