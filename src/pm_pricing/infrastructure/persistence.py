"""SQL backend — concrete implementations of the pm_pricing store Protocols.

All queries use raw text() SQL (no ORM). Every mutation is a conditional
UPDATE ... RETURNING: market totals are guarded by the row version, balances by
the balance the caller read. A result of 0 rows means the guard failed; the
row is re-read to report which constraint was violated.

Transaction ownership: SqlBackend.unit_of_work() opens one AsyncSession per
unit of work, commits on clean exit and rolls back on any exception.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.pm_common.amounts import to_shares, to_usdc
from src.pm_common.database import async_session_factory
from src.pm_common.enums import Outcome, TradeDirection, TradeStatus
from src.pm_common.errors import (
    ConcurrentUpdateError,
    InsufficientBalanceError,
    InsufficientSharesError,
    MarketNotFoundError,
    UserNotFoundError,
)
from src.pm_pricing.domain.models import Market, Position, TradeRecord, UserAccount
from src.pm_pricing.domain.repository import StoreBundle

# ---------------------------------------------------------------------------
# SQL: markets
# ---------------------------------------------------------------------------

_MARKET_COLUMNS = """
    id, title, description, status,
    total_yes_shares, total_no_shares, version,
    resolution_date, created_at, proposer_id
"""

_GET_MARKET_SQL = text(f"""
    SELECT {_MARKET_COLUMNS}
    FROM markets
    WHERE id = :market_id
""")

_LIST_MARKETS_SQL = text(f"""
    SELECT {_MARKET_COLUMNS}
    FROM markets
    WHERE CAST(:status AS TEXT) IS NULL OR status = CAST(:status AS TEXT)
    ORDER BY resolution_date ASC NULLS LAST, id ASC
""")

_INSERT_MARKET_SQL = text(f"""
    INSERT INTO markets
        (id, title, description, status,
         total_yes_shares, total_no_shares, proposer_id, created_at)
    VALUES
        (:id, :title, :description, :status,
         :total_yes_shares, :total_no_shares, :proposer_id, COALESCE(:created_at, NOW()))
    RETURNING {_MARKET_COLUMNS}
""")

_APPLY_YES_DELTA_SQL = text(f"""
    UPDATE markets
    SET total_yes_shares = total_yes_shares + :delta,
        version = version + 1,
        updated_at = NOW()
    WHERE id = :market_id
      AND version = :expected_version
      AND total_yes_shares + :delta >= 0
    RETURNING {_MARKET_COLUMNS}
""")

_APPLY_NO_DELTA_SQL = text(f"""
    UPDATE markets
    SET total_no_shares = total_no_shares + :delta,
        version = version + 1,
        updated_at = NOW()
    WHERE id = :market_id
      AND version = :expected_version
      AND total_no_shares + :delta >= 0
    RETURNING {_MARKET_COLUMNS}
""")

# ---------------------------------------------------------------------------
# SQL: positions
# ---------------------------------------------------------------------------

_GET_POSITION_SQL = text("""
    SELECT user_id, market_id, yes_shares, no_shares
    FROM positions
    WHERE user_id = :user_id AND market_id = :market_id
""")

_LIST_POSITIONS_SQL = text("""
    SELECT user_id, market_id, yes_shares, no_shares
    FROM positions
    WHERE user_id = :user_id
      AND (yes_shares > 0 OR no_shares > 0)
    ORDER BY market_id
""")

_UPSERT_POSITION_SQL = text("""
    INSERT INTO positions (user_id, market_id, yes_shares, no_shares)
    VALUES (:user_id, :market_id, :yes_shares, :no_shares)
    ON CONFLICT (user_id, market_id) DO UPDATE
        SET yes_shares = EXCLUDED.yes_shares,
            no_shares  = EXCLUDED.no_shares,
            updated_at = NOW()
    RETURNING user_id, market_id, yes_shares, no_shares
""")

_DELETE_POSITION_SQL = text("""
    DELETE FROM positions
    WHERE user_id = :user_id AND market_id = :market_id
""")

# ---------------------------------------------------------------------------
# SQL: users
# ---------------------------------------------------------------------------

_GET_ACCOUNT_SQL = text("""
    SELECT id, wallet_address, usdc_balance, last_faucet_claim_at
    FROM users
    WHERE id = :user_id
""")

_SET_BALANCE_SQL = text("""
    UPDATE users
    SET usdc_balance = :new_balance,
        updated_at = NOW()
    WHERE id = :user_id
      AND usdc_balance = :expected_balance
      AND CAST(:new_balance AS NUMERIC) >= 0
    RETURNING usdc_balance
""")

_MARK_FAUCET_SQL = text("""
    UPDATE users
    SET last_faucet_claim_at = :claimed_at,
        updated_at = NOW()
    WHERE id = :user_id
    RETURNING id
""")

# ---------------------------------------------------------------------------
# SQL: trades
# ---------------------------------------------------------------------------

_INSERT_TRADE_SQL = text("""
    INSERT INTO trades
        (id, user_id, market_id, outcome, direction,
         amount, shares, price, status, created_at)
    VALUES
        (:id, :user_id, :market_id, :outcome, :direction,
         :amount, :shares, :price, :status, COALESCE(:created_at, NOW()))
""")

_UPDATE_TRADE_STATUS_SQL = text("""
    UPDATE trades
    SET status = :status,
        updated_at = NOW()
    WHERE id = :trade_id
""")

_LIST_TRADES_SQL = text("""
    SELECT id, user_id, market_id, outcome, direction,
           amount, shares, price, status, created_at
    FROM trades
    WHERE user_id = :user_id
    ORDER BY created_at DESC, id DESC
""")

# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_market(row: object) -> Market:
    return Market(
        id=row.id,  # type: ignore[attr-defined]
        title=row.title,  # type: ignore[attr-defined]
        description=row.description,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        total_yes_shares=to_shares(row.total_yes_shares),  # type: ignore[attr-defined]
        total_no_shares=to_shares(row.total_no_shares),  # type: ignore[attr-defined]
        version=row.version,  # type: ignore[attr-defined]
        resolution_date=row.resolution_date,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        proposer_id=row.proposer_id,  # type: ignore[attr-defined]
    )


def _row_to_position(row: object) -> Position:
    return Position(
        user_id=row.user_id,  # type: ignore[attr-defined]
        market_id=row.market_id,  # type: ignore[attr-defined]
        yes_shares=to_shares(row.yes_shares),  # type: ignore[attr-defined]
        no_shares=to_shares(row.no_shares),  # type: ignore[attr-defined]
    )


def _row_to_account(row: object) -> UserAccount:
    return UserAccount(
        id=str(row.id),  # type: ignore[attr-defined]
        wallet_address=row.wallet_address,  # type: ignore[attr-defined]
        usdc_balance=to_usdc(row.usdc_balance),  # type: ignore[attr-defined]
        last_faucet_claim_at=row.last_faucet_claim_at,  # type: ignore[attr-defined]
    )


def _row_to_trade(row: object) -> TradeRecord:
    return TradeRecord(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        market_id=row.market_id,  # type: ignore[attr-defined]
        outcome=Outcome(row.outcome),  # type: ignore[attr-defined]
        direction=TradeDirection(row.direction),  # type: ignore[attr-defined]
        amount=to_usdc(row.amount),  # type: ignore[attr-defined]
        shares=to_shares(row.shares),  # type: ignore[attr-defined]
        price=row.price,  # type: ignore[attr-defined]
        status=TradeStatus(row.status),  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class SqlMarketStore:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get_market(self, market_id: str) -> Market | None:
        result = await self._db.execute(_GET_MARKET_SQL, {"market_id": market_id})
        row = result.fetchone()
        return _row_to_market(row) if row else None

    async def list_markets(self, status: str | None = None) -> list[Market]:
        result = await self._db.execute(_LIST_MARKETS_SQL, {"status": status})
        return [_row_to_market(row) for row in result.fetchall()]

    async def create_market(self, market: Market) -> Market:
        result = await self._db.execute(
            _INSERT_MARKET_SQL,
            {
                "id": market.id,
                "title": market.title,
                "description": market.description,
                "status": market.status,
                "total_yes_shares": market.total_yes_shares,
                "total_no_shares": market.total_no_shares,
                "proposer_id": market.proposer_id,
                "created_at": market.created_at,
            },
        )
        return _row_to_market(result.fetchone())

    async def apply_market_delta(
        self,
        market_id: str,
        outcome: Outcome,
        delta_shares: Decimal,
        expected_version: int,
    ) -> Market:
        sql = _APPLY_YES_DELTA_SQL if outcome is Outcome.YES else _APPLY_NO_DELTA_SQL
        result = await self._db.execute(
            sql,
            {
                "market_id": market_id,
                "delta": delta_shares,
                "expected_version": expected_version,
            },
        )
        row = result.fetchone()
        if row is not None:
            return _row_to_market(row)

        current = await self.get_market(market_id)
        if current is None:
            raise MarketNotFoundError(market_id)
        if current.version != expected_version:
            raise ConcurrentUpdateError(
                f"market {market_id} at version {current.version}, expected {expected_version}"
            )
        raise InsufficientSharesError(outcome.value, -delta_shares, current.total(outcome))


class SqlPositionStore:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get_position(self, user_id: str, market_id: str) -> Position | None:
        result = await self._db.execute(
            _GET_POSITION_SQL, {"user_id": user_id, "market_id": market_id}
        )
        row = result.fetchone()
        return _row_to_position(row) if row else None

    async def list_positions(self, user_id: str) -> list[Position]:
        result = await self._db.execute(_LIST_POSITIONS_SQL, {"user_id": user_id})
        return [_row_to_position(row) for row in result.fetchall()]

    async def upsert_position(
        self,
        user_id: str,
        market_id: str,
        yes_shares: Decimal,
        no_shares: Decimal,
    ) -> Position | None:
        params = {"user_id": user_id, "market_id": market_id}
        if yes_shares == 0 and no_shares == 0:
            await self._db.execute(_DELETE_POSITION_SQL, params)
            return None
        result = await self._db.execute(
            _UPSERT_POSITION_SQL,
            {**params, "yes_shares": yes_shares, "no_shares": no_shares},
        )
        return _row_to_position(result.fetchone())


class SqlBalanceStore:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get_account(self, user_id: str) -> UserAccount | None:
        result = await self._db.execute(_GET_ACCOUNT_SQL, {"user_id": user_id})
        row = result.fetchone()
        return _row_to_account(row) if row else None

    async def get_balance(self, user_id: str) -> Decimal | None:
        account = await self.get_account(user_id)
        return account.usdc_balance if account else None

    async def set_balance(
        self,
        user_id: str,
        new_balance: Decimal,
        expected_balance: Decimal,
    ) -> Decimal:
        result = await self._db.execute(
            _SET_BALANCE_SQL,
            {
                "user_id": user_id,
                "new_balance": new_balance,
                "expected_balance": expected_balance,
            },
        )
        row = result.fetchone()
        if row is not None:
            return to_usdc(row.usdc_balance)

        current = await self.get_balance(user_id)
        if current is None:
            raise UserNotFoundError(user_id)
        if current != expected_balance:
            raise ConcurrentUpdateError(
                f"balance of {user_id} is {current}, expected {expected_balance}"
            )
        raise InsufficientBalanceError(expected_balance - new_balance, expected_balance)

    async def mark_faucet_claim(self, user_id: str, claimed_at: datetime) -> None:
        result = await self._db.execute(
            _MARK_FAUCET_SQL, {"user_id": user_id, "claimed_at": claimed_at}
        )
        if result.fetchone() is None:
            raise UserNotFoundError(user_id)


# ---------------------------------------------------------------------------
# Backend + trade sink
# ---------------------------------------------------------------------------


class SqlBackend:
    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession] = async_session_factory
    ) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[StoreBundle]:
        async with self._session_factory() as db:
            try:
                yield StoreBundle(
                    markets=SqlMarketStore(db),
                    positions=SqlPositionStore(db),
                    balances=SqlBalanceStore(db),
                )
                await db.commit()
            except BaseException:
                await db.rollback()
                raise


class SqlTradeSink:
    """Writes the audit trail in its own sessions so a ledger rollback keeps FAILED records."""

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession] = async_session_factory
    ) -> None:
        self._session_factory = session_factory

    async def record_trade(self, trade: TradeRecord) -> None:
        async with self._session_factory() as db:
            await db.execute(
                _INSERT_TRADE_SQL,
                {
                    "id": trade.id,
                    "user_id": trade.user_id,
                    "market_id": trade.market_id,
                    "outcome": trade.outcome.value,
                    "direction": trade.direction.value,
                    "amount": trade.amount,
                    "shares": trade.shares,
                    "price": trade.price,
                    "status": trade.status.value,
                    "created_at": trade.created_at,
                },
            )
            await db.commit()

    async def update_status(self, trade_id: str, status: TradeStatus) -> None:
        async with self._session_factory() as db:
            await db.execute(
                _UPDATE_TRADE_STATUS_SQL, {"trade_id": trade_id, "status": status.value}
            )
            await db.commit()

    async def list_trades(self, user_id: str) -> list[TradeRecord]:
        async with self._session_factory() as db:
            result = await db.execute(_LIST_TRADES_SQL, {"user_id": user_id})
            return [_row_to_trade(row) for row in result.fetchall()]
