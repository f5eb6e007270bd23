"""In-memory backend — versioned rows in dicts.

Each unit of work keeps an undo log of the rows it overwrote. On rollback the
log is replayed in reverse, restoring exactly the rows this unit of work
touched and nothing else, so a failing trade on one market never clobbers a
concurrent trade on another.

Rows handed out are copies; callers cannot mutate stored state by accident.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from src.pm_common.amounts import ZERO, to_shares, to_usdc
from src.pm_common.enums import MarketStatus, Outcome, TradeStatus
from src.pm_common.errors import (
    ConcurrentUpdateError,
    InsufficientBalanceError,
    InsufficientSharesError,
    MarketNotFoundError,
    UserNotFoundError,
)
from src.pm_pricing.domain.models import Market, Position, TradeRecord, UserAccount
from src.pm_pricing.domain.repository import StoreBundle

_MISSING = object()
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class _UndoLog:
    def __init__(self) -> None:
        self._entries: list[tuple[dict[Any, Any], Any, Any]] = []

    def remember(self, table: dict[Any, Any], key: Any) -> None:
        self._entries.append((table, key, table.get(key, _MISSING)))

    def rollback(self) -> None:
        for table, key, previous in reversed(self._entries):
            if previous is _MISSING:
                table.pop(key, None)
            else:
                table[key] = previous
        self._entries.clear()


def _resolution_order(market: Market) -> tuple[bool, float, str]:
    when = market.resolution_date
    return (when is None, when.timestamp() if when else 0.0, market.id)


class InMemoryBackend:
    def __init__(self) -> None:
        self.markets: dict[str, Market] = {}
        self.positions: dict[tuple[str, str], Position] = {}
        self.accounts: dict[str, UserAccount] = {}

    # Seeding helpers
    def add_market(
        self,
        market_id: str,
        total_yes_shares: Decimal | int | str = 0,
        total_no_shares: Decimal | int | str = 0,
        status: str = MarketStatus.TRADING.value,
        **fields: Any,
    ) -> Market:
        market = Market(
            id=market_id,
            total_yes_shares=to_shares(total_yes_shares),
            total_no_shares=to_shares(total_no_shares),
            status=status,
            **fields,
        )
        self.markets[market_id] = market
        return replace(market)

    def add_user(
        self,
        user_id: str,
        usdc_balance: Decimal | int | str = 0,
        **fields: Any,
    ) -> UserAccount:
        account = UserAccount(id=user_id, usdc_balance=to_usdc(usdc_balance), **fields)
        self.accounts[user_id] = account
        return replace(account)

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[StoreBundle]:
        undo = _UndoLog()
        try:
            yield StoreBundle(
                markets=InMemoryMarketStore(self, undo),
                positions=InMemoryPositionStore(self, undo),
                balances=InMemoryBalanceStore(self, undo),
            )
        except BaseException:
            undo.rollback()
            raise


class InMemoryMarketStore:
    def __init__(self, backend: InMemoryBackend, undo: _UndoLog) -> None:
        self._rows = backend.markets
        self._undo = undo

    async def get_market(self, market_id: str) -> Market | None:
        market = self._rows.get(market_id)
        return replace(market) if market else None

    async def list_markets(self, status: str | None = None) -> list[Market]:
        markets = [
            replace(m) for m in self._rows.values() if status is None or m.status == status
        ]
        # Soonest resolution first; undated markets last
        markets.sort(key=_resolution_order)
        return markets

    async def create_market(self, market: Market) -> Market:
        if market.id in self._rows:
            raise ConcurrentUpdateError(f"market {market.id} already exists")
        self._undo.remember(self._rows, market.id)
        self._rows[market.id] = replace(market)
        return replace(market)

    async def apply_market_delta(
        self,
        market_id: str,
        outcome: Outcome,
        delta_shares: Decimal,
        expected_version: int,
    ) -> Market:
        current = self._rows.get(market_id)
        if current is None:
            raise MarketNotFoundError(market_id)
        if current.version != expected_version:
            raise ConcurrentUpdateError(
                f"market {market_id} at version {current.version}, expected {expected_version}"
            )
        new_total = current.total(outcome) + delta_shares
        if new_total < 0:
            raise InsufficientSharesError(outcome.value, -delta_shares, current.total(outcome))

        if outcome is Outcome.YES:
            updated = replace(current, total_yes_shares=new_total, version=current.version + 1)
        else:
            updated = replace(current, total_no_shares=new_total, version=current.version + 1)
        self._undo.remember(self._rows, market_id)
        self._rows[market_id] = updated
        return replace(updated)


class InMemoryPositionStore:
    def __init__(self, backend: InMemoryBackend, undo: _UndoLog) -> None:
        self._rows = backend.positions
        self._undo = undo

    async def get_position(self, user_id: str, market_id: str) -> Position | None:
        position = self._rows.get((user_id, market_id))
        return replace(position) if position else None

    async def list_positions(self, user_id: str) -> list[Position]:
        return sorted(
            (replace(p) for (uid, _), p in self._rows.items() if uid == user_id),
            key=lambda p: p.market_id,
        )

    async def upsert_position(
        self,
        user_id: str,
        market_id: str,
        yes_shares: Decimal,
        no_shares: Decimal,
    ) -> Position | None:
        if yes_shares < 0 or no_shares < 0:
            raise InsufficientSharesError(
                Outcome.YES.value if yes_shares < 0 else Outcome.NO.value,
                -min(yes_shares, no_shares),
                ZERO,
            )
        key = (user_id, market_id)
        self._undo.remember(self._rows, key)
        if yes_shares == 0 and no_shares == 0:
            self._rows.pop(key, None)
            return None
        position = Position(user_id, market_id, yes_shares, no_shares)
        self._rows[key] = position
        return replace(position)


class InMemoryBalanceStore:
    def __init__(self, backend: InMemoryBackend, undo: _UndoLog) -> None:
        self._rows = backend.accounts
        self._undo = undo

    async def get_account(self, user_id: str) -> UserAccount | None:
        account = self._rows.get(user_id)
        return replace(account) if account else None

    async def get_balance(self, user_id: str) -> Decimal | None:
        account = self._rows.get(user_id)
        return account.usdc_balance if account else None

    async def set_balance(
        self,
        user_id: str,
        new_balance: Decimal,
        expected_balance: Decimal,
    ) -> Decimal:
        current = self._rows.get(user_id)
        if current is None:
            raise UserNotFoundError(user_id)
        if current.usdc_balance != expected_balance:
            raise ConcurrentUpdateError(
                f"balance of {user_id} is {current.usdc_balance}, expected {expected_balance}"
            )
        if new_balance < 0:
            raise InsufficientBalanceError(expected_balance - new_balance, expected_balance)
        self._undo.remember(self._rows, user_id)
        self._rows[user_id] = replace(current, usdc_balance=new_balance)
        return new_balance

    async def mark_faucet_claim(self, user_id: str, claimed_at: datetime) -> None:
        current = self._rows.get(user_id)
        if current is None:
            raise UserNotFoundError(user_id)
        self._undo.remember(self._rows, user_id)
        self._rows[user_id] = replace(current, last_faucet_claim_at=claimed_at)


class InMemoryTradeSink:
    """Audit trail kept in insertion order."""

    def __init__(self) -> None:
        self._trades: dict[str, TradeRecord] = {}

    @property
    def trades(self) -> list[TradeRecord]:
        return list(self._trades.values())

    async def record_trade(self, trade: TradeRecord) -> None:
        self._trades[trade.id] = replace(trade)

    async def update_status(self, trade_id: str, status: TradeStatus) -> None:
        self._trades[trade_id].status = status

    async def list_trades(self, user_id: str) -> list[TradeRecord]:
        # Newest insertion first among equal timestamps
        newest_first = [
            replace(t) for t in reversed(self._trades.values()) if t.user_id == user_id
        ]
        return sorted(newest_first, key=_created_at, reverse=True)


def _created_at(trade: TradeRecord) -> datetime:
    return trade.created_at or _EPOCH
