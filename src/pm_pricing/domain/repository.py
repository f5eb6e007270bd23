"""Store Protocols — dependency inversion for testability.

Unit tests use the in-memory backend; production uses the SQL backend.
Every mutating method is a conditional write: when the row changed since it
was read, the store raises ConcurrentUpdateError instead of overwriting.
"""

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from src.pm_common.enums import Outcome, TradeStatus
from src.pm_pricing.domain.models import Market, Position, TradeRecord, UserAccount


class MarketStoreProtocol(Protocol):
    async def get_market(self, market_id: str) -> Market | None: ...

    async def list_markets(self, status: str | None = None) -> list[Market]: ...

    async def create_market(self, market: Market) -> Market: ...

    async def apply_market_delta(
        self,
        market_id: str,
        outcome: Outcome,
        delta_shares: Decimal,
        expected_version: int,
    ) -> Market: ...


class PositionStoreProtocol(Protocol):
    async def get_position(self, user_id: str, market_id: str) -> Position | None: ...

    async def list_positions(self, user_id: str) -> list[Position]: ...

    async def upsert_position(
        self,
        user_id: str,
        market_id: str,
        yes_shares: Decimal,
        no_shares: Decimal,
    ) -> Position | None:
        """Write the position; a position with both sides at zero is deleted and None returned."""
        ...


class BalanceStoreProtocol(Protocol):
    async def get_account(self, user_id: str) -> UserAccount | None: ...

    async def get_balance(self, user_id: str) -> Decimal | None: ...

    async def set_balance(
        self,
        user_id: str,
        new_balance: Decimal,
        expected_balance: Decimal,
    ) -> Decimal: ...

    async def mark_faucet_claim(self, user_id: str, claimed_at: datetime) -> None: ...


class TradeSinkProtocol(Protocol):
    async def record_trade(self, trade: TradeRecord) -> None: ...

    async def update_status(self, trade_id: str, status: TradeStatus) -> None: ...

    async def list_trades(self, user_id: str) -> list[TradeRecord]:
        """The user's trade records, newest first."""
        ...


@dataclass
class StoreBundle:
    """The stores one unit of work mutates together."""

    markets: MarketStoreProtocol
    positions: PositionStoreProtocol
    balances: BalanceStoreProtocol


class LedgerBackendProtocol(Protocol):
    def unit_of_work(self) -> AbstractAsyncContextManager[StoreBundle]:
        """Commit on clean exit, roll back every write on exception."""
        ...
