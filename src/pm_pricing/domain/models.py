"""Domain models for pm_pricing — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from src.pm_common.amounts import ZERO
from src.pm_common.enums import MarketStatus, Outcome, TradeDirection, TradeStatus
from src.pm_pricing.domain.pricing import outcome_price


@dataclass
class Market:
    id: str
    total_yes_shares: Decimal = ZERO
    total_no_shares: Decimal = ZERO
    version: int = 0
    title: str = ""
    description: str | None = None
    status: str = MarketStatus.TRADING.value
    resolution_date: datetime | None = None
    created_at: datetime | None = None
    proposer_id: str | None = None

    def total(self, outcome: Outcome) -> Decimal:
        return self.total_yes_shares if outcome is Outcome.YES else self.total_no_shares

    def price(self, outcome: Outcome) -> Decimal:
        return outcome_price(self.total_yes_shares, self.total_no_shares, outcome)

    @property
    def yes_price(self) -> Decimal:
        return self.price(Outcome.YES)

    @property
    def no_price(self) -> Decimal:
        return self.price(Outcome.NO)

    @property
    def total_volume(self) -> Decimal:
        return self.total_yes_shares + self.total_no_shares


@dataclass
class Position:
    user_id: str
    market_id: str
    yes_shares: Decimal = ZERO
    no_shares: Decimal = ZERO

    def shares(self, outcome: Outcome) -> Decimal:
        return self.yes_shares if outcome is Outcome.YES else self.no_shares

    def with_delta(self, outcome: Outcome, delta: Decimal) -> "Position":
        """Return a copy with ``delta`` shares added to one side."""
        if outcome is Outcome.YES:
            return Position(self.user_id, self.market_id, self.yes_shares + delta, self.no_shares)
        return Position(self.user_id, self.market_id, self.yes_shares, self.no_shares + delta)

    @property
    def is_empty(self) -> bool:
        return self.yes_shares == 0 and self.no_shares == 0


@dataclass
class UserAccount:
    id: str
    usdc_balance: Decimal = ZERO
    wallet_address: str | None = None
    last_faucet_claim_at: datetime | None = None


@dataclass
class TradeRecord:
    id: str
    user_id: str
    market_id: str
    outcome: Outcome
    direction: TradeDirection
    amount: Decimal     # USDC paid (buy) or received (sell)
    shares: Decimal
    price: Decimal
    status: TradeStatus = TradeStatus.PENDING
    created_at: datetime | None = None


@dataclass(frozen=True)
class BuyResult:
    trade_id: str
    shares: Decimal
    price: Decimal
    amount: Decimal
    balance_after: Decimal


@dataclass(frozen=True)
class SellResult:
    trade_id: str
    proceeds: Decimal
    price: Decimal
    shares: Decimal
    balance_after: Decimal
    position_closed: bool = False

