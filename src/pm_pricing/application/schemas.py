"""Pydantic response schemas for the trading service."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from src.pm_common.amounts import payout_usdc, usdc_to_display
from src.pm_common.enums import Outcome, TradeDirection, TradeStatus
from src.pm_pricing.domain.models import (
    BuyResult,
    Market,
    Position,
    SellResult,
    TradeRecord,
)


class MarketQuote(BaseModel):
    market_id: str
    title: str
    description: str | None = None
    status: str
    yes_price: Decimal
    no_price: Decimal
    total_yes_shares: Decimal
    total_no_shares: Decimal
    total_volume: Decimal
    proposer_id: str | None = None

    @classmethod
    def from_market(cls, market: Market) -> "MarketQuote":
        return cls(
            market_id=market.id,
            title=market.title,
            description=market.description,
            status=market.status,
            yes_price=market.yes_price,
            no_price=market.no_price,
            total_yes_shares=market.total_yes_shares,
            total_no_shares=market.total_no_shares,
            total_volume=market.total_volume,
            proposer_id=market.proposer_id,
        )


class MarketListResponse(BaseModel):
    items: list[MarketQuote]
    total: int


class BuyResponse(BaseModel):
    trade_id: str
    market_id: str
    outcome: Outcome
    amount: Decimal
    amount_display: str
    shares: Decimal
    price: Decimal
    balance_after: Decimal
    balance_after_display: str

    @classmethod
    def from_result(cls, market_id: str, outcome: Outcome, result: BuyResult) -> "BuyResponse":
        return cls(
            trade_id=result.trade_id,
            market_id=market_id,
            outcome=outcome,
            amount=result.amount,
            amount_display=usdc_to_display(result.amount),
            shares=result.shares,
            price=result.price,
            balance_after=result.balance_after,
            balance_after_display=usdc_to_display(result.balance_after),
        )


class SellResponse(BaseModel):
    trade_id: str
    market_id: str
    outcome: Outcome
    shares: Decimal
    proceeds: Decimal
    proceeds_display: str
    price: Decimal
    balance_after: Decimal
    balance_after_display: str
    position_closed: bool

    @classmethod
    def from_result(cls, market_id: str, outcome: Outcome, result: SellResult) -> "SellResponse":
        return cls(
            trade_id=result.trade_id,
            market_id=market_id,
            outcome=outcome,
            shares=result.shares,
            proceeds=result.proceeds,
            proceeds_display=usdc_to_display(result.proceeds),
            price=result.price,
            balance_after=result.balance_after,
            balance_after_display=usdc_to_display(result.balance_after),
            position_closed=result.position_closed,
        )


class BalanceResponse(BaseModel):
    user_id: str
    usdc_balance: Decimal
    usdc_balance_display: str

    @classmethod
    def from_balance(cls, user_id: str, balance: Decimal) -> "BalanceResponse":
        return cls(
            user_id=user_id,
            usdc_balance=balance,
            usdc_balance_display=usdc_to_display(balance),
        )


class PositionItem(BaseModel):
    market_id: str
    market_title: str
    yes_shares: Decimal
    no_shares: Decimal
    yes_value: Decimal      # marked at the current price, rounded down
    no_value: Decimal
    total_value: Decimal

    @classmethod
    def mark(cls, position: Position, market: Market) -> "PositionItem":
        yes_value = payout_usdc(position.yes_shares * market.yes_price)
        no_value = payout_usdc(position.no_shares * market.no_price)
        return cls(
            market_id=position.market_id,
            market_title=market.title,
            yes_shares=position.yes_shares,
            no_shares=position.no_shares,
            yes_value=yes_value,
            no_value=no_value,
            total_value=yes_value + no_value,
        )


class PortfolioResponse(BaseModel):
    user_id: str
    usdc_balance: Decimal
    positions: list[PositionItem]
    positions_value: Decimal
    total_value: Decimal
    total_value_display: str


class TradeItem(BaseModel):
    trade_id: str
    market_id: str
    outcome: Outcome
    direction: TradeDirection
    amount: Decimal
    amount_display: str
    shares: Decimal
    price: Decimal
    status: TradeStatus
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, trade: TradeRecord) -> "TradeItem":
        return cls(
            trade_id=trade.id,
            market_id=trade.market_id,
            outcome=trade.outcome,
            direction=trade.direction,
            amount=trade.amount,
            amount_display=usdc_to_display(trade.amount),
            shares=trade.shares,
            price=trade.price,
            status=trade.status,
            created_at=trade.created_at,
        )


class TradeHistoryResponse(BaseModel):
    user_id: str
    items: list[TradeItem]     # newest first
    total: int
