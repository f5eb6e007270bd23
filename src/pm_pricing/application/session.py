"""TradingSession — optimistic local mirror of one user's trading state.

Every trade is a two-phase operation:

  1. tentative   the expected delta is applied to the mirror immediately,
                 so a UI can render the new balance and position at once
  2. acknowledge the ledger call completes or fails
  3. confirm     the tentative delta is replaced by the confirmed delta
     compensate  the exact inverse of the tentative delta is applied and
                 the error re-raised

submit_buy / submit_sell return an asyncio.Task. Compensation runs inside
that task before its result is set, so any awaiter sees either the confirmed
result or the error with the mirror already restored.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, replace
from decimal import Decimal

from src.pm_common.amounts import ZERO, Number, positive_shares, positive_usdc
from src.pm_common.enums import Outcome, TradeDirection
from src.pm_common.errors import (
    InsufficientBalanceError,
    InsufficientSharesError,
    MarketNotFoundError,
    NoPositionError,
    ZeroPriceError,
)
from src.pm_pricing.domain.ledger import PricingLedger
from src.pm_pricing.domain.models import BuyResult, Market, Position, SellResult
from src.pm_pricing.domain.pricing import quote_buy, quote_sell

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TradeDelta:
    market_id: str
    outcome: Outcome
    balance: Decimal    # change to usdc_balance
    shares: Decimal     # change to the position and to the market total


@dataclass
class PendingTrade:
    local_id: int
    direction: TradeDirection
    tentative: TradeDelta
    task: "asyncio.Task[BuyResult] | asyncio.Task[SellResult] | None" = None


class TradingSession:
    def __init__(self, ledger: PricingLedger, user_id: str) -> None:
        self._ledger = ledger
        self.user_id = user_id
        self.usdc_balance: Decimal = ZERO
        self.positions: dict[str, Position] = {}
        self.markets: dict[str, Market] = {}
        self._pending: dict[int, PendingTrade] = {}
        self._ids = itertools.count(1)

    @property
    def pending(self) -> list[PendingTrade]:
        return list(self._pending.values())

    async def refresh(self) -> None:
        """Replace the mirror with the ledger's current state."""
        if self._pending:
            raise RuntimeError(f"{len(self._pending)} trade(s) still in flight")
        account = await self._ledger.get_account(self.user_id)
        positions = await self._ledger.list_positions(self.user_id)
        markets = await self._ledger.list_markets(status=None)
        self.usdc_balance = account.usdc_balance
        self.positions = {p.market_id: p for p in positions}
        self.markets = {m.id: m for m in markets}

    def price(self, market_id: str, outcome: Outcome | str) -> Decimal:
        return self._market(market_id).price(Outcome(outcome))

    # ------------------------------------------------------------------
    # Buy
    # ------------------------------------------------------------------

    def submit_buy(
        self, market_id: str, outcome: Outcome | str, amount: Number
    ) -> "asyncio.Task[BuyResult]":
        outcome = Outcome(outcome)
        amount = positive_usdc(amount, "buy amount")
        market = self._market(market_id)
        if amount > self.usdc_balance:
            raise InsufficientBalanceError(amount, self.usdc_balance)
        if market.price(outcome) == 0:
            raise ZeroPriceError(market_id, outcome.value)

        quote = quote_buy(market.total_yes_shares, market.total_no_shares, outcome, amount)
        pending = self._begin(
            TradeDirection.BUY, TradeDelta(market_id, outcome, -amount, quote.shares)
        )
        task = asyncio.create_task(self._settle_buy(pending, amount))
        pending.task = task
        return task

    async def buy(self, market_id: str, outcome: Outcome | str, amount: Number) -> BuyResult:
        return await self.submit_buy(market_id, outcome, amount)

    async def _settle_buy(self, pending: PendingTrade, amount: Decimal) -> BuyResult:
        delta = pending.tentative
        try:
            result = await self._ledger.buy(self.user_id, delta.market_id, delta.outcome, amount)
        except BaseException:
            self._compensate(pending)
            raise
        self._confirm(
            pending, TradeDelta(delta.market_id, delta.outcome, -result.amount, result.shares)
        )
        return result

    # ------------------------------------------------------------------
    # Sell
    # ------------------------------------------------------------------

    def submit_sell(
        self, market_id: str, outcome: Outcome | str, shares: Number
    ) -> "asyncio.Task[SellResult]":
        outcome = Outcome(outcome)
        shares = positive_shares(shares, "shares to sell")
        market = self._market(market_id)
        position = self.positions.get(market_id)
        if position is None:
            raise NoPositionError(self.user_id, market_id)
        held = position.shares(outcome)
        if shares > held:
            raise InsufficientSharesError(outcome.value, shares, held)

        quote = quote_sell(market.total_yes_shares, market.total_no_shares, outcome, shares)
        pending = self._begin(
            TradeDirection.SELL, TradeDelta(market_id, outcome, quote.proceeds, -shares)
        )
        task = asyncio.create_task(self._settle_sell(pending, shares))
        pending.task = task
        return task

    async def sell(self, market_id: str, outcome: Outcome | str, shares: Number) -> SellResult:
        return await self.submit_sell(market_id, outcome, shares)

    async def _settle_sell(self, pending: PendingTrade, shares: Decimal) -> SellResult:
        delta = pending.tentative
        try:
            result = await self._ledger.sell(self.user_id, delta.market_id, delta.outcome, shares)
        except BaseException:
            self._compensate(pending)
            raise
        self._confirm(
            pending, TradeDelta(delta.market_id, delta.outcome, result.proceeds, -result.shares)
        )
        return result

    # ------------------------------------------------------------------
    # Mirror bookkeeping
    # ------------------------------------------------------------------

    def _market(self, market_id: str) -> Market:
        market = self.markets.get(market_id)
        if market is None:
            raise MarketNotFoundError(market_id)
        return market

    def _begin(self, direction: TradeDirection, delta: TradeDelta) -> PendingTrade:
        pending = PendingTrade(local_id=next(self._ids), direction=direction, tentative=delta)
        self._apply(delta, 1)
        self._pending[pending.local_id] = pending
        return pending

    def _confirm(self, pending: PendingTrade, confirmed: TradeDelta) -> None:
        self._pending.pop(pending.local_id, None)
        self._apply(pending.tentative, -1)
        self._apply(confirmed, 1)

    def _compensate(self, pending: PendingTrade) -> None:
        self._pending.pop(pending.local_id, None)
        self._apply(pending.tentative, -1)
        logger.info(
            "Rolled back tentative %s user=%s market=%s",
            pending.direction.value, self.user_id, pending.tentative.market_id,
        )

    def _apply(self, delta: TradeDelta, sign: int) -> None:
        self.usdc_balance += sign * delta.balance
        shares = sign * delta.shares

        position = self.positions.get(delta.market_id) or Position(self.user_id, delta.market_id)
        position = position.with_delta(delta.outcome, shares)
        if position.is_empty:
            self.positions.pop(delta.market_id, None)
        else:
            self.positions[delta.market_id] = position

        market = self.markets.get(delta.market_id)
        if market is not None:
            if delta.outcome is Outcome.YES:
                market = replace(market, total_yes_shares=market.total_yes_shares + shares)
            else:
                market = replace(market, total_no_shares=market.total_no_shares + shares)
            self.markets[delta.market_id] = market
