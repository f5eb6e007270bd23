"""TradingApplicationService — thin composition layer over PricingLedger.

The UI layer receives an instance of this service instead of reaching into a
process-wide store. Each call maps ledger results onto response schemas;
errors propagate unchanged as AppError subclasses.
"""

from datetime import datetime
from decimal import Decimal

from src.pm_common.amounts import ZERO, Number, usdc_to_display
from src.pm_common.enums import MarketStatus, Outcome
from src.pm_common.logging_setup import configure_logging
from src.pm_pricing.application.schemas import (
    BalanceResponse,
    BuyResponse,
    MarketListResponse,
    MarketQuote,
    PortfolioResponse,
    PositionItem,
    SellResponse,
    TradeHistoryResponse,
    TradeItem,
)
from src.pm_pricing.domain.ledger import PricingLedger
from src.pm_pricing.infrastructure.persistence import SqlBackend, SqlTradeSink


class TradingApplicationService:
    def __init__(self, ledger: PricingLedger | None = None) -> None:
        self._ledger = ledger or PricingLedger(SqlBackend(), SqlTradeSink())

    @property
    def ledger(self) -> PricingLedger:
        return self._ledger

    async def list_markets(
        self, status: str | None = MarketStatus.TRADING.value
    ) -> MarketListResponse:
        markets = await self._ledger.list_markets(status)
        items = [MarketQuote.from_market(m) for m in markets]
        return MarketListResponse(items=items, total=len(items))

    async def get_quote(self, market_id: str) -> MarketQuote:
        market = await self._ledger.get_market(market_id)
        return MarketQuote.from_market(market)

    async def propose_market(
        self, title: str, description: str, proposer_id: str
    ) -> MarketQuote:
        market = await self._ledger.propose_market(title, description, proposer_id)
        return MarketQuote.from_market(market)

    async def list_proposals(self) -> MarketListResponse:
        return await self.list_markets(status=MarketStatus.PROPOSED.value)

    async def buy(
        self, user_id: str, market_id: str, outcome: Outcome | str, amount: Number
    ) -> BuyResponse:
        outcome = Outcome(outcome)
        result = await self._ledger.buy(user_id, market_id, outcome, amount)
        return BuyResponse.from_result(market_id, outcome, result)

    async def sell(
        self, user_id: str, market_id: str, outcome: Outcome | str, shares: Number
    ) -> SellResponse:
        outcome = Outcome(outcome)
        result = await self._ledger.sell(user_id, market_id, outcome, shares)
        return SellResponse.from_result(market_id, outcome, result)

    async def get_balance(self, user_id: str) -> BalanceResponse:
        account = await self._ledger.get_account(user_id)
        return BalanceResponse.from_balance(user_id, account.usdc_balance)

    async def deposit(self, user_id: str, amount: Number) -> BalanceResponse:
        balance = await self._ledger.deposit(user_id, amount)
        return BalanceResponse.from_balance(user_id, balance)

    async def withdraw(self, user_id: str, amount: Number) -> BalanceResponse:
        balance = await self._ledger.withdraw(user_id, amount)
        return BalanceResponse.from_balance(user_id, balance)

    async def claim_faucet(self, user_id: str, now: datetime | None = None) -> BalanceResponse:
        balance = await self._ledger.claim_faucet(user_id, now)
        return BalanceResponse.from_balance(user_id, balance)

    async def get_trade_history(self, user_id: str) -> TradeHistoryResponse:
        trades = await self._ledger.list_trades(user_id)
        items = [TradeItem.from_record(t) for t in trades]
        return TradeHistoryResponse(user_id=user_id, items=items, total=len(items))

    async def get_portfolio(self, user_id: str) -> PortfolioResponse:
        account = await self._ledger.get_account(user_id)
        positions = await self._ledger.list_positions(user_id)
        # Positions may sit in markets that stopped trading, so load every status
        markets = {m.id: m for m in await self._ledger.list_markets(status=None)}

        items = [
            PositionItem.mark(p, markets[p.market_id])
            for p in positions
            if p.market_id in markets
        ]
        positions_value: Decimal = sum((i.total_value for i in items), ZERO)
        total = account.usdc_balance + positions_value
        return PortfolioResponse(
            user_id=user_id,
            usdc_balance=account.usdc_balance,
            positions=items,
            positions_value=positions_value,
            total_value=total,
            total_value_display=usdc_to_display(total),
        )


def create_trading_service() -> TradingApplicationService:
    """Startup wiring: configure logging, then serve from the configured database."""
    configure_logging()
    return TradingApplicationService(PricingLedger(SqlBackend(), SqlTradeSink()))
