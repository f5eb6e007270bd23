"""PricingLedger — prices outcomes and executes trades against the stores.

Flow of every mutating call:
  1. validate and quantize the input amount
  2. take the market and user locks (sorted order)
  3. open one backend unit of work
  4. read market, account and position; check every precondition
  5. quote price and quantity from the totals as read
  6. write balance, position and market totals, always in that table order
     (conditional writes)
  7. commit; the trade record moves to COMPLETED

A failure anywhere before commit, cancellation included, rolls the unit of
work back and moves the trade record to FAILED, so no observer ever sees a
partial trade. The ledger never retries; retry policy belongs to the caller.
Trade-sink write failures are logged and never change the result.
"""

import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

from config.settings import settings
from src.pm_common.amounts import Number, positive_shares, positive_usdc, to_usdc
from src.pm_common.enums import MarketStatus, Outcome, TradeDirection, TradeStatus
from src.pm_common.errors import (
    AppError,
    BackendUnavailableError,
    FaucetCooldownError,
    InsufficientBalanceError,
    InsufficientSharesError,
    InvalidProposalError,
    MarketNotActiveError,
    MarketNotFoundError,
    NoPositionError,
    UserNotFoundError,
    ZeroPriceError,
)
from src.pm_pricing.domain.locks import KeyedLocks, market_key, user_key
from src.pm_pricing.domain.models import (
    BuyResult,
    Market,
    Position,
    SellResult,
    TradeRecord,
    UserAccount,
)
from src.pm_pricing.domain.pricing import quote_buy, quote_sell
from src.pm_pricing.domain.repository import (
    LedgerBackendProtocol,
    StoreBundle,
    TradeSinkProtocol,
)

logger = logging.getLogger(__name__)

TITLE_LENGTH = (10, 100)
DESCRIPTION_LENGTH = (20, 500)


def new_trade_id() -> str:
    return f"trd_{uuid.uuid4().hex}"


def new_market_id() -> str:
    return f"mkt_{uuid.uuid4().hex}"


def _backend_unavailable(exc: Exception) -> BackendUnavailableError:
    logger.warning("Backend failure: %r", exc)
    return BackendUnavailableError(f"Backend unavailable: {exc!r}")


class _GuardedStore:
    """Store proxy; a store call that fails with anything but AppError is reported
    as BackendUnavailableError."""

    def __init__(self, store: object) -> None:
        self._store = store

    def __getattr__(self, name: str) -> Callable[..., Awaitable[Any]]:
        method = getattr(self._store, name)

        async def call(*args: Any, **kwargs: Any) -> Any:
            try:
                return await method(*args, **kwargs)
            except AppError:
                raise
            except Exception as exc:
                raise _backend_unavailable(exc) from exc

        return call


def _checked_text(field: str, value: str, bounds: tuple[int, int]) -> str:
    value = value.strip()
    low, high = bounds
    if not low <= len(value) <= high:
        raise InvalidProposalError(f"{field} must be {low}-{high} characters, got {len(value)}")
    return value


class PricingLedger:
    def __init__(
        self,
        backend: LedgerBackendProtocol,
        trade_sink: TradeSinkProtocol | None = None,
        id_factory: Callable[[], str] = new_trade_id,
    ) -> None:
        self._backend = backend
        self._sink = trade_sink
        self._new_id = id_factory
        self._locks = KeyedLocks()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def quote(self, market_id: str, outcome: Outcome | str) -> Decimal:
        async with self._unit_of_work() as stores:
            market = await self._load_market(stores, market_id)
        return market.price(Outcome(outcome))

    async def get_market(self, market_id: str) -> Market:
        async with self._unit_of_work() as stores:
            return await self._load_market(stores, market_id)

    async def list_markets(self, status: str | None = MarketStatus.TRADING.value) -> list[Market]:
        async with self._unit_of_work() as stores:
            return await stores.markets.list_markets(status)

    async def get_account(self, user_id: str) -> UserAccount:
        async with self._unit_of_work() as stores:
            return await self._load_account(stores, user_id)

    async def get_position(self, user_id: str, market_id: str) -> Position | None:
        async with self._unit_of_work() as stores:
            return await stores.positions.get_position(user_id, market_id)

    async def list_positions(self, user_id: str) -> list[Position]:
        async with self._unit_of_work() as stores:
            return await stores.positions.list_positions(user_id)

    async def list_trades(self, user_id: str) -> list[TradeRecord]:
        """A user's trade records, newest first. Empty when no trade sink is attached."""
        if self._sink is None:
            return []
        try:
            return await self._sink.list_trades(user_id)
        except AppError:
            raise
        except Exception as exc:
            raise _backend_unavailable(exc) from exc

    # ------------------------------------------------------------------
    # Proposals
    # ------------------------------------------------------------------

    async def propose_market(self, title: str, description: str, proposer_id: str) -> Market:
        """Create a PROPOSED market with zero outcome totals.

        Title and description are stripped and must fall within TITLE_LENGTH and
        DESCRIPTION_LENGTH characters. The proposer must be a known user.
        """
        title = _checked_text("title", title, TITLE_LENGTH)
        description = _checked_text("description", description, DESCRIPTION_LENGTH)
        market = Market(
            id=new_market_id(),
            title=title,
            description=description,
            status=MarketStatus.PROPOSED.value,
            proposer_id=proposer_id,
            created_at=datetime.now(UTC),
        )
        async with self._unit_of_work() as stores:
            await self._load_account(stores, proposer_id)
            created = await stores.markets.create_market(market)
        logger.info("PROPOSE market=%s proposer=%s title=%r", created.id, proposer_id, title)
        return created

    # ------------------------------------------------------------------
    # Trades
    # ------------------------------------------------------------------

    async def buy(
        self,
        user_id: str,
        market_id: str,
        outcome: Outcome | str,
        amount: Number,
    ) -> BuyResult:
        outcome = Outcome(outcome)
        amount = positive_usdc(amount, "buy amount")
        trade: TradeRecord | None = None

        async with self._locks.hold(market_key(market_id), user_key(user_id)):
            try:
                async with self._unit_of_work() as stores:
                    market = await self._load_tradable_market(stores, market_id)
                    account = await self._load_account(stores, user_id)
                    balance = account.usdc_balance
                    if amount > balance:
                        raise InsufficientBalanceError(amount, balance)
                    if market.price(outcome) == 0:
                        raise ZeroPriceError(market_id, outcome.value)

                    quote = quote_buy(
                        market.total_yes_shares, market.total_no_shares, outcome, amount
                    )
                    position = await stores.positions.get_position(user_id, market_id)
                    if position is None:
                        position = Position(user_id=user_id, market_id=market_id)

                    trade = self._new_trade(
                        user_id, market_id, outcome, TradeDirection.BUY,
                        amount, quote.shares, quote.price,
                    )
                    await self._record(trade)

                    balance_after = await stores.balances.set_balance(
                        user_id, balance - amount, balance
                    )
                    updated = position.with_delta(outcome, quote.shares)
                    await stores.positions.upsert_position(
                        user_id, market_id, updated.yes_shares, updated.no_shares
                    )
                    await stores.markets.apply_market_delta(
                        market_id, outcome, quote.shares, market.version
                    )
            except BaseException as exc:
                await self._fail(trade, exc)
                raise

        await self._complete(trade)
        logger.info(
            "BUY user=%s market=%s outcome=%s amount=%s shares=%s price=%s",
            user_id, market_id, outcome.value, amount, quote.shares, quote.price,
        )
        return BuyResult(
            trade_id=trade.id,
            shares=quote.shares,
            price=quote.price,
            amount=amount,
            balance_after=balance_after,
        )

    async def sell(
        self,
        user_id: str,
        market_id: str,
        outcome: Outcome | str,
        shares: Number,
    ) -> SellResult:
        outcome = Outcome(outcome)
        shares = positive_shares(shares, "shares to sell")
        trade: TradeRecord | None = None

        async with self._locks.hold(market_key(market_id), user_key(user_id)):
            try:
                async with self._unit_of_work() as stores:
                    market = await self._load_tradable_market(stores, market_id)
                    account = await self._load_account(stores, user_id)
                    position = await stores.positions.get_position(user_id, market_id)
                    if position is None:
                        raise NoPositionError(user_id, market_id)
                    held = position.shares(outcome)
                    if shares > held:
                        raise InsufficientSharesError(outcome.value, shares, held)

                    quote = quote_sell(
                        market.total_yes_shares, market.total_no_shares, outcome, shares
                    )
                    trade = self._new_trade(
                        user_id, market_id, outcome, TradeDirection.SELL,
                        quote.proceeds, shares, quote.price,
                    )
                    await self._record(trade)

                    balance_after = await stores.balances.set_balance(
                        user_id, account.usdc_balance + quote.proceeds, account.usdc_balance
                    )
                    remaining = position.with_delta(outcome, -shares)
                    await stores.positions.upsert_position(
                        user_id, market_id, remaining.yes_shares, remaining.no_shares
                    )
                    await stores.markets.apply_market_delta(
                        market_id, outcome, -shares, market.version
                    )
            except BaseException as exc:
                await self._fail(trade, exc)
                raise

        await self._complete(trade)
        logger.info(
            "SELL user=%s market=%s outcome=%s shares=%s proceeds=%s price=%s",
            user_id, market_id, outcome.value, shares, quote.proceeds, quote.price,
        )
        return SellResult(
            trade_id=trade.id,
            proceeds=quote.proceeds,
            price=quote.price,
            shares=shares,
            balance_after=balance_after,
            position_closed=remaining.is_empty,
        )

    # ------------------------------------------------------------------
    # Balance
    # ------------------------------------------------------------------

    async def deposit(self, user_id: str, amount: Number) -> Decimal:
        amount = positive_usdc(amount, "deposit amount")
        async with self._locks.hold(user_key(user_id)):
            async with self._unit_of_work() as stores:
                account = await self._load_account(stores, user_id)
                balance = account.usdc_balance
                balance_after = await stores.balances.set_balance(
                    user_id, balance + amount, balance
                )
        logger.info("DEPOSIT user=%s amount=%s balance=%s", user_id, amount, balance_after)
        return balance_after

    async def withdraw(self, user_id: str, amount: Number) -> Decimal:
        amount = positive_usdc(amount, "withdraw amount")
        async with self._locks.hold(user_key(user_id)):
            async with self._unit_of_work() as stores:
                account = await self._load_account(stores, user_id)
                balance = account.usdc_balance
                if amount > balance:
                    raise InsufficientBalanceError(amount, balance)
                balance_after = await stores.balances.set_balance(
                    user_id, balance - amount, balance
                )
        logger.info("WITHDRAW user=%s amount=%s balance=%s", user_id, amount, balance_after)
        return balance_after

    async def claim_faucet(self, user_id: str, now: datetime | None = None) -> Decimal:
        """Credit FAUCET_AMOUNT once per FAUCET_COOLDOWN_HOURS."""
        now = now or datetime.now(UTC)
        amount = to_usdc(settings.FAUCET_AMOUNT)
        cooldown = timedelta(hours=settings.FAUCET_COOLDOWN_HOURS)

        async with self._locks.hold(user_key(user_id)):
            async with self._unit_of_work() as stores:
                account = await self._load_account(stores, user_id)
                last = account.last_faucet_claim_at
                if last is not None and now - last < cooldown:
                    remaining = cooldown - (now - last)
                    raise FaucetCooldownError(int(remaining.total_seconds()))
                balance = account.usdc_balance
                balance_after = await stores.balances.set_balance(
                    user_id, balance + amount, balance
                )
                await stores.balances.mark_faucet_claim(user_id, now)
        logger.info("FAUCET user=%s amount=%s balance=%s", user_id, amount, balance_after)
        return balance_after

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _unit_of_work(self) -> AsyncIterator[StoreBundle]:
        # Only backend failures (open, store calls, commit) are reported as
        # BackendUnavailableError; errors raised by the ledger body propagate as is.
        body_error: BaseException | None = None
        try:
            async with self._backend.unit_of_work() as stores:
                try:
                    yield StoreBundle(
                        markets=_GuardedStore(stores.markets),  # type: ignore[arg-type]
                        positions=_GuardedStore(stores.positions),  # type: ignore[arg-type]
                        balances=_GuardedStore(stores.balances),  # type: ignore[arg-type]
                    )
                except BaseException as exc:
                    body_error = exc
                    raise
        except AppError:
            raise
        except Exception as exc:
            if exc is body_error:
                raise
            raise _backend_unavailable(exc) from exc

    async def _load_market(self, stores: StoreBundle, market_id: str) -> Market:
        market = await stores.markets.get_market(market_id)
        if market is None:
            raise MarketNotFoundError(market_id)
        return market

    async def _load_tradable_market(self, stores: StoreBundle, market_id: str) -> Market:
        market = await self._load_market(stores, market_id)
        if market.status != MarketStatus.TRADING:
            raise MarketNotActiveError(market_id, market.status)
        return market

    async def _load_account(self, stores: StoreBundle, user_id: str) -> UserAccount:
        account = await stores.balances.get_account(user_id)
        if account is None:
            raise UserNotFoundError(user_id)
        return account

    def _new_trade(
        self,
        user_id: str,
        market_id: str,
        outcome: Outcome,
        direction: TradeDirection,
        amount: Decimal,
        shares: Decimal,
        price: Decimal,
    ) -> TradeRecord:
        return TradeRecord(
            id=self._new_id(),
            user_id=user_id,
            market_id=market_id,
            outcome=outcome,
            direction=direction,
            amount=amount,
            shares=shares,
            price=price,
            created_at=datetime.now(UTC),
        )

    async def _record(self, trade: TradeRecord) -> None:
        if self._sink is None:
            return
        try:
            await self._sink.record_trade(trade)
        except Exception:
            logger.exception("Trade sink failed to record %s", trade.id)

    async def _set_status(self, trade: TradeRecord, status: TradeStatus) -> None:
        trade.status = status
        if self._sink is None:
            return
        try:
            await self._sink.update_status(trade.id, status)
        except Exception:
            logger.exception("Trade sink failed to mark %s as %s", trade.id, status.value)

    async def _complete(self, trade: TradeRecord) -> None:
        await self._set_status(trade, TradeStatus.COMPLETED)

    async def _fail(self, trade: TradeRecord | None, exc: BaseException) -> None:
        if isinstance(exc, AppError):
            logger.info("Trade rejected: %s (code=%d)", exc.message, exc.code)
        else:
            logger.warning("Trade aborted: %r", exc)
        if trade is not None:
            await self._set_status(trade, TradeStatus.FAILED)
