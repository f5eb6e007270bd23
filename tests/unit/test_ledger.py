"""Unit tests for PricingLedger on the in-memory backend."""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from src.pm_common.enums import MarketStatus, Outcome, TradeDirection, TradeStatus
from src.pm_common.errors import (
    BackendUnavailableError,
    ConcurrentUpdateError,
    FaucetCooldownError,
    InsufficientBalanceError,
    InsufficientSharesError,
    InvalidAmountError,
    InvalidProposalError,
    MarketNotActiveError,
    MarketNotFoundError,
    NoPositionError,
    UserNotFoundError,
    ZeroPriceError,
)
from src.pm_pricing.domain.ledger import PricingLedger, new_trade_id
from src.pm_pricing.infrastructure.memory import (
    InMemoryBalanceStore,
    InMemoryBackend,
    InMemoryMarketStore,
    InMemoryPositionStore,
    InMemoryTradeSink,
)


def _snapshot(backend: InMemoryBackend) -> tuple[dict, dict, dict]:
    return dict(backend.markets), dict(backend.positions), dict(backend.accounts)


async def _raise_connection_reset(self, *args, **kwargs):
    raise RuntimeError("connection reset")


class _BrokenSink:
    async def record_trade(self, trade):
        raise RuntimeError("sink down")

    async def update_status(self, trade_id, status):
        raise RuntimeError("sink down")


@pytest.fixture
def seeded(backend: InMemoryBackend) -> InMemoryBackend:
    backend.add_market("m1", title="Will it rain?")
    backend.add_user("alice", 100)
    backend.add_user("bob", 100)
    return backend


class TestConcreteScenario:
    @pytest.mark.asyncio
    async def test_first_buy_on_empty_market(self, seeded, ledger) -> None:
        result = await ledger.buy("alice", "m1", "YES", 50)

        assert result.price == Decimal("0.5")
        assert result.shares == Decimal("100")
        assert result.amount == Decimal("50.00")
        assert result.balance_after == Decimal("50.00")
        assert seeded.accounts["alice"].usdc_balance == Decimal("50.00")
        assert seeded.positions[("alice", "m1")].yes_shares == Decimal("100")
        assert seeded.markets["m1"].total_yes_shares == Decimal("100")
        assert seeded.markets["m1"].total_no_shares == 0

    @pytest.mark.asyncio
    async def test_second_buyer_pays_full_price(self, seeded, ledger) -> None:
        await ledger.buy("alice", "m1", "YES", 50)
        result = await ledger.buy("bob", "m1", "YES", 10)

        assert result.price == 1
        assert result.shares == Decimal("10")
        assert seeded.markets["m1"].total_yes_shares == Decimal("110")

    @pytest.mark.asyncio
    async def test_sell_after_two_buys(self, seeded, ledger) -> None:
        await ledger.buy("alice", "m1", "YES", 50)
        await ledger.buy("bob", "m1", "YES", 10)
        result = await ledger.sell("alice", "m1", "YES", 50)

        assert result.price == 1
        assert result.proceeds == Decimal("50.00")
        assert result.position_closed is False
        assert seeded.accounts["alice"].usdc_balance == Decimal("100.00")
        assert seeded.positions[("alice", "m1")].yes_shares == Decimal("50")
        assert seeded.markets["m1"].total_yes_shares == Decimal("60")

    @pytest.mark.asyncio
    async def test_market_version_increments_per_trade(self, seeded, ledger) -> None:
        await ledger.buy("alice", "m1", "YES", 50)
        await ledger.buy("bob", "m1", "YES", 10)
        assert seeded.markets["m1"].version == 2

    @pytest.mark.asyncio
    async def test_outcome_accepts_enum(self, seeded, ledger) -> None:
        result = await ledger.buy("alice", "m1", Outcome.NO, 20)
        assert result.shares == Decimal("40")
        assert seeded.positions[("alice", "m1")].no_shares == Decimal("40")


class TestRoundTrip:
    @pytest.mark.asyncio
    async def test_proceeds_track_price_move(self, backend, ledger) -> None:
        backend.add_market("m1", total_yes_shares=30, total_no_shares=70)
        backend.add_user("alice", 100)

        bought = await ledger.buy("alice", "m1", "YES", 10)
        assert bought.price == Decimal("0.3")
        assert bought.shares == Decimal("33.333333")

        price_after = backend.markets["m1"].yes_price
        sold = await ledger.sell("alice", "m1", "YES", bought.shares)

        expected = Decimal(10) * price_after / bought.price
        assert abs(sold.proceeds - expected) <= Decimal("0.02")
        assert sold.price == price_after
        assert backend.markets["m1"].total_yes_shares == Decimal("30")

    @pytest.mark.asyncio
    async def test_totals_move_with_positions(self, seeded, ledger) -> None:
        # Seeded liquidity keeps both sides priced above zero
        seeded.add_market("m2", total_yes_shares=50, total_no_shares=50)
        await ledger.buy("alice", "m2", "YES", 40)
        await ledger.buy("bob", "m2", "NO", 25)
        await ledger.sell("alice", "m2", "YES", 12)
        await ledger.buy("alice", "m2", "NO", 5)

        market = seeded.markets["m2"]
        positions = [p for (_, mid), p in seeded.positions.items() if mid == "m2"]
        assert market.total_yes_shares - 50 == sum(p.yes_shares for p in positions)
        assert market.total_no_shares - 50 == sum(p.no_shares for p in positions)

    @pytest.mark.asyncio
    async def test_first_buy_prices_other_side_at_zero(self, seeded, ledger) -> None:
        await ledger.buy("alice", "m1", "YES", 10)
        with pytest.raises(ZeroPriceError):
            await ledger.buy("bob", "m1", "NO", 10)


class TestRejectedTrades:
    @pytest.mark.asyncio
    async def test_insufficient_balance(self, seeded, ledger) -> None:
        before = _snapshot(seeded)
        with pytest.raises(InsufficientBalanceError, match="required 150.00"):
            await ledger.buy("alice", "m1", "YES", 150)
        assert _snapshot(seeded) == before

    @pytest.mark.asyncio
    async def test_insufficient_shares(self, seeded, ledger) -> None:
        await ledger.buy("alice", "m1", "YES", 50)
        before = _snapshot(seeded)
        with pytest.raises(InsufficientSharesError, match="requested 101"):
            await ledger.sell("alice", "m1", "YES", 101)
        assert _snapshot(seeded) == before

    @pytest.mark.asyncio
    async def test_sell_other_side_without_shares(self, seeded, ledger) -> None:
        await ledger.buy("alice", "m1", "YES", 50)
        with pytest.raises(InsufficientSharesError):
            await ledger.sell("alice", "m1", "NO", 1)

    @pytest.mark.asyncio
    async def test_no_position(self, seeded, ledger) -> None:
        before = _snapshot(seeded)
        with pytest.raises(NoPositionError):
            await ledger.sell("alice", "m1", "YES", 1)
        assert _snapshot(seeded) == before

    @pytest.mark.parametrize("amount", [0, -5, "0.001", "ten", "NaN"])
    @pytest.mark.asyncio
    async def test_invalid_buy_amount(self, seeded, ledger, amount) -> None:
        before = _snapshot(seeded)
        with pytest.raises(InvalidAmountError):
            await ledger.buy("alice", "m1", "YES", amount)
        assert _snapshot(seeded) == before

    @pytest.mark.asyncio
    async def test_invalid_sell_shares(self, seeded, ledger) -> None:
        await ledger.buy("alice", "m1", "YES", 50)
        with pytest.raises(InvalidAmountError, match="shares to sell"):
            await ledger.sell("alice", "m1", "YES", 0)

    @pytest.mark.asyncio
    async def test_unknown_market(self, seeded, ledger) -> None:
        with pytest.raises(MarketNotFoundError):
            await ledger.buy("alice", "nope", "YES", 10)

    @pytest.mark.asyncio
    async def test_unknown_user(self, seeded, ledger) -> None:
        before = _snapshot(seeded)
        with pytest.raises(UserNotFoundError):
            await ledger.buy("carol", "m1", "YES", 10)
        assert _snapshot(seeded) == before

    @pytest.mark.asyncio
    async def test_market_not_trading(self, backend, ledger) -> None:
        backend.add_market("m2", status=MarketStatus.RESOLVED.value)
        backend.add_user("alice", 100)
        with pytest.raises(MarketNotActiveError, match="RESOLVED"):
            await ledger.buy("alice", "m2", "YES", 10)

    @pytest.mark.asyncio
    async def test_zero_price_outcome(self, backend, ledger) -> None:
        backend.add_market("m1", total_yes_shares=100)
        backend.add_user("alice", 100)
        before = _snapshot(backend)
        with pytest.raises(ZeroPriceError):
            await ledger.buy("alice", "m1", "NO", 10)
        assert _snapshot(backend) == before

    @pytest.mark.asyncio
    async def test_unknown_outcome(self, seeded, ledger) -> None:
        with pytest.raises(ValueError):
            await ledger.buy("alice", "m1", "MAYBE", 10)

    @pytest.mark.asyncio
    async def test_rejections_record_no_trade(self, seeded, ledger, sink) -> None:
        with pytest.raises(InsufficientBalanceError):
            await ledger.buy("alice", "m1", "YES", 500)
        assert sink.trades == []


class TestPruning:
    @pytest.mark.asyncio
    async def test_selling_everything_removes_position(self, seeded, ledger) -> None:
        bought = await ledger.buy("alice", "m1", "YES", 50)
        sold = await ledger.sell("alice", "m1", "YES", bought.shares)

        assert sold.position_closed is True
        assert await ledger.get_position("alice", "m1") is None
        assert await ledger.list_positions("alice") == []

    @pytest.mark.asyncio
    async def test_sell_after_pruning_has_no_position(self, seeded, ledger) -> None:
        bought = await ledger.buy("alice", "m1", "YES", 50)
        await ledger.sell("alice", "m1", "YES", bought.shares)
        with pytest.raises(NoPositionError):
            await ledger.sell("alice", "m1", "YES", 1)

    @pytest.mark.asyncio
    async def test_other_side_keeps_position(self, seeded, ledger) -> None:
        seeded.add_market("m2", total_yes_shares=50, total_no_shares=50)
        yes = await ledger.buy("alice", "m2", "YES", 50)
        await ledger.buy("alice", "m2", "NO", 10)
        sold = await ledger.sell("alice", "m2", "YES", yes.shares)

        position = await ledger.get_position("alice", "m2")
        assert sold.position_closed is False
        assert position is not None
        assert position.yes_shares == 0
        assert position.no_shares > 0


class TestBackendFailure:
    @pytest.mark.asyncio
    async def test_buy_rolls_back_on_store_error(
        self, seeded, ledger, sink, monkeypatch
    ) -> None:
        monkeypatch.setattr(InMemoryMarketStore, "apply_market_delta", _raise_connection_reset)
        before = _snapshot(seeded)

        with pytest.raises(BackendUnavailableError) as exc_info:
            await ledger.buy("alice", "m1", "YES", 50)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert _snapshot(seeded) == before
        assert [t.status for t in sink.trades] == [TradeStatus.FAILED]

    @pytest.mark.asyncio
    async def test_sell_rolls_back_on_store_error(self, seeded, ledger, monkeypatch) -> None:
        await ledger.buy("alice", "m1", "YES", 50)
        before = _snapshot(seeded)
        monkeypatch.setattr(InMemoryBalanceStore, "set_balance", _raise_connection_reset)

        with pytest.raises(BackendUnavailableError):
            await ledger.sell("alice", "m1", "YES", 50)
        assert _snapshot(seeded) == before

    @pytest.mark.asyncio
    async def test_lost_version_race(self, seeded, ledger, sink, monkeypatch) -> None:
        original = InMemoryMarketStore.get_market

        async def _racing_get(self, market_id):
            market = await original(self, market_id)
            # Another writer commits between our read and our write
            row = self._rows[market_id]
            self._rows[market_id] = replace(row, version=row.version + 1)
            return market

        monkeypatch.setattr(InMemoryMarketStore, "get_market", _racing_get)

        with pytest.raises(ConcurrentUpdateError):
            await ledger.buy("alice", "m1", "YES", 50)
        assert seeded.accounts["alice"].usdc_balance == Decimal("100.00")
        assert ("alice", "m1") not in seeded.positions
        assert seeded.markets["m1"].total_yes_shares == 0
        assert sink.trades[0].status == TradeStatus.FAILED


class TestTradeSink:
    @pytest.mark.asyncio
    async def test_completed_records(self, seeded, ledger, sink) -> None:
        bought = await ledger.buy("alice", "m1", "YES", 50)
        sold = await ledger.sell("alice", "m1", "YES", 20)

        first, second = sink.trades
        assert first.id == bought.trade_id
        assert first.direction == TradeDirection.BUY
        assert first.amount == Decimal("50.00")
        assert first.shares == Decimal("100")
        assert first.status == TradeStatus.COMPLETED
        assert second.id == sold.trade_id
        assert second.direction == TradeDirection.SELL
        assert second.amount == sold.proceeds
        assert second.status == TradeStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_broken_sink_does_not_change_result(self, seeded, caplog) -> None:
        ledger = PricingLedger(seeded, _BrokenSink())
        with caplog.at_level(logging.ERROR, logger="src.pm_pricing.domain.ledger"):
            result = await ledger.buy("alice", "m1", "YES", 50)

        assert result.shares == Decimal("100")
        assert seeded.accounts["alice"].usdc_balance == Decimal("50.00")
        assert "Trade sink failed" in caplog.text

    @pytest.mark.asyncio
    async def test_without_sink(self, seeded) -> None:
        ledger = PricingLedger(seeded)
        result = await ledger.buy("alice", "m1", "YES", 50)
        assert result.trade_id.startswith("trd_")

    @pytest.mark.asyncio
    async def test_custom_id_factory(self, seeded) -> None:
        ledger = PricingLedger(seeded, InMemoryTradeSink(), id_factory=lambda: "trd_fixed")
        result = await ledger.buy("alice", "m1", "YES", 50)
        assert result.trade_id == "trd_fixed"

    def test_new_trade_id_is_unique(self) -> None:
        ids = {new_trade_id() for _ in range(100)}
        assert len(ids) == 100


class TestReads:
    @pytest.mark.asyncio
    async def test_quote(self, backend, ledger) -> None:
        backend.add_market("m1", total_yes_shares=25, total_no_shares=75)
        assert await ledger.quote("m1", "YES") == Decimal("0.25")
        assert await ledger.quote("m1", Outcome.NO) == Decimal("0.75")

    @pytest.mark.asyncio
    async def test_quote_unknown_market(self, ledger) -> None:
        with pytest.raises(MarketNotFoundError):
            await ledger.quote("nope", "YES")

    @pytest.mark.asyncio
    async def test_list_markets_defaults_to_trading(self, backend, ledger) -> None:
        backend.add_market("open")
        backend.add_market("done", status=MarketStatus.RESOLVED.value)
        markets = await ledger.list_markets()
        assert [m.id for m in markets] == ["open"]
        assert len(await ledger.list_markets(status=None)) == 2

    @pytest.mark.asyncio
    async def test_list_markets_by_resolution_date(self, backend, ledger) -> None:
        now = datetime(2026, 1, 1, tzinfo=UTC)
        backend.add_market("late", resolution_date=now + timedelta(days=30))
        backend.add_market("undated")
        backend.add_market("soon", resolution_date=now + timedelta(days=1))
        markets = await ledger.list_markets()
        assert [m.id for m in markets] == ["soon", "late", "undated"]

    @pytest.mark.asyncio
    async def test_get_account_unknown(self, ledger) -> None:
        with pytest.raises(UserNotFoundError):
            await ledger.get_account("ghost")

    @pytest.mark.asyncio
    async def test_trade_is_logged(self, seeded, ledger, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="src.pm_pricing.domain.ledger"):
            await ledger.buy("alice", "m1", "YES", 50)
        assert "BUY user=alice market=m1 outcome=YES" in caplog.text


class TestBalanceOperations:
    @pytest.mark.asyncio
    async def test_deposit(self, seeded, ledger) -> None:
        assert await ledger.deposit("alice", "25.5") == Decimal("125.50")
        assert seeded.accounts["alice"].usdc_balance == Decimal("125.50")

    @pytest.mark.asyncio
    async def test_deposit_invalid(self, seeded, ledger) -> None:
        with pytest.raises(InvalidAmountError):
            await ledger.deposit("alice", 0)

    @pytest.mark.asyncio
    async def test_deposit_unknown_user(self, ledger) -> None:
        with pytest.raises(UserNotFoundError):
            await ledger.deposit("ghost", 10)

    @pytest.mark.asyncio
    async def test_withdraw(self, seeded, ledger) -> None:
        assert await ledger.withdraw("alice", 30) == Decimal("70.00")

    @pytest.mark.asyncio
    async def test_withdraw_too_much(self, seeded, ledger) -> None:
        with pytest.raises(InsufficientBalanceError):
            await ledger.withdraw("alice", 200)
        assert seeded.accounts["alice"].usdc_balance == Decimal("100.00")


class TestFaucet:
    NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    @pytest.mark.asyncio
    async def test_first_claim(self, seeded, ledger) -> None:
        balance = await ledger.claim_faucet("alice", self.NOW)
        assert balance == Decimal("1100.00")
        assert seeded.accounts["alice"].last_faucet_claim_at == self.NOW

    @pytest.mark.asyncio
    async def test_claim_within_cooldown(self, seeded, ledger) -> None:
        await ledger.claim_faucet("alice", self.NOW)
        with pytest.raises(FaucetCooldownError) as exc_info:
            await ledger.claim_faucet("alice", self.NOW + timedelta(hours=1))
        assert exc_info.value.retry_after_seconds == 23 * 3600
        assert seeded.accounts["alice"].usdc_balance == Decimal("1100.00")

    @pytest.mark.asyncio
    async def test_claim_after_cooldown(self, seeded, ledger) -> None:
        await ledger.claim_faucet("alice", self.NOW)
        balance = await ledger.claim_faucet("alice", self.NOW + timedelta(hours=24))
        assert balance == Decimal("2100.00")


class TestInputRounding:
    @pytest.mark.asyncio
    async def test_buy_never_spends_more_than_asked(self, seeded, ledger) -> None:
        result = await ledger.buy("alice", "m1", "YES", "10.015")
        assert result.amount == Decimal("10.01")
        assert seeded.accounts["alice"].usdc_balance == Decimal("89.99")

    @pytest.mark.asyncio
    async def test_sell_never_sells_more_than_asked(self, seeded, ledger) -> None:
        await ledger.buy("alice", "m1", "YES", 50)
        result = await ledger.sell("alice", "m1", "YES", "10.0000009")
        assert result.shares == Decimal("10.000000")


class TestWriteOrder:
    @pytest.fixture
    def writes(self, monkeypatch) -> list[str]:
        calls: list[str] = []

        def _recording(cls, name):
            original = getattr(cls, name)

            async def _method(self, *args, **kwargs):
                calls.append(name)
                return await original(self, *args, **kwargs)

            monkeypatch.setattr(cls, name, _method)

        _recording(InMemoryBalanceStore, "set_balance")
        _recording(InMemoryPositionStore, "upsert_position")
        _recording(InMemoryMarketStore, "apply_market_delta")
        return calls

    @pytest.mark.asyncio
    async def test_buy_and_sell_write_tables_in_same_order(
        self, seeded, ledger, writes
    ) -> None:
        await ledger.buy("alice", "m1", "YES", 50)
        bought = list(writes)
        writes.clear()
        await ledger.sell("alice", "m1", "YES", 20)

        assert bought == ["set_balance", "upsert_position", "apply_market_delta"]
        assert writes == bought


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_buy_rolls_back_and_fails_record(
        self, seeded, ledger, sink, monkeypatch
    ) -> None:
        entered = asyncio.Event()

        async def _stalled_upsert(self, *args, **kwargs):
            entered.set()
            await asyncio.Event().wait()

        monkeypatch.setattr(InMemoryPositionStore, "upsert_position", _stalled_upsert)
        before = _snapshot(seeded)

        task = asyncio.create_task(ledger.buy("alice", "m1", "YES", 90))
        await entered.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert _snapshot(seeded) == before
        assert seeded.accounts["alice"].usdc_balance == Decimal("100.00")
        assert [t.status for t in sink.trades] == [TradeStatus.FAILED]
        assert len(ledger._locks) == 0

    @pytest.mark.asyncio
    async def test_ledger_usable_after_cancellation(self, seeded, ledger, monkeypatch) -> None:
        await ledger.buy("alice", "m1", "YES", 50)
        entered = asyncio.Event()
        original = InMemoryMarketStore.apply_market_delta

        async def _stalled_once(self, *args, **kwargs):
            if not entered.is_set():
                entered.set()
                await asyncio.Event().wait()
            return await original(self, *args, **kwargs)

        monkeypatch.setattr(InMemoryMarketStore, "apply_market_delta", _stalled_once)

        task = asyncio.create_task(ledger.sell("alice", "m1", "YES", 40))
        await entered.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        result = await ledger.sell("alice", "m1", "YES", 40)
        assert result.proceeds == Decimal("40.00")
        assert seeded.positions[("alice", "m1")].yes_shares == Decimal("60")


class TestErrorReporting:
    @pytest.mark.asyncio
    async def test_local_error_is_not_a_backend_failure(self, seeded, ledger) -> None:
        await ledger.claim_faucet("alice", datetime(2026, 1, 1, tzinfo=UTC))
        # An offset-naive timestamp cannot be compared with the stored claim time
        with pytest.raises(TypeError):
            await ledger.claim_faucet("alice", datetime(2026, 1, 3))
        assert seeded.accounts["alice"].usdc_balance == Decimal("1100.00")

    @pytest.mark.asyncio
    async def test_commit_failure_is_a_backend_failure(self, seeded) -> None:
        class _CommitFails:
            @asynccontextmanager
            async def unit_of_work(self):
                async with seeded.unit_of_work() as stores:
                    yield stores
                    raise OSError("commit lost")

        ledger = PricingLedger(_CommitFails())
        with pytest.raises(BackendUnavailableError) as exc_info:
            await ledger.deposit("alice", 10)
        assert isinstance(exc_info.value.__cause__, OSError)
        assert seeded.accounts["alice"].usdc_balance == Decimal("100.00")


class TestTradeHistory:
    @pytest.mark.asyncio
    async def test_newest_first(self, seeded, ledger) -> None:
        first = await ledger.buy("alice", "m1", "YES", 50)
        await ledger.buy("bob", "m1", "YES", 10)
        second = await ledger.sell("alice", "m1", "YES", 10)

        trades = await ledger.list_trades("alice")

        assert [t.id for t in trades] == [second.trade_id, first.trade_id]
        assert [t.direction for t in trades] == [TradeDirection.SELL, TradeDirection.BUY]
        assert all(t.status == TradeStatus.COMPLETED for t in trades)

    @pytest.mark.asyncio
    async def test_failed_trades_are_listed(self, seeded, ledger, monkeypatch) -> None:
        monkeypatch.setattr(InMemoryMarketStore, "apply_market_delta", _raise_connection_reset)
        with pytest.raises(BackendUnavailableError):
            await ledger.buy("alice", "m1", "YES", 50)

        (trade,) = await ledger.list_trades("alice")
        assert trade.status == TradeStatus.FAILED

    @pytest.mark.asyncio
    async def test_without_sink(self, seeded) -> None:
        ledger = PricingLedger(seeded)
        await ledger.buy("alice", "m1", "YES", 50)
        assert await ledger.list_trades("alice") == []

    @pytest.mark.asyncio
    async def test_broken_sink_read(self, seeded) -> None:
        class _Unreadable(InMemoryTradeSink):
            async def list_trades(self, user_id):
                raise RuntimeError("sink down")

        ledger = PricingLedger(seeded, _Unreadable())
        with pytest.raises(BackendUnavailableError):
            await ledger.list_trades("alice")


class TestProposeMarket:
    TITLE = "Will BTC close above 100k?"
    DESCRIPTION = "Resolves YES if the daily close is above 100,000 USD."

    @pytest.mark.asyncio
    async def test_creates_proposed_market(self, seeded, ledger) -> None:
        market = await ledger.propose_market(f"  {self.TITLE} ", self.DESCRIPTION, "alice")

        assert market.id.startswith("mkt_")
        assert market.title == self.TITLE
        assert market.status == MarketStatus.PROPOSED.value
        assert market.proposer_id == "alice"
        assert market.total_yes_shares == 0
        assert market.total_no_shares == 0
        assert market.yes_price == Decimal("0.5")
        assert seeded.markets[market.id] == market

    @pytest.mark.asyncio
    async def test_listed_as_proposal_only(self, seeded, ledger) -> None:
        market = await ledger.propose_market(self.TITLE, self.DESCRIPTION, "alice")

        proposed = await ledger.list_markets(MarketStatus.PROPOSED.value)
        trading = await ledger.list_markets()

        assert [m.id for m in proposed] == [market.id]
        assert market.id not in {m.id for m in trading}

    @pytest.mark.asyncio
    async def test_proposal_is_not_tradable(self, seeded, ledger) -> None:
        market = await ledger.propose_market(self.TITLE, self.DESCRIPTION, "alice")
        with pytest.raises(MarketNotActiveError):
            await ledger.buy("alice", market.id, "YES", 10)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "title, description",
        [
            ("Too short", DESCRIPTION),
            ("x" * 101, DESCRIPTION),
            (TITLE, "Too short to judge"),
            (TITLE, "x" * 501),
        ],
    )
    async def test_rejects_bad_lengths(self, seeded, ledger, title, description) -> None:
        with pytest.raises(InvalidProposalError):
            await ledger.propose_market(title, description, "alice")
        assert list(seeded.markets) == ["m1"]

    @pytest.mark.asyncio
    async def test_unknown_proposer(self, seeded, ledger) -> None:
        with pytest.raises(UserNotFoundError):
            await ledger.propose_market(self.TITLE, self.DESCRIPTION, "ghost")
        assert list(seeded.markets) == ["m1"]
