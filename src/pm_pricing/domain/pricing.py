"""Share-ratio pricing for binary markets.

    yes_price = Y / (Y + N)        if Y + N > 0, else 0.5
    no_price  = 1 - yes_price

Prices are not quantized: NO is derived from YES so the pair always sums to
exactly 1. All functions here are pure.
"""

from dataclasses import dataclass
from decimal import Decimal

from src.pm_common.amounts import payout_shares, payout_usdc
from src.pm_common.enums import Outcome

DEFAULT_PRICE = Decimal("0.5")
ONE = Decimal(1)


def outcome_price(total_yes: Decimal, total_no: Decimal, outcome: Outcome) -> Decimal:
    total = total_yes + total_no
    yes_price = total_yes / total if total > 0 else DEFAULT_PRICE
    return yes_price if outcome is Outcome.YES else ONE - yes_price


@dataclass(frozen=True)
class BuyQuote:
    price: Decimal
    shares: Decimal


@dataclass(frozen=True)
class SellQuote:
    price: Decimal
    proceeds: Decimal


def quote_buy(total_yes: Decimal, total_no: Decimal, outcome: Outcome, amount: Decimal) -> BuyQuote:
    """Shares issued for ``amount`` USDC at the current price.

    Caller guarantees the price is non-zero.
    """
    price = outcome_price(total_yes, total_no, outcome)
    return BuyQuote(price=price, shares=payout_shares(amount / price))


def quote_sell(total_yes: Decimal, total_no: Decimal, outcome: Outcome, shares: Decimal) -> SellQuote:
    """Proceeds for selling ``shares`` at the price before the sell is applied."""
    price = outcome_price(total_yes, total_no, outcome)
    return SellQuote(price=price, proceeds=payout_usdc(shares * price))
