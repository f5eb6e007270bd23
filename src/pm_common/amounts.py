"""Fixed-point decimal utilities for USDC amounts and share counts.

Every quantity that crosses the ledger boundary goes through this module:
USDC is quantized to ``settings.USDC_DECIMALS`` places and shares to
``settings.SHARE_DECIMALS`` places. Floats are converted via ``str`` so binary
representation error never reaches the ledger. Caller inputs (amounts to
spend, shares to sell) round down: a call never moves more than was asked.
"""

from decimal import ROUND_DOWN, ROUND_HALF_EVEN, Decimal, InvalidOperation

from config.settings import settings
from src.pm_common.errors import InvalidAmountError

USDC_QUANTUM = Decimal(1).scaleb(-settings.USDC_DECIMALS)
SHARE_QUANTUM = Decimal(1).scaleb(-settings.SHARE_DECIMALS)

ZERO = Decimal(0)

Number = Decimal | int | float | str


def to_decimal(value: Number) -> Decimal:
    """Convert to Decimal without passing through binary float."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"Not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def _quantize(value: Number, quantum: Decimal, rounding: str) -> Decimal:
    try:
        return to_decimal(value).quantize(quantum, rounding=rounding)
    except InvalidOperation as exc:
        raise ValueError(f"Out of range: {value!r}") from exc


def to_usdc(value: Number, rounding: str = ROUND_HALF_EVEN) -> Decimal:
    return _quantize(value, USDC_QUANTUM, rounding)


def to_shares(value: Number, rounding: str = ROUND_HALF_EVEN) -> Decimal:
    return _quantize(value, SHARE_QUANTUM, rounding)


def payout_usdc(value: Decimal) -> Decimal:
    """Quantize a USDC payout. Rounds down: the ledger never pays out more than it took in."""
    return value.quantize(USDC_QUANTUM, rounding=ROUND_DOWN)


def payout_shares(value: Decimal) -> Decimal:
    """Quantize a share issuance. Rounds down for the same reason as payout_usdc."""
    return value.quantize(SHARE_QUANTUM, rounding=ROUND_DOWN)


def usdc_to_display(amount: Decimal) -> str:
    """Format USDC for display: Decimal('1500') -> '$1,500.00', Decimal('-12') -> '-$12.00'."""
    quantized = to_usdc(amount)
    if quantized < 0:
        return f"-${-quantized:,.{settings.USDC_DECIMALS}f}"
    return f"${quantized:,.{settings.USDC_DECIMALS}f}"


def positive_usdc(value: Number, what: str = "amount") -> Decimal:
    """Parse a strictly positive USDC input, raising InvalidAmountError otherwise."""
    return _positive(value, USDC_QUANTUM, what)


def positive_shares(value: Number, what: str = "shares") -> Decimal:
    """Parse a strictly positive share count, raising InvalidAmountError otherwise."""
    return _positive(value, SHARE_QUANTUM, what)


def _positive(value: Number, quantum: Decimal, what: str) -> Decimal:
    try:
        parsed = _quantize(value, quantum, ROUND_DOWN)
    except ValueError as exc:
        raise InvalidAmountError(f"{what} is not a number: {value!r}") from exc
    if parsed <= 0:
        raise InvalidAmountError(f"{what} must be positive, got {parsed}")
    return parsed
