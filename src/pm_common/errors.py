"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: User
  2xxx: Balance
  3xxx: Market
  5xxx: Position
  9xxx: Backend
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: User ---

class UserNotFoundError(AppError):
    def __init__(self, user_id: str) -> None:
        super().__init__(1001, f"User not found: {user_id}", 404)


# --- 2xxx: Balance ---

class InvalidAmountError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(2001, f"Invalid amount: {detail}", 422)


class InsufficientBalanceError(AppError):
    def __init__(self, required: object, available: object) -> None:
        super().__init__(
            2002,
            f"Insufficient balance: required {required} USDC, available {available} USDC",
            422,
        )


class FaucetCooldownError(AppError):
    def __init__(self, retry_after_seconds: int) -> None:
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            2003,
            f"Faucet already claimed, next claim in {retry_after_seconds}s",
            429,
        )


# --- 3xxx: Market ---

class MarketNotFoundError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(3001, f"Market not found: {market_id}", 404)


class MarketNotActiveError(AppError):
    def __init__(self, market_id: str, status: str) -> None:
        super().__init__(3002, f"Market {market_id} is not trading (status {status})", 422)


class ZeroPriceError(AppError):
    def __init__(self, market_id: str, outcome: str) -> None:
        super().__init__(
            3003, f"Outcome {outcome} of market {market_id} has zero price", 422
        )


class InvalidProposalError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3004, f"Invalid market proposal: {detail}", 422)


# --- 5xxx: Position ---

class NoPositionError(AppError):
    def __init__(self, user_id: str, market_id: str) -> None:
        super().__init__(5001, f"No position for user {user_id} in market {market_id}", 422)


class InsufficientSharesError(AppError):
    def __init__(self, outcome: str, requested: object, held: object) -> None:
        super().__init__(
            5002,
            f"Insufficient {outcome} shares: requested {requested}, held {held}",
            422,
        )


# --- 9xxx: Backend ---

class BackendUnavailableError(AppError):
    def __init__(self, detail: str = "Backend unavailable") -> None:
        super().__init__(9001, detail, 503)


class ConcurrentUpdateError(BackendUnavailableError):
    """A compare-and-swap write lost the race against another writer."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Concurrent update: {detail}")
        self.code = 9002
        self.http_status = 409
