"""Global enums — values must match the DB CHECK constraints exactly."""

from enum import Enum


class MarketStatus(str, Enum):
    PROPOSED = "PROPOSED"
    TRADING = "TRADING"
    RESOLVING = "RESOLVING"
    RESOLVED = "RESOLVED"


class Outcome(str, Enum):
    YES = "YES"
    NO = "NO"


class TradeDirection(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class TradeStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
