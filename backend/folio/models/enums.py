from enum import Enum


class TransactionKind(str, Enum):
    BUY = "buy"
    SELL = "sell"
    WITHDRAWAL = "withdrawal"


class AssetType(str, Enum):
    STOCKS = "stocks"
    MUTUAL_FUNDS = "mutual_funds"
    CRYPTO = "crypto"
    ETF = "etf"
    CASH = "cash"
    OTHER = "other"


class GoalPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class GoalType(str, Enum):
    RETIREMENT = "retirement"
    EDUCATION = "education"
    HOUSE = "house"
    CAR = "car"
    TRAVEL = "travel"
    EMERGENCY = "emergency"
    OTHER = "other"


# Lower rank sorts first
PRIORITY_RANK = {
    GoalPriority.HIGH.value: 0,
    GoalPriority.MEDIUM.value: 1,
    GoalPriority.LOW.value: 2,
}
