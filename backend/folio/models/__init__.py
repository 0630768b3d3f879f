# Base
from folio.models.base import TimestampMixin, IdMixin
from folio.models.enums import AssetType, GoalPriority, GoalType, TransactionKind

# Ledger
from folio.models.transaction import Transaction

# Planning
from folio.models.goal import Goal

# Market
from folio.models.watchlist_entry import WatchlistEntry
from folio.models.asset import Asset

__all__ = [
    "TimestampMixin",
    "IdMixin",
    "AssetType",
    "GoalPriority",
    "GoalType",
    "TransactionKind",
    "Transaction",
    "Goal",
    "WatchlistEntry",
    "Asset",
]
