"""
Persistence layer for draft data.
No business logic; only read/write interfaces and the transaction scope.
"""
from .db import get_connection, init_db, transaction
from .repositories import (
    UserRepository,
    DraftEventRepository,
    ClaimantRepository,
    PlayerRepository,
    PickRepository,
    SiblingCostRepository,
    TradeRepository,
    DraftBoardRepository,
)

__all__ = [
    "get_connection",
    "init_db",
    "transaction",
    "UserRepository",
    "DraftEventRepository",
    "ClaimantRepository",
    "PlayerRepository",
    "PickRepository",
    "SiblingCostRepository",
    "TradeRepository",
    "DraftBoardRepository",
]
