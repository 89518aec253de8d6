"""
Service layer: draft lifecycle, pick commits, sibling auto-picks, trades and draft boards.
Services orchestrate persistence through repositories; draft_order is pure arithmetic.
"""
from .draft_order import SnakeSlot, claimant_slots, overall_of, slot_of
from .draft_service import DraftService, DraftState
from .board_service import BoardService, ClaimantRoster, normalize_board_entries
from .pick_service import BySlot, ByClaimantRound, CommitResult, PickService, parse_pick_target
from .sibling_service import SiblingService, registrant_group_key
from .trade_service import FairnessResult, TradeService, compute_fairness

__all__ = [
    "SnakeSlot",
    "claimant_slots",
    "overall_of",
    "slot_of",
    "DraftService",
    "DraftState",
    "BySlot",
    "ByClaimantRound",
    "CommitResult",
    "PickService",
    "parse_pick_target",
    "SiblingService",
    "registrant_group_key",
    "FairnessResult",
    "TradeService",
    "compute_fairness",
    "BoardService",
    "ClaimantRoster",
    "normalize_board_entries",
]
