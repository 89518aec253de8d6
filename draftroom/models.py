"""
Data models for the draft backend.
Domain objects only; no persistence or API logic.

Draft-centric architecture: one draft event owns claimants (teams), the player pool,
the pick board, sibling cost links and trades between claimants.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


# ---------- Draft phase (state machine) ----------
class DraftPhase(str, Enum):
    """Draft lifecycle: setup → live → complete. Pausing is a flag on a live draft."""
    SETUP = "SETUP"
    LIVE = "LIVE"
    COMPLETE = "COMPLETE"


# ---------- Trade status ----------
class TradeStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    COUNTERED = "COUNTERED"
    CANCELLED = "CANCELLED"


class TradeSide(str, Enum):
    FROM_GIVES = "FROM_GIVES"  # proposer sends this player
    TO_GIVES = "TO_GIVES"  # partner sends this player


class TradeAction(str, Enum):
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"
    COUNTER = "COUNTER"
    CANCEL = "CANCEL"


# ---------- Roles ----------
class Role(str, Enum):
    """Closed set of roles; authorization branches on these, never on raw strings."""
    ADMIN = "ADMIN"
    COACH = "COACH"
    BOARD = "BOARD"


def parse_role(value: str | None) -> Role | None:
    """Case-insensitive parse; None for unknown or missing roles."""
    if not value:
        return None
    try:
        return Role(str(value).strip().upper())
    except ValueError:
        return None


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


# ---------- Actor ----------
@dataclass(frozen=True)
class Actor:
    """Resolved identity of the caller: user id plus role."""
    user_id: str
    role: Role


# ---------- User ----------
@dataclass
class User:
    """An account. Passwords are stored hashed; role is assigned by an admin."""
    id: str
    username: str
    name: str
    role: Role
    created_at: datetime
    password_hash: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "role": self.role.value,
            "created_at": self.created_at.isoformat(),
        }


# ---------- DraftEvent ----------
@dataclass
class DraftEvent:
    """
    The per-draft aggregate: phase, pick pointer and pick clock.
    The clock is a wall-clock deadline (clock_ends_at) while running, or banked
    seconds (pause_remaining_secs) while paused. Time remaining is always computed
    by the reader; nothing advances it in the background.
    """
    id: str
    name: str
    phase: DraftPhase
    current_pick: int  # 1-based overall number of the next open slot
    pick_clock_seconds: int
    is_paused: bool
    created_at: datetime
    updated_at: datetime
    clock_ends_at: datetime | None = None
    pause_remaining_secs: int | None = None

    def seconds_remaining(self, now: datetime) -> int | None:
        """Seconds left on the clock at `now`; None when the draft is not live."""
        if self.phase != DraftPhase.LIVE:
            return None
        if self.is_paused or self.clock_ends_at is None:
            if self.pause_remaining_secs is not None:
                return self.pause_remaining_secs
            return self.pick_clock_seconds
        return max(0, math.ceil((self.clock_ends_at - now).total_seconds()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phase": self.phase.value,
            "current_pick": self.current_pick,
            "pick_clock_seconds": self.pick_clock_seconds,
            "is_paused": self.is_paused,
            "clock_ends_at": _iso(self.clock_ends_at),
            "pause_remaining_secs": self.pause_remaining_secs,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


# ---------- Claimant ----------
@dataclass
class Claimant:
    """
    A drafting team. `order` is its 1-based draft position (unique per event) and
    defines its snake position; owner_user_id is the coach who picks for it.
    """
    id: str
    draft_event_id: str
    name: str
    order: int
    owner_user_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "draft_event_id": self.draft_event_id,
            "name": self.name,
            "order": self.order,
            "owner_user_id": self.owner_user_id,
        }


# ---------- Player ----------
@dataclass
class Player:
    """
    A draftable player. is_drafted only ever goes False → True within an event;
    drafted_claimant_id changes afterwards only through accepted trades.
    Registration fields feed sibling-group suggestions.
    """
    id: str
    draft_event_id: str
    full_name: str
    is_draft_eligible: bool = True
    is_drafted: bool = False
    drafted_claimant_id: str | None = None
    drafted_at: datetime | None = None
    guardian_name: str | None = None
    primary_email: str | None = None
    primary_phone: str | None = None
    league_choice: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "draft_event_id": self.draft_event_id,
            "full_name": self.full_name,
            "is_draft_eligible": self.is_draft_eligible,
            "is_drafted": self.is_drafted,
            "drafted_claimant_id": self.drafted_claimant_id,
            "drafted_at": _iso(self.drafted_at),
        }


# ---------- Pick ----------
@dataclass
class Pick:
    """
    One committed slot. round / pick_in_round / overall_number are derivable from
    each other but persisted for audit. is_auto marks sibling auto-picks.
    """
    id: str
    draft_event_id: str
    claimant_id: str
    player_id: str
    round: int
    pick_in_round: int
    overall_number: int
    made_at: datetime
    is_auto: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "draft_event_id": self.draft_event_id,
            "claimant_id": self.claimant_id,
            "player_id": self.player_id,
            "round": self.round,
            "pick_in_round": self.pick_in_round,
            "overall_number": self.overall_number,
            "made_at": self.made_at.isoformat(),
            "is_auto": self.is_auto,
        }


# ---------- SiblingCostLink ----------
@dataclass
class SiblingCostLink:
    """Links a player to a sibling group; draft_cost is counted in the claimant's own future picks."""
    id: int
    draft_event_id: str
    player_id: str
    group_key: str
    draft_cost: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "draft_event_id": self.draft_event_id,
            "player_id": self.player_id,
            "group_key": self.group_key,
            "draft_cost": self.draft_cost,
        }


# ---------- Trade ----------
@dataclass
class TradeItem:
    trade_id: str
    player_id: str
    side: TradeSide

    def to_dict(self) -> dict[str, Any]:
        return {"trade_id": self.trade_id, "player_id": self.player_id, "side": self.side.value}


@dataclass
class Trade:
    """
    A player-exchange proposal between two claimants of one event.
    Counter-offers form a chain through parent_trade_id.
    """
    id: str
    draft_event_id: str
    from_claimant_id: str
    to_claimant_id: str
    status: TradeStatus
    created_at: datetime
    updated_at: datetime
    from_avg_round: float | None = None
    to_avg_round: float | None = None
    round_delta: float | None = None
    parent_trade_id: str | None = None
    message: str | None = None
    created_by_user_id: str | None = None
    responded_by_user_id: str | None = None
    executed_at: datetime | None = None
    items: list[TradeItem] = field(default_factory=list)

    @property
    def from_gives(self) -> list[str]:
        return [i.player_id for i in self.items if i.side == TradeSide.FROM_GIVES]

    @property
    def to_gives(self) -> list[str]:
        return [i.player_id for i in self.items if i.side == TradeSide.TO_GIVES]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "draft_event_id": self.draft_event_id,
            "from_claimant_id": self.from_claimant_id,
            "to_claimant_id": self.to_claimant_id,
            "status": self.status.value,
            "from_avg_round": self.from_avg_round,
            "to_avg_round": self.to_avg_round,
            "round_delta": self.round_delta,
            "parent_trade_id": self.parent_trade_id,
            "message": self.message,
            "created_by_user_id": self.created_by_user_id,
            "responded_by_user_id": self.responded_by_user_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "executed_at": _iso(self.executed_at),
            "items": [i.to_dict() for i in self.items],
        }


# ---------- DraftBoard ----------
@dataclass
class BoardEntry:
    """One player on a claimant's board; slot is an optional target pick the coach noted."""
    player_id: str
    added_at: datetime
    slot: int | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"player_id": self.player_id, "added_at": self.added_at.isoformat()}
        if self.slot is not None:
            d["slot"] = self.slot
        return d


@dataclass
class DraftBoard:
    """A claimant's private ranking of players it wants; order of entries is the ranking."""
    draft_event_id: str
    claimant_id: str
    entries: list[BoardEntry] = field(default_factory=list)
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "draft_event_id": self.draft_event_id,
            "claimant_id": self.claimant_id,
            "entries": [e.to_dict() for e in self.entries],
            "updated_at": _iso(self.updated_at),
        }
