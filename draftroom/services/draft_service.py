"""
Draft event service: phase state machine, pick clock, setup and read model.

The clock is never ticked by a background task. While running it is a deadline
(clock_ends_at); while paused it is banked seconds (pause_remaining_secs).
Readers compute time remaining from those two fields.
"""
from __future__ import annotations

import logging
import math
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from draftroom import config
from draftroom.models import Claimant, DraftEvent, DraftPhase, Pick, Player
from draftroom.persistence.db import transaction
from draftroom.persistence.repositories import (
    ClaimantRepository,
    DraftBoardRepository,
    DraftEventRepository,
    PickRepository,
    PlayerRepository,
    SiblingCostRepository,
    TradeRepository,
)
from draftroom.services.draft_order import slot_of
from draftroom.services.errors import DraftStateError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


# ---------- Valid transitions ----------

_VALID_TRANSITIONS: dict[DraftPhase, set[DraftPhase]] = {
    DraftPhase.SETUP: {DraftPhase.LIVE},
    DraftPhase.LIVE: {DraftPhase.SETUP, DraftPhase.COMPLETE},  # stop returns to setup
    DraftPhase.COMPLETE: set(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- Read model ----------


@dataclass
class DraftState:
    """Snapshot for display: event, claimants in order, who is on the clock, recent picks."""
    event: DraftEvent
    claimants: list[Claimant]
    on_clock: Claimant | None
    seconds_remaining: int | None
    recent_picks: list[Pick]
    counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event.to_dict(),
            "claimants": [c.to_dict() for c in self.claimants],
            "on_clock": self.on_clock.to_dict() if self.on_clock else None,
            "seconds_remaining": self.seconds_remaining,
            "recent_picks": [p.to_dict() for p in self.recent_picks],
            "counts": dict(self.counts),
        }


# ---------- DraftService ----------


class DraftService:
    """
    Domain logic for the draft event aggregate: lifecycle transitions, pause
    and resume, reset, claimant/player setup, and the draft-state read model.
    Persistence is delegated to repositories.
    """

    def __init__(self) -> None:
        self._event_repo = DraftEventRepository()
        self._claimant_repo = ClaimantRepository()
        self._player_repo = PlayerRepository()
        self._pick_repo = PickRepository()
        self._sibling_repo = SiblingCostRepository()
        self._trade_repo = TradeRepository()
        self._board_repo = DraftBoardRepository()

    # ---------- Lookups ----------

    def get_event(self, conn: sqlite3.Connection, event_id: str) -> DraftEvent:
        event = self._event_repo.get(conn, event_id)
        if event is None:
            raise NotFoundError(f"Draft event not found: {event_id}")
        return event

    def create_event(
        self,
        conn: sqlite3.Connection,
        name: str = config.DEFAULT_EVENT_NAME,
        pick_clock_seconds: int = config.DEFAULT_PICK_CLOCK_SECONDS,
    ) -> DraftEvent:
        if not name or not name.strip():
            raise ValidationError("Event name is required", field="name")
        if pick_clock_seconds < 1:
            raise ValidationError("pick_clock_seconds must be positive", field="pick_clock_seconds")
        event = self._event_repo.create(conn, name.strip(), pick_clock_seconds)
        logger.info("draft event created id=%s name=%r", event.id, event.name)
        return event

    def _assert_transition(self, event: DraftEvent, new_phase: DraftPhase) -> None:
        allowed = _VALID_TRANSITIONS.get(event.phase, set())
        if new_phase not in allowed:
            raise DraftStateError(
                f"Invalid transition: {event.phase.value} -> {new_phase.value}. "
                f"Allowed from {event.phase.value}: {sorted(p.value for p in allowed)}"
            )

    # ---------- Lifecycle ----------

    def start(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        pick_clock_seconds: int | None = None,
        now: datetime | None = None,
    ) -> DraftEvent:
        """SETUP -> LIVE. Starts the clock for whoever holds current_pick."""
        now = now or _utcnow()
        with transaction(conn):
            event = self.get_event(conn, event_id)
            self._assert_transition(event, DraftPhase.LIVE)
            if not self._claimant_repo.list_by_event(conn, event_id):
                raise DraftStateError("Cannot start: no claimants registered for this draft")
            seconds = event.pick_clock_seconds
            if pick_clock_seconds is not None:
                if pick_clock_seconds < 1:
                    raise ValidationError("pick_clock_seconds must be positive", field="pick_clock_seconds")
                seconds = pick_clock_seconds
            self._event_repo.update(
                conn, event_id,
                phase=DraftPhase.LIVE,
                pick_clock_seconds=seconds,
                is_paused=False,
                pause_remaining_secs=None,
                clock_ends_at=now + timedelta(seconds=seconds),
            )
        logger.info("draft started id=%s clock=%ss current_pick=%s", event_id, seconds, event.current_pick)
        return self.get_event(conn, event_id)

    def set_paused(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        paused: bool,
        now: datetime | None = None,
    ) -> DraftEvent:
        """
        Pause banks the seconds left on the deadline and clears it; resume sets a
        new deadline from the banked seconds (or a full clock if none were banked).
        Repeating the current state is a no-op.
        """
        now = now or _utcnow()
        with transaction(conn):
            event = self.get_event(conn, event_id)
            if event.phase != DraftPhase.LIVE:
                raise DraftStateError(f"Draft must be live to pause or resume (current: {event.phase.value})")
            if paused and not event.is_paused:
                if event.clock_ends_at is not None:
                    remaining = max(0, math.ceil((event.clock_ends_at - now).total_seconds()))
                elif event.pause_remaining_secs is not None:
                    remaining = event.pause_remaining_secs
                else:
                    remaining = event.pick_clock_seconds
                self._event_repo.update(
                    conn, event_id, is_paused=True, clock_ends_at=None, pause_remaining_secs=remaining,
                )
                logger.info("draft paused id=%s banked=%ss", event_id, remaining)
            elif not paused and event.is_paused:
                resume = event.pause_remaining_secs
                if resume is None:
                    resume = event.pick_clock_seconds
                self._event_repo.update(
                    conn, event_id,
                    is_paused=False,
                    pause_remaining_secs=None,
                    clock_ends_at=now + timedelta(seconds=max(0, resume)),
                )
                logger.info("draft resumed id=%s remaining=%ss", event_id, resume)
        return self.get_event(conn, event_id)

    def stop(self, conn: sqlite3.Connection, event_id: str) -> DraftEvent:
        """LIVE -> SETUP. Only phase, pause and clock fields change; picks stay."""
        with transaction(conn):
            event = self.get_event(conn, event_id)
            self._assert_transition(event, DraftPhase.SETUP)
            self._event_repo.update(
                conn, event_id,
                phase=DraftPhase.SETUP,
                is_paused=True,
                clock_ends_at=None,
                pause_remaining_secs=None,
            )
        logger.info("draft stopped id=%s at current_pick=%s", event_id, event.current_pick)
        return self.get_event(conn, event_id)

    def complete(self, conn: sqlite3.Connection, event_id: str) -> DraftEvent:
        """LIVE -> COMPLETE. Terminal; the board is frozen."""
        with transaction(conn):
            event = self.get_event(conn, event_id)
            self._assert_transition(event, DraftPhase.COMPLETE)
            self._event_repo.update(
                conn, event_id,
                phase=DraftPhase.COMPLETE,
                is_paused=True,
                clock_ends_at=None,
                pause_remaining_secs=None,
            )
        logger.info("draft completed id=%s", event_id)
        return self.get_event(conn, event_id)

    def reset(self, conn: sqlite3.Connection, event_id: str) -> DraftEvent:
        """Clear trades, picks, sibling links, boards, players and claimants; back to SETUP at pick 1."""
        with transaction(conn):
            self.get_event(conn, event_id)
            self._trade_repo.delete_by_event(conn, event_id)
            self._pick_repo.delete_by_event(conn, event_id)
            self._sibling_repo.delete_by_event(conn, event_id)
            self._board_repo.delete_by_event(conn, event_id)
            self._player_repo.delete_by_event(conn, event_id)
            self._claimant_repo.delete_by_event(conn, event_id)
            self._event_repo.update(
                conn, event_id,
                phase=DraftPhase.SETUP,
                current_pick=1,
                is_paused=True,
                clock_ends_at=None,
                pause_remaining_secs=None,
            )
        logger.warning("draft reset id=%s", event_id)
        return self.get_event(conn, event_id)

    # ---------- Setup ----------

    def register_claimant(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        name: str,
        order: int | None = None,
        owner_user_id: str | None = None,
    ) -> Claimant:
        """Add a claimant. Without an explicit order it goes to the end of the draft order."""
        if not name or not name.strip():
            raise ValidationError("Claimant name is required", field="name")
        with transaction(conn):
            event = self.get_event(conn, event_id)
            if event.phase != DraftPhase.SETUP:
                raise DraftStateError(f"Claimants can only be added during setup (current: {event.phase.value})")
            self._assert_no_picks(conn, event_id, "Claimants cannot be added")
            existing = self._claimant_repo.list_by_event(conn, event_id)
            if order is None:
                order = max((c.order for c in existing), default=0) + 1
            if order < 1:
                raise ValidationError("order must be >= 1", field="order")
            if any(c.order == order for c in existing):
                raise ValidationError(f"Draft order {order} is already taken", field="order")
            if owner_user_id and any(c.owner_user_id == owner_user_id for c in existing):
                raise ValidationError("That user already owns a claimant in this draft", field="owner_user_id")
            return self._claimant_repo.create(conn, event_id, name.strip(), order, owner_user_id)

    def set_claimant_order(
        self, conn: sqlite3.Connection, event_id: str, claimant_ids: list[str]
    ) -> list[Claimant]:
        """Rewrite draft order: claimant_ids[0] picks first. Must list every claimant exactly once."""
        with transaction(conn):
            event = self.get_event(conn, event_id)
            if event.phase != DraftPhase.SETUP:
                raise DraftStateError(f"Draft order can only change during setup (current: {event.phase.value})")
            self._assert_no_picks(conn, event_id, "Draft order cannot change")
            existing = self._claimant_repo.list_by_event(conn, event_id)
            if len(set(claimant_ids)) != len(claimant_ids) or set(claimant_ids) != {c.id for c in existing}:
                raise ValidationError("claimant_ids must list every claimant exactly once", field="claimant_ids")
            self._claimant_repo.shift_orders(conn, event_id, len(existing) + 1)
            for idx, cid in enumerate(claimant_ids):
                self._claimant_repo.update_order(conn, cid, idx + 1)
            return self._claimant_repo.list_by_event(conn, event_id)

    def _assert_no_picks(self, conn: sqlite3.Connection, event_id: str, action: str) -> None:
        """Claimant order is frozen once any pick is committed."""
        made = self._pick_repo.count_by_event(conn, event_id)
        if made:
            raise DraftStateError(f"{action} once picks exist ({made} committed); reset the draft first")

    def register_player(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        full_name: str,
        is_draft_eligible: bool = True,
        guardian_name: str | None = None,
        primary_email: str | None = None,
        primary_phone: str | None = None,
        league_choice: str | None = None,
    ) -> Player:
        if not full_name or not full_name.strip():
            raise ValidationError("Player name is required", field="full_name")
        self.get_event(conn, event_id)
        return self._player_repo.create(
            conn, event_id, full_name.strip(),
            is_draft_eligible=is_draft_eligible,
            guardian_name=guardian_name,
            primary_email=primary_email,
            primary_phone=primary_phone,
            league_choice=league_choice,
        )

    # ---------- Read model ----------

    def get_state(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        recent_limit: int = config.RECENT_PICKS_WINDOW,
        now: datetime | None = None,
    ) -> DraftState:
        now = now or _utcnow()
        event = self.get_event(conn, event_id)
        claimants = self._claimant_repo.list_by_event(conn, event_id)
        on_clock = None
        if claimants and event.phase == DraftPhase.LIVE:
            on_clock = claimants[slot_of(event.current_pick, len(claimants)).index]
        return DraftState(
            event=event,
            claimants=claimants,
            on_clock=on_clock,
            seconds_remaining=event.seconds_remaining(now),
            recent_picks=self._pick_repo.list_recent(conn, event_id, max(1, recent_limit)),
            counts=self._player_repo.count_eligible(conn, event_id),
        )
