"""
Pick committer: validates and commits one player -> slot assignment atomically,
places any sibling auto-pick in the same transaction, and advances the event's
pick pointer and clock.

Callers name a slot in one of two shapes (PickTarget). The shape is resolved once,
up front, into a canonical SlotAssignment; nothing downstream branches on it.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Union

from draftroom import config
from draftroom.models import Actor, Claimant, DraftEvent, DraftPhase, Pick, Role
from draftroom.persistence.db import transaction
from draftroom.persistence.repositories import (
    ClaimantRepository,
    DraftEventRepository,
    PickRepository,
    PlayerRepository,
)
from draftroom.services.draft_order import overall_of, slot_of
from draftroom.services.errors import (
    AllocationError,
    AuthorizationError,
    DraftError,
    DraftNotLiveError,
    DraftPausedError,
    DraftStateError,
    IneligiblePlayerError,
    NotFoundError,
    NotYourTurnError,
    PlayerAlreadyDraftedError,
    SlotFilledError,
    ValidationError,
)
from draftroom.services.sibling_service import SiblingService

logger = logging.getLogger(__name__)


# ---------- Pick target (request shapes) ----------


@dataclass(frozen=True)
class BySlot:
    overall_number: int


@dataclass(frozen=True)
class ByClaimantRound:
    claimant_id: str
    round: int


PickTarget = Union[BySlot, ByClaimantRound]


def parse_pick_target(
    overall_number: int | None = None,
    claimant_id: str | None = None,
    round: int | None = None,
) -> PickTarget:
    """Turn loose request fields into a PickTarget. overall_number wins when both shapes are given."""
    if overall_number is not None:
        _check_bounds(overall_number, "overall_number")
        return BySlot(overall_number)
    if claimant_id and round is not None:
        _check_bounds(round, "round")
        return ByClaimantRound(claimant_id, round)
    raise ValidationError(
        "Provide overall_number, or claimant_id together with round",
        field="overall_number",
    )


def _check_bounds(value: int, name: str) -> None:
    if value < 1:
        raise ValidationError(f"{name} must be >= 1", field=name)
    if value > config.MAX_PICK_NUMBER:
        raise ValidationError(f"{name} must be <= {config.MAX_PICK_NUMBER}", field=name)


@dataclass(frozen=True)
class SlotAssignment:
    """Canonical slot: every field consistent with the snake order."""
    claimant_id: str
    round: int
    pick_in_round: int
    overall_number: int


@dataclass
class CommitResult:
    pick: Pick
    sibling_pick: Pick | None
    event: DraftEvent

    def to_dict(self) -> dict[str, Any]:
        return {
            "pick_id": self.pick.id,
            "overall_number": self.pick.overall_number,
            "pick": self.pick.to_dict(),
            "sibling_pick": (
                {"pick_id": self.sibling_pick.id, "overall_number": self.sibling_pick.overall_number}
                if self.sibling_pick else None
            ),
            "event": self.event.to_dict(),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- PickService ----------


class PickService:
    """
    Commits picks. Pre-checks reject bad requests before any write; the checks are
    repeated inside a BEGIN IMMEDIATE transaction, and the unique indexes on
    (event, overall_number) and (event, player_id) settle any remaining race.
    """

    def __init__(self, sibling_service: SiblingService | None = None) -> None:
        self._event_repo = DraftEventRepository()
        self._claimant_repo = ClaimantRepository()
        self._player_repo = PlayerRepository()
        self._pick_repo = PickRepository()
        self._siblings = sibling_service or SiblingService()

    def resolve_target(self, target: PickTarget, claimants: list[Claimant]) -> SlotAssignment:
        n = len(claimants)
        if n == 0:
            raise DraftStateError("No claimants registered for this draft")
        if isinstance(target, BySlot):
            slot = slot_of(target.overall_number, n)
            return SlotAssignment(
                claimant_id=claimants[slot.index].id,
                round=slot.round,
                pick_in_round=slot.pos_in_round + 1,
                overall_number=target.overall_number,
            )
        index = next((i for i, c in enumerate(claimants) if c.id == target.claimant_id), None)
        if index is None:
            raise NotFoundError(f"Claimant not found in this draft: {target.claimant_id}")
        overall = overall_of(target.round, index, n)
        if overall > config.MAX_PICK_NUMBER:
            raise ValidationError(f"round {target.round} is past the last addressable pick", field="round")
        return SlotAssignment(
            claimant_id=target.claimant_id,
            round=target.round,
            pick_in_round=slot_of(overall, n).pos_in_round + 1,
            overall_number=overall,
        )

    def next_open_slot(self, conn: sqlite3.Connection, event_id: str, after_overall: int, claimant_count: int) -> int:
        """First uncommitted overall number after `after_overall`, within NEXT_SLOT_SCAN_ROUNDS rounds."""
        start = after_overall + 1
        stop = start + claimant_count * config.NEXT_SLOT_SCAN_ROUNDS
        filled = self._pick_repo.filled_overalls(conn, event_id, start, stop)
        for overall in range(start, stop):
            if overall not in filled:
                return overall
        raise AllocationError(
            f"No open slot within {config.NEXT_SLOT_SCAN_ROUNDS} rounds after pick {after_overall}"
        )

    def _authorize(self, actor: Actor) -> None:
        if actor.role == Role.ADMIN or actor.role == Role.COACH:
            return
        if actor.role == Role.BOARD:
            raise AuthorizationError("Board members cannot make picks")
        raise AuthorizationError(f"Role not permitted to pick: {actor.role}")

    def _assert_coach_turn(
        self,
        conn: sqlite3.Connection,
        event: DraftEvent,
        claimants: list[Claimant],
        slot: SlotAssignment,
        actor: Actor,
    ) -> None:
        own = self._claimant_repo.get_by_owner(conn, event.id, actor.user_id)
        if own is None:
            raise AuthorizationError("No team assigned to this coach")
        on_clock = claimants[slot_of(event.current_pick, len(claimants)).index]
        if own.id != on_clock.id:
            raise NotYourTurnError("It is not your team's turn to pick.")
        if slot.claimant_id != on_clock.id or slot.overall_number != event.current_pick:
            raise NotYourTurnError(f"Coaches can only pick at the current slot ({event.current_pick})")

    def commit_pick(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        player_id: str,
        target: PickTarget,
        actor: Actor,
        now: datetime | None = None,
    ) -> CommitResult:
        """
        Commit player_id into the slot named by target. Admins may fill any open slot
        of a live draft (paused or not); coaches only their own current slot while
        the clock runs. The pointer and clock move only when the current slot is filled.
        """
        now = now or _utcnow()
        self._authorize(actor)
        if not player_id:
            raise ValidationError("Missing playerId", field="player_id")
        is_coach = actor.role == Role.COACH

        # ---------- Pre-checks (no writes) ----------
        event = self._get_event(conn, event_id)
        self._assert_live(event, is_coach)
        claimants = self._claimant_repo.list_by_event(conn, event_id)
        slot = self.resolve_target(target, claimants)
        if is_coach:
            self._assert_coach_turn(conn, event, claimants, slot, actor)
        player = self._player_repo.get(conn, player_id)
        if player is None or player.draft_event_id != event_id:
            raise NotFoundError("Player not found for this draft event.")
        if not player.is_draft_eligible:
            raise IneligiblePlayerError("That player is not draft eligible.", field="player_id")
        if player.is_drafted:
            raise PlayerAlreadyDraftedError("That player has already been drafted.")

        # ---------- Atomic commit ----------
        try:
            with transaction(conn):
                event = self._get_event(conn, event_id)
                self._assert_live(event, is_coach)
                if is_coach and event.current_pick != slot.overall_number:
                    raise NotYourTurnError("The pick has already advanced.")
                if self._pick_repo.get_by_overall(conn, event_id, slot.overall_number) is not None:
                    raise SlotFilledError(f"Pick slot {slot.overall_number} is already filled.")
                pick = self._pick_repo.create(
                    conn, event_id, slot.claimant_id, player_id,
                    round=slot.round,
                    pick_in_round=slot.pick_in_round,
                    overall_number=slot.overall_number,
                    made_at=now,
                )
                if not self._player_repo.mark_drafted(conn, player_id, slot.claimant_id, now):
                    raise PlayerAlreadyDraftedError("That player has already been drafted.")
                # Sibling placement first so the pointer scan below sees its slot as taken.
                sibling_pick = self._siblings.resolve(conn, event, claimants, pick, now)
                if slot.overall_number == event.current_pick:
                    next_pick = self.next_open_slot(conn, event_id, slot.overall_number, len(claimants))
                    if event.is_paused:
                        self._event_repo.update(conn, event_id, current_pick=next_pick, pause_remaining_secs=None)
                    else:
                        self._event_repo.update(
                            conn, event_id,
                            current_pick=next_pick,
                            clock_ends_at=now + timedelta(seconds=event.pick_clock_seconds),
                            pause_remaining_secs=None,
                        )
        except sqlite3.IntegrityError as e:
            conflict = self._conflict_from_integrity(e, slot)
            if conflict is None:
                raise
            raise conflict from e
        except AllocationError:
            logger.exception("allocation failed event=%s overall=%s player=%s", event_id, slot.overall_number, player_id)
            raise

        updated = self._get_event(conn, event_id)
        logger.info(
            "pick committed event=%s overall=%s round=%s claimant=%s player=%s by=%s next=%s",
            event_id, pick.overall_number, pick.round, pick.claimant_id, player_id,
            actor.role.value, updated.current_pick,
        )
        return CommitResult(pick=pick, sibling_pick=sibling_pick, event=updated)

    def _get_event(self, conn: sqlite3.Connection, event_id: str) -> DraftEvent:
        event = self._event_repo.get(conn, event_id)
        if event is None:
            raise NotFoundError(f"Draft event not found: {event_id}")
        return event

    @staticmethod
    def _assert_live(event: DraftEvent, is_coach: bool) -> None:
        if event.phase != DraftPhase.LIVE:
            raise DraftNotLiveError("Draft is not live.")
        if is_coach and event.is_paused:
            raise DraftPausedError("Draft is paused.")

    @staticmethod
    def _conflict_from_integrity(e: sqlite3.IntegrityError, slot: SlotAssignment) -> DraftError | None:
        msg = str(e)
        if "overall_number" in msg:
            logger.warning("slot race lost overall=%s: %s", slot.overall_number, msg)
            return SlotFilledError(f"Pick slot {slot.overall_number} is already filled.")
        if "player_id" in msg:
            logger.warning("player race lost overall=%s: %s", slot.overall_number, msg)
            return PlayerAlreadyDraftedError("That player has already been drafted.")
        return None

    def list_picks(self, conn: sqlite3.Connection, event_id: str) -> list[Pick]:
        self._get_event(conn, event_id)
        return self._pick_repo.list_by_event(conn, event_id)
