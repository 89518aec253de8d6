"""
Draft boards and roster views.

A board is a claimant's private, ordered wish list of players. Coaches read and
write their own board; admins and board members may open any claimant's board.
Roster views answer "which team is mine" for a coach and list every team's
drafted players for an admin.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from draftroom import config
from draftroom.models import Actor, BoardEntry, Claimant, DraftBoard, Player, Role
from draftroom.persistence.db import transaction
from draftroom.persistence.repositories import (
    ClaimantRepository,
    DraftBoardRepository,
    DraftEventRepository,
    PickRepository,
    PlayerRepository,
)
from draftroom.services.errors import AuthorizationError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ClaimantRoster:
    """A claimant with its drafted players; claimant is None when the caller owns no team."""
    claimant: Claimant | None
    players: list[Player] = field(default_factory=list)
    rounds: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "claimant": self.claimant.to_dict() if self.claimant else None,
            "players": [{**p.to_dict(), "round": self.rounds.get(p.id)} for p in self.players],
        }


def _entry_time(value: Any, default: datetime) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        try:
            return _entry_time(datetime.fromisoformat(value.strip().replace("Z", "+00:00")), default)
        except ValueError:
            return default
    return default


def normalize_board_entries(raw: Sequence[Mapping[str, Any]], now: datetime) -> list[BoardEntry]:
    """
    Clean a submitted board: blank player ids are skipped, repeated players keep
    their first position, a missing or unreadable added_at becomes `now`, and a
    slot outside 1..MAX_PICK_NUMBER is dropped. At most BOARD_MAX_ENTRIES survive.
    """
    out: list[BoardEntry] = []
    seen: set[str] = set()
    for e in raw:
        player_id = str(e.get("player_id") or "").strip()
        if not player_id or player_id in seen:
            continue
        seen.add(player_id)
        slot = e.get("slot")
        if not isinstance(slot, int) or isinstance(slot, bool) or not 1 <= slot <= config.MAX_PICK_NUMBER:
            slot = None
        out.append(BoardEntry(player_id=player_id, added_at=_entry_time(e.get("added_at"), now), slot=slot))
    return out[: config.BOARD_MAX_ENTRIES]


class BoardService:
    """Per-claimant draft boards, the caller's own team, and the all-teams roster view."""

    def __init__(self) -> None:
        self._event_repo = DraftEventRepository()
        self._claimant_repo = ClaimantRepository()
        self._player_repo = PlayerRepository()
        self._pick_repo = PickRepository()
        self._board_repo = DraftBoardRepository()

    def _check_event(self, conn: sqlite3.Connection, event_id: str) -> None:
        if self._event_repo.get(conn, event_id) is None:
            raise NotFoundError(f"Draft event not found: {event_id}")

    def _board_claimant(self, conn: sqlite3.Connection, event_id: str, claimant_id: str, actor: Actor) -> Claimant:
        self._check_event(conn, event_id)
        claimant = self._claimant_repo.get(conn, claimant_id)
        if claimant is None or claimant.draft_event_id != event_id:
            raise NotFoundError(f"Claimant not found in this draft: {claimant_id}")
        if actor.role == Role.ADMIN or actor.role == Role.BOARD:
            return claimant
        if actor.role == Role.COACH:
            if claimant.owner_user_id != actor.user_id:
                raise AuthorizationError("Coaches can only open their own team's board")
            return claimant
        raise AuthorizationError(f"Role not permitted to open boards: {actor.role}")

    # ---------- Boards ----------

    def get_board(self, conn: sqlite3.Connection, event_id: str, claimant_id: str, actor: Actor) -> DraftBoard:
        """The claimant's saved board, or an empty one if nothing has been saved yet."""
        self._board_claimant(conn, event_id, claimant_id, actor)
        board = self._board_repo.get(conn, event_id, claimant_id)
        return board or DraftBoard(draft_event_id=event_id, claimant_id=claimant_id)

    def save_board(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        claimant_id: str,
        actor: Actor,
        entries: Sequence[Mapping[str, Any]],
        now: datetime | None = None,
    ) -> DraftBoard:
        """Replace the board. Entries naming players outside this event are dropped."""
        now = now or _utcnow()
        if entries is None:
            raise ValidationError("entries must be a list", field="entries")
        cleaned = normalize_board_entries(entries, now)
        with transaction(conn):
            self._board_claimant(conn, event_id, claimant_id, actor)
            known = self._player_repo.get_many(conn, [e.player_id for e in cleaned])
            kept = [
                e for e in cleaned
                if e.player_id in known and known[e.player_id].draft_event_id == event_id
            ]
            board = self._board_repo.upsert(conn, event_id, claimant_id, kept)
        if len(kept) != len(entries):
            logger.info(
                "board saved event=%s claimant=%s kept=%s of %s", event_id, claimant_id, len(kept), len(entries),
            )
        return board

    # ---------- Rosters ----------

    def _roster(self, conn: sqlite3.Connection, event_id: str, claimant: Claimant, players: list[Player]) -> ClaimantRoster:
        rounds = self._pick_repo.rounds_by_player(conn, event_id, [p.id for p in players])
        return ClaimantRoster(claimant=claimant, players=players, rounds=rounds)

    def my_claimant(self, conn: sqlite3.Connection, event_id: str, actor: Actor) -> ClaimantRoster:
        """The claimant the caller coaches in this event, with its roster; empty when there is none."""
        self._check_event(conn, event_id)
        own = self._claimant_repo.get_by_owner(conn, event_id, actor.user_id)
        if own is None:
            return ClaimantRoster(claimant=None)
        return self._roster(conn, event_id, own, self._player_repo.list_roster(conn, event_id, own.id))

    def full_rosters(self, conn: sqlite3.Connection, event_id: str, actor: Actor) -> list[ClaimantRoster]:
        """Every claimant in draft order, each with its players in the order they were drafted. Admin only."""
        if actor.role != Role.ADMIN:
            raise AuthorizationError("Only admins can view every roster")
        self._check_event(conn, event_id)
        by_claimant: dict[str, list[Player]] = {}
        for p in self._player_repo.list_drafted(conn, event_id):
            if p.drafted_claimant_id:
                by_claimant.setdefault(p.drafted_claimant_id, []).append(p)
        return [
            self._roster(conn, event_id, c, by_claimant.get(c.id, []))
            for c in self._claimant_repo.list_by_event(conn, event_id)
        ]
