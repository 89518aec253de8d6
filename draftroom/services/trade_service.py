"""
Trade engine: propose, accept, reject, counter and cancel player-for-player trades
between two claimants of one draft.

Fairness is coarse on purpose: each side's players are scored by the round they were
drafted in, and the two unweighted averages may differ by at most MAX_ROUND_DELTA.
Acceptance re-validates every roster assignment and swaps them in one transaction;
if anything moved since the proposal, nothing is applied.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

from draftroom import config
from draftroom.models import Actor, Claimant, Player, Role, Trade, TradeAction, TradeStatus
from draftroom.persistence.db import transaction
from draftroom.persistence.repositories import (
    ClaimantRepository,
    DraftEventRepository,
    PickRepository,
    PlayerRepository,
    TradeRepository,
)
from draftroom.services.errors import (
    AuthorizationError,
    FairnessError,
    NotFoundError,
    RosterChangedError,
    TradeStateError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- Fairness ----------


@dataclass(frozen=True)
class FairnessResult:
    from_avg_round: float | None
    to_avg_round: float | None
    round_delta: float | None
    is_fair: bool


def _avg(nums: list[int]) -> float | None:
    if not nums:
        return None
    return sum(nums) / len(nums)


def compute_fairness(
    give_rounds: Sequence[int | None],
    receive_rounds: Sequence[int | None],
    max_delta: float = config.MAX_ROUND_DELTA,
) -> FairnessResult:
    """
    Average draft round per side, ignoring players with no round. A side with no
    rounds at all has nothing to compare and is unfair.
    """
    from_avg = _avg([r for r in give_rounds if r is not None])
    to_avg = _avg([r for r in receive_rounds if r is not None])
    if from_avg is None or to_avg is None:
        return FairnessResult(from_avg, to_avg, None, False)
    delta = abs(from_avg - to_avg)
    return FairnessResult(from_avg, to_avg, delta, delta <= max_delta)


# ---------- Results ----------


@dataclass
class RespondResult:
    trade: Trade
    counter_trade: Trade | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"ok": True, "status": self.trade.status.value}
        if self.counter_trade is not None:
            d["counter_trade_id"] = self.counter_trade.id
        return d


# ---------- TradeService ----------


class TradeService:
    """Domain logic for trades. Persistence is delegated to repositories."""

    def __init__(self) -> None:
        self._event_repo = DraftEventRepository()
        self._claimant_repo = ClaimantRepository()
        self._player_repo = PlayerRepository()
        self._pick_repo = PickRepository()
        self._trade_repo = TradeRepository()

    # ---------- Helpers ----------

    @staticmethod
    def _clean_ids(ids: Sequence[str] | None) -> list[str]:
        return [str(i).strip() for i in (ids or []) if str(i).strip()]

    def _validate_lists(self, give_ids: list[str], receive_ids: list[str]) -> None:
        if not give_ids or not receive_ids:
            raise ValidationError("Select players from both teams", field="give_ids" if not give_ids else "receive_ids")
        if len(set(give_ids)) != len(give_ids):
            raise ValidationError("Duplicate player in give list", field="give_ids")
        if len(set(receive_ids)) != len(receive_ids):
            raise ValidationError("Duplicate player in receive list", field="receive_ids")
        if set(give_ids) & set(receive_ids):
            raise ValidationError("A player cannot be on both sides of a trade", field="receive_ids")

    def _claimant_in_event(self, conn: sqlite3.Connection, event_id: str, claimant_id: str) -> Claimant:
        claimant = self._claimant_repo.get(conn, claimant_id)
        if claimant is None or claimant.draft_event_id != event_id:
            raise NotFoundError(f"Claimant not found in this draft: {claimant_id}")
        return claimant

    def _own_claimant(self, conn: sqlite3.Connection, event_id: str, actor: Actor) -> Claimant:
        own = self._claimant_repo.get_by_owner(conn, event_id, actor.user_id)
        if own is None:
            raise AuthorizationError("No team assigned to this coach yet")
        return own

    def _off_roster(
        self, players: dict[str, Player], event_id: str, claimant_id: str, player_ids: list[str]
    ) -> list[str]:
        """Ids in player_ids not currently drafted by claimant_id."""
        bad = []
        for pid in player_ids:
            p = players.get(pid)
            if p is None or p.draft_event_id != event_id or not p.is_drafted or p.drafted_claimant_id != claimant_id:
                bad.append(pid)
        return bad

    def _check_rosters(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        from_claimant_id: str,
        to_claimant_id: str,
        give_ids: list[str],
        receive_ids: list[str],
    ) -> None:
        players = self._player_repo.get_many(conn, give_ids + receive_ids)
        if self._off_roster(players, event_id, from_claimant_id, give_ids):
            raise ValidationError("One or more 'giving' players are not on your roster", field="give_ids")
        if self._off_roster(players, event_id, to_claimant_id, receive_ids):
            raise ValidationError("One or more 'receiving' players are not on the other roster", field="receive_ids")

    def _score(self, conn: sqlite3.Connection, event_id: str, give_ids: list[str], receive_ids: list[str]) -> FairnessResult:
        rounds = self._pick_repo.rounds_by_player(conn, event_id, give_ids + receive_ids)
        result = compute_fairness([rounds.get(p) for p in give_ids], [rounds.get(p) for p in receive_ids])
        if not result.is_fair:
            if result.round_delta is None:
                message = "Unable to compute trade fairness: no draft round data for one side"
            else:
                message = f"Trade is not fair enough (avg rounds must be within {config.MAX_ROUND_DELTA:g})"
            raise FairnessError(message, result.from_avg_round, result.to_avg_round, result.round_delta)
        return result

    @staticmethod
    def _clip_message(message: str | None) -> str | None:
        if message is None:
            return None
        return str(message)[: config.TRADE_MESSAGE_MAX_LEN]

    # ---------- Propose ----------

    def propose(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        actor: Actor,
        partner_claimant_id: str,
        give_ids: Sequence[str],
        receive_ids: Sequence[str],
        message: str | None = None,
        from_claimant_id: str | None = None,
    ) -> Trade:
        """
        Create a PENDING trade. Coaches propose for their own claimant; admins and
        board members must name from_claimant_id.
        """
        give = self._clean_ids(give_ids)
        receive = self._clean_ids(receive_ids)
        if not partner_claimant_id:
            raise ValidationError("Missing partner claimant", field="partner_claimant_id")
        self._validate_lists(give, receive)
        if self._event_repo.get(conn, event_id) is None:
            raise NotFoundError(f"Draft event not found: {event_id}")

        if actor.role == Role.COACH:
            own = self._own_claimant(conn, event_id, actor)
            if from_claimant_id and from_claimant_id != own.id:
                raise AuthorizationError("Coaches can only propose trades for their own team")
            from_id = own.id
        elif actor.role == Role.ADMIN or actor.role == Role.BOARD:
            if not from_claimant_id:
                raise ValidationError("Missing fromTeamId", field="from_claimant_id")
            from_id = from_claimant_id
        else:
            raise AuthorizationError(f"Role not permitted to trade: {actor.role}")

        if from_id == partner_claimant_id:
            raise ValidationError("Choose a different team", field="partner_claimant_id")

        with transaction(conn):
            self._claimant_in_event(conn, event_id, from_id)
            self._claimant_in_event(conn, event_id, partner_claimant_id)
            self._check_rosters(conn, event_id, from_id, partner_claimant_id, give, receive)
            fairness = self._score(conn, event_id, give, receive)
            trade = self._trade_repo.create(
                conn, event_id, from_id, partner_claimant_id, give, receive,
                from_avg_round=fairness.from_avg_round,
                to_avg_round=fairness.to_avg_round,
                round_delta=fairness.round_delta,
                message=self._clip_message(message),
                created_by_user_id=actor.user_id,
            )
        logger.info(
            "trade proposed id=%s event=%s %s->%s give=%s receive=%s delta=%.2f",
            trade.id, event_id, from_id, partner_claimant_id, give, receive, fairness.round_delta,
        )
        return trade

    # ---------- Respond ----------

    def get_trade(self, conn: sqlite3.Connection, trade_id: str) -> Trade:
        trade = self._trade_repo.get(conn, trade_id)
        if trade is None:
            raise NotFoundError(f"Trade not found: {trade_id}")
        return trade

    def _authorize_response(self, conn: sqlite3.Connection, trade: Trade, actor: Actor, action: TradeAction) -> None:
        if actor.role == Role.ADMIN or actor.role == Role.BOARD:
            return
        if actor.role != Role.COACH:
            raise AuthorizationError(f"Role not permitted to respond to trades: {actor.role}")
        own = self._own_claimant(conn, trade.draft_event_id, actor)
        if own.id not in (trade.from_claimant_id, trade.to_claimant_id):
            raise AuthorizationError("Forbidden")
        if action == TradeAction.CANCEL:
            if own.id != trade.from_claimant_id:
                raise AuthorizationError("Only the proposing coach can cancel")
        elif own.id != trade.to_claimant_id:
            raise AuthorizationError("Only the receiving coach can respond")

    def respond(
        self,
        conn: sqlite3.Connection,
        trade_id: str,
        actor: Actor,
        action: TradeAction,
        give_ids: Sequence[str] | None = None,
        receive_ids: Sequence[str] | None = None,
        message: str | None = None,
        now: datetime | None = None,
    ) -> RespondResult:
        """
        ACCEPT / REJECT / COUNTER by the receiving side, CANCEL by the proposer.
        For COUNTER, give_ids are the responder's players and receive_ids the
        proposer's.
        """
        now = now or _utcnow()
        trade = self.get_trade(conn, trade_id)
        self._authorize_response(conn, trade, actor, action)
        if trade.status != TradeStatus.PENDING:
            raise TradeStateError("Trade is not pending")

        if action == TradeAction.ACCEPT:
            return RespondResult(self._accept(conn, trade, actor, now))
        if action == TradeAction.REJECT:
            return RespondResult(self._close(conn, trade, actor, TradeStatus.REJECTED))
        if action == TradeAction.CANCEL:
            return RespondResult(self._close(conn, trade, actor, TradeStatus.CANCELLED))
        if action == TradeAction.COUNTER:
            return self._counter(conn, trade, actor, give_ids, receive_ids, message)
        raise ValidationError(f"Unknown action: {action}", field="action")

    def _accept(self, conn: sqlite3.Connection, trade: Trade, actor: Actor, now: datetime) -> Trade:
        with transaction(conn):
            current = self.get_trade(conn, trade.id)
            if current.status != TradeStatus.PENDING:
                raise TradeStateError("Trade is not pending")
            from_gives, to_gives = current.from_gives, current.to_gives
            players = self._player_repo.get_many(conn, from_gives + to_gives)
            moved = self._off_roster(players, current.draft_event_id, current.from_claimant_id, from_gives)
            moved += self._off_roster(players, current.draft_event_id, current.to_claimant_id, to_gives)
            if moved:
                raise RosterChangedError("Roster changed before acceptance; please refresh and try again.")
            for pid in from_gives:
                if not self._player_repo.reassign(conn, pid, current.from_claimant_id, current.to_claimant_id):
                    raise RosterChangedError("Roster changed before acceptance; please refresh and try again.")
            for pid in to_gives:
                if not self._player_repo.reassign(conn, pid, current.to_claimant_id, current.from_claimant_id):
                    raise RosterChangedError("Roster changed before acceptance; please refresh and try again.")
            if not self._trade_repo.update_status(
                conn, current.id, TradeStatus.PENDING, TradeStatus.ACCEPTED,
                responded_by_user_id=actor.user_id, executed_at=now,
            ):
                raise TradeStateError("Trade is not pending")
        logger.info(
            "trade accepted id=%s %s gives %s, %s gives %s",
            trade.id, trade.from_claimant_id, from_gives, trade.to_claimant_id, to_gives,
        )
        return self.get_trade(conn, trade.id)

    def _close(self, conn: sqlite3.Connection, trade: Trade, actor: Actor, status: TradeStatus) -> Trade:
        if not self._trade_repo.update_status(
            conn, trade.id, TradeStatus.PENDING, status, responded_by_user_id=actor.user_id,
        ):
            raise TradeStateError("Trade is not pending")
        logger.info("trade %s id=%s by=%s", status.value.lower(), trade.id, actor.user_id)
        return self.get_trade(conn, trade.id)

    def _counter(
        self,
        conn: sqlite3.Connection,
        trade: Trade,
        actor: Actor,
        give_ids: Sequence[str] | None,
        receive_ids: Sequence[str] | None,
        message: str | None,
    ) -> RespondResult:
        give = self._clean_ids(give_ids)
        receive = self._clean_ids(receive_ids)
        self._validate_lists(give, receive)
        # Sides swap: the original receiver now proposes.
        new_from, new_to = trade.to_claimant_id, trade.from_claimant_id
        with transaction(conn):
            self._check_rosters(conn, trade.draft_event_id, new_from, new_to, give, receive)
            fairness = self._score(conn, trade.draft_event_id, give, receive)
            if not self._trade_repo.update_status(
                conn, trade.id, TradeStatus.PENDING, TradeStatus.COUNTERED, responded_by_user_id=actor.user_id,
            ):
                raise TradeStateError("Trade is not pending")
            counter = self._trade_repo.create(
                conn, trade.draft_event_id, new_from, new_to, give, receive,
                from_avg_round=fairness.from_avg_round,
                to_avg_round=fairness.to_avg_round,
                round_delta=fairness.round_delta,
                message=self._clip_message(message),
                created_by_user_id=actor.user_id,
                parent_trade_id=trade.id,
            )
        logger.info("trade countered id=%s counter=%s", trade.id, counter.id)
        return RespondResult(self.get_trade(conn, trade.id), counter)

    # ---------- Reads ----------

    def list_trades(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        actor: Actor,
        limit: int = config.TRADE_INBOX_LIMIT,
    ) -> list[Trade]:
        """Coaches see trades involving their team; admins and board see all."""
        if actor.role == Role.COACH:
            own = self._claimant_repo.get_by_owner(conn, event_id, actor.user_id)
            if own is None:
                return []
            return self._trade_repo.list_by_event(conn, event_id, claimant_id=own.id, limit=limit)
        if actor.role == Role.ADMIN or actor.role == Role.BOARD:
            return self._trade_repo.list_by_event(conn, event_id, limit=limit)
        raise AuthorizationError(f"Role not permitted to view trades: {actor.role}")

    def roster_with_rounds(self, conn: sqlite3.Connection, event_id: str, claimant_id: str) -> list[dict[str, Any]]:
        """A claimant's current roster, each player with the round they were drafted in."""
        self._claimant_in_event(conn, event_id, claimant_id)
        players = self._player_repo.list_roster(conn, event_id, claimant_id)
        rounds = self._pick_repo.rounds_by_player(conn, event_id, [p.id for p in players])
        return [
            {"id": p.id, "full_name": p.full_name, "round": rounds.get(p.id)}
            for p in players
        ]
