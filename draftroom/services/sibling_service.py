"""
Sibling auto-picks.

Players who share a sibling group (same registrant, same league) are linked with a
draft cost. When one of them is drafted, one still-available sibling is placed
automatically with the same claimant, at that claimant's N-th open future slot,
where N is the sibling's draft cost. The placement runs inside the caller's
transaction so the trigger pick and the sibling pick land together or not at all.
"""
from __future__ import annotations

import logging
import re
import sqlite3
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from draftroom import config
from draftroom.models import Claimant, DraftEvent, Pick, SiblingCostLink
from draftroom.persistence.repositories import PickRepository, PlayerRepository, SiblingCostRepository
from draftroom.services.draft_order import claimant_slots, slot_of
from draftroom.services.errors import (
    AllocationError,
    NotFoundError,
    PlayerAlreadyDraftedError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _norm(v: str | None) -> str:
    return (v or "").strip().lower()


def registrant_group_key(
    primary_email: str | None,
    primary_phone: str | None,
    guardian_name: str | None,
    league_choice: str | None,
) -> str | None:
    """
    Group key for siblings: registrant (email, else phone digits, else guardian name)
    plus league. None when either part is missing; such players are never grouped.
    """
    email = _norm(primary_email)
    phone = re.sub(r"[^\d]", "", _norm(primary_phone))
    guardian = _norm(guardian_name)
    if email:
        registrant = f"email:{email}"
    elif phone:
        registrant = f"phone:{phone}"
    elif guardian:
        registrant = f"name:{guardian}"
    else:
        return None
    league = _norm(league_choice)
    if not league:
        return None
    return f"{registrant}::league:{league}"


@dataclass
class SiblingGroup:
    """Suggested group: players sharing a registrant key, with any configured costs."""
    group_key: str
    player_ids: list[str]
    player_names: list[str]
    draft_costs: dict[str, int | None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "group_key": self.group_key,
            "players": [
                {"player_id": pid, "full_name": name, "draft_cost": self.draft_costs.get(pid)}
                for pid, name in zip(self.player_ids, self.player_names)
            ],
        }


class SiblingService:
    """Sibling cost administration and the auto-pick resolver."""

    def __init__(self) -> None:
        self._link_repo = SiblingCostRepository()
        self._player_repo = PlayerRepository()
        self._pick_repo = PickRepository()

    # ---------- Administration ----------

    def set_draft_cost(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        player_id: str,
        group_key: str,
        draft_cost: int,
    ) -> SiblingCostLink:
        key = _norm(group_key)
        if not key:
            raise ValidationError("Missing groupKey", field="group_key")
        if isinstance(draft_cost, bool) or not isinstance(draft_cost, int):
            raise ValidationError("draft_cost must be an integer", field="draft_cost")
        if not config.DRAFT_COST_MIN <= draft_cost <= config.DRAFT_COST_MAX:
            raise ValidationError(
                f"draft_cost must be between {config.DRAFT_COST_MIN} and {config.DRAFT_COST_MAX}",
                field="draft_cost",
            )
        player = self._player_repo.get(conn, player_id)
        if player is None or player.draft_event_id != event_id:
            raise NotFoundError(f"Player not found for this draft event: {player_id}")
        link = self._link_repo.upsert(conn, event_id, player_id, key, draft_cost)
        logger.info("sibling cost set event=%s player=%s group=%s cost=%s", event_id, player_id, key, draft_cost)
        return link

    def list_links(self, conn: sqlite3.Connection, event_id: str) -> list[SiblingCostLink]:
        return self._link_repo.list_by_event(conn, event_id)

    def suggest_groups(self, conn: sqlite3.Connection, event_id: str) -> list[SiblingGroup]:
        """Eligible players bucketed by registrant_group_key; buckets of two or more."""
        costs = {l.player_id: l.draft_cost for l in self._link_repo.list_by_event(conn, event_id)}
        buckets: dict[str, list] = defaultdict(list)
        for p in self._player_repo.list_by_event(conn, event_id):
            if not p.is_draft_eligible:
                continue
            key = registrant_group_key(p.primary_email, p.primary_phone, p.guardian_name, p.league_choice)
            if key is None:
                continue
            buckets[key].append(p)
        return [
            SiblingGroup(
                group_key=key,
                player_ids=[p.id for p in kids],
                player_names=[p.full_name for p in kids],
                draft_costs={p.id: costs.get(p.id) for p in kids},
            )
            for key, kids in sorted(buckets.items())
            if len(kids) > 1
        ]

    # ---------- Resolver ----------

    def nth_open_slot(
        self,
        conn: sqlite3.Connection,
        event_id: str,
        claimant_index: int,
        claimant_count: int,
        after_overall: int,
        nth: int,
    ) -> int:
        """
        Overall number of the claimant's nth uncommitted slot after `after_overall`.
        Bounded to SIBLING_SCAN_ROUNDS rounds; AllocationError when exhausted.
        """
        start = after_overall + 1
        stop = start + claimant_count * config.SIBLING_SCAN_ROUNDS
        filled = self._pick_repo.filled_overalls(conn, event_id, start, stop)
        found = 0
        for overall in claimant_slots(claimant_index, claimant_count, start, stop):
            if overall in filled:
                continue
            found += 1
            if found == nth:
                return overall
        raise AllocationError(
            f"No open slot #{nth} for claimant index {claimant_index} within "
            f"{config.SIBLING_SCAN_ROUNDS} rounds after pick {after_overall}"
        )

    def resolve(
        self,
        conn: sqlite3.Connection,
        event: DraftEvent,
        claimants: list[Claimant],
        trigger: Pick,
        now: datetime,
    ) -> Pick | None:
        """
        Place one linked sibling of the trigger pick's player. Must run inside the
        trigger's transaction; any error propagates and aborts both picks.
        Tie-break among several available siblings: earliest link (lowest link id).
        """
        link = self._link_repo.get_for_player(conn, event.id, trigger.player_id)
        if link is None:
            return None
        candidates = self._link_repo.list_available_in_group(conn, event.id, link.group_key, trigger.player_id)
        if not candidates:
            return None
        sibling = candidates[0]
        n = len(claimants)
        claimant_index = slot_of(trigger.overall_number, n).index
        target = self.nth_open_slot(conn, event.id, claimant_index, n, trigger.overall_number, sibling.draft_cost)
        slot = slot_of(target, n)
        pick = self._pick_repo.create(
            conn, event.id, trigger.claimant_id, sibling.player_id,
            round=slot.round,
            pick_in_round=slot.pos_in_round + 1,
            overall_number=target,
            made_at=now,
            is_auto=True,
        )
        if not self._player_repo.mark_drafted(conn, sibling.player_id, trigger.claimant_id, now):
            raise PlayerAlreadyDraftedError(f"Sibling {sibling.player_id} was drafted concurrently")
        logger.info(
            "sibling auto-pick event=%s group=%s player=%s claimant=%s overall=%s (cost %s after %s)",
            event.id, link.group_key, sibling.player_id, trigger.claimant_id, target,
            sibling.draft_cost, trigger.overall_number,
        )
        return pick
