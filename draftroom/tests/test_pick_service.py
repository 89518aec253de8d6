"""
Tests for the pick committer: slot resolution, pointer and clock movement,
turn and phase guards, uniqueness under concurrency, and rollback on allocation failure.
"""
from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from draftroom import config
from draftroom.models import Actor, Role
from draftroom.persistence.db import get_connection
from draftroom.persistence.repositories import PickRepository, PlayerRepository
from draftroom.services.draft_service import DraftService
from draftroom.services.errors import (
    AllocationError,
    AuthorizationError,
    DraftNotLiveError,
    DraftPausedError,
    IneligiblePlayerError,
    NotFoundError,
    NotYourTurnError,
    PlayerAlreadyDraftedError,
    SlotFilledError,
    ValidationError,
)
from draftroom.services.pick_service import (
    ByClaimantRound,
    BySlot,
    PickService,
    parse_pick_target,
)

T0 = datetime(2026, 3, 14, 19, 0, 0, tzinfo=timezone.utc)

NAMES = ("Ava", "Ben", "Cal", "Dee", "Eli", "Fay")


@pytest.fixture
def pick_service():
    return PickService()


# ---------- Target parsing and resolution ----------


def test_parse_pick_target_shapes():
    assert parse_pick_target(overall_number=7) == BySlot(7)
    assert parse_pick_target(claimant_id="c1", round=2) == ByClaimantRound("c1", 2)
    assert parse_pick_target(overall_number=3, claimant_id="c1", round=2) == BySlot(3)
    with pytest.raises(ValidationError):
        parse_pick_target()
    with pytest.raises(ValidationError):
        parse_pick_target(claimant_id="c1")
    with pytest.raises(ValidationError):
        parse_pick_target(overall_number=0)


@pytest.mark.parametrize(
    "kwargs, field",
    [
        ({"overall_number": 10**20}, "overall_number"),
        ({"overall_number": config.MAX_PICK_NUMBER + 1}, "overall_number"),
        ({"claimant_id": "c1", "round": 10**20}, "round"),
        ({"claimant_id": "c1", "round": 0}, "round"),
    ],
)
def test_parse_pick_target_rejects_out_of_range(kwargs, field):
    with pytest.raises(ValidationError) as exc_info:
        parse_pick_target(**kwargs)
    assert exc_info.value.field == field
    assert exc_info.value.to_dict()["field"] == field


def test_parse_pick_target_accepts_upper_bound():
    assert parse_pick_target(overall_number=config.MAX_PICK_NUMBER) == BySlot(config.MAX_PICK_NUMBER)


def test_round_past_last_addressable_pick_rejected(db_conn, seed_draft, pick_service):
    d = seed_draft()
    with pytest.raises(ValidationError) as exc_info:
        pick_service.resolve_target(ByClaimantRound(d.claimants[2].id, config.MAX_PICK_NUMBER), d.claimants)
    assert exc_info.value.field == "round"


def test_commit_by_slot(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES)
    result = pick_service.commit_pick(db_conn, d.event.id, d.players["Ava"].id, BySlot(1), d.admin, now=T0)
    pick = result.pick
    assert (pick.round, pick.pick_in_round, pick.overall_number) == (1, 1, 1)
    assert pick.claimant_id == d.claimants[0].id
    assert pick.is_auto is False
    assert result.sibling_pick is None
    player = PlayerRepository().get(db_conn, d.players["Ava"].id)
    assert player.is_drafted is True
    assert player.drafted_claimant_id == d.claimants[0].id


def test_commit_by_claimant_and_round(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES)
    # 3 claimants: index 1 in round 2 is overall 5, second position in the round
    target = ByClaimantRound(d.claimants[1].id, 2)
    result = pick_service.commit_pick(db_conn, d.event.id, d.players["Ben"].id, target, d.admin, now=T0)
    assert result.pick.overall_number == 5
    assert result.pick.pick_in_round == 2
    assert result.pick.round == 2


def test_unknown_claimant_target(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES)
    with pytest.raises(NotFoundError):
        pick_service.commit_pick(
            db_conn, d.event.id, d.players["Ava"].id, ByClaimantRound("nobody", 1), d.admin, now=T0,
        )


# ---------- Pointer and clock ----------


def test_current_pick_advances_and_clock_resets(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES)
    later = T0 + timedelta(seconds=50)
    result = pick_service.commit_pick(db_conn, d.event.id, d.players["Ava"].id, BySlot(1), d.admin, now=later)
    assert result.event.current_pick == 2
    assert result.event.clock_ends_at == later + timedelta(seconds=120)
    assert result.to_dict()["overall_number"] == 1


def test_out_of_order_fill_does_not_move_pointer(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES)
    result = pick_service.commit_pick(db_conn, d.event.id, d.players["Ben"].id, BySlot(2), d.admin, now=T0)
    assert result.event.current_pick == 1
    assert result.event.clock_ends_at == T0 + timedelta(seconds=120)


def test_pointer_skips_filled_slots(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES)
    pick_service.commit_pick(db_conn, d.event.id, d.players["Ben"].id, BySlot(2), d.admin, now=T0)
    pick_service.commit_pick(db_conn, d.event.id, d.players["Cal"].id, BySlot(3), d.admin, now=T0)
    result = pick_service.commit_pick(db_conn, d.event.id, d.players["Ava"].id, BySlot(1), d.admin, now=T0)
    assert result.event.current_pick == 4


def test_admin_pick_while_paused_moves_pointer_only(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES)
    svc = DraftService()
    svc.set_paused(db_conn, d.event.id, True, now=T0 + timedelta(seconds=100))
    result = pick_service.commit_pick(db_conn, d.event.id, d.players["Ava"].id, BySlot(1), d.admin, now=T0)
    assert result.event.current_pick == 2
    assert result.event.is_paused is True
    assert result.event.clock_ends_at is None
    assert result.event.pause_remaining_secs is None
    # Next claimant gets a full clock on resume
    resume_at = T0 + timedelta(minutes=3)
    resumed = svc.set_paused(db_conn, d.event.id, False, now=resume_at)
    assert resumed.clock_ends_at == resume_at + timedelta(seconds=120)


# ---------- Guards ----------


def test_not_live_rejected(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES, start=False)
    with pytest.raises(DraftNotLiveError):
        pick_service.commit_pick(db_conn, d.event.id, d.players["Ava"].id, BySlot(1), d.admin, now=T0)


def test_coach_on_the_clock_can_pick(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES)
    result = pick_service.commit_pick(db_conn, d.event.id, d.players["Ava"].id, BySlot(1), d.coach(0), now=T0)
    assert result.pick.claimant_id == d.claimants[0].id
    result = pick_service.commit_pick(
        db_conn, d.event.id, d.players["Ben"].id, ByClaimantRound(d.claimants[1].id, 1), d.coach(1), now=T0,
    )
    assert result.event.current_pick == 3


def test_coach_not_on_the_clock_rejected(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES)
    with pytest.raises(NotYourTurnError):
        pick_service.commit_pick(db_conn, d.event.id, d.players["Ava"].id, BySlot(1), d.coach(1), now=T0)


def test_coach_cannot_pick_future_own_slot(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES)
    # claimant 0 also owns overall 6, but only overall 1 is on the clock
    with pytest.raises(NotYourTurnError):
        pick_service.commit_pick(db_conn, d.event.id, d.players["Ava"].id, BySlot(6), d.coach(0), now=T0)


def test_coach_blocked_while_paused(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES)
    DraftService().set_paused(db_conn, d.event.id, True, now=T0)
    with pytest.raises(DraftPausedError):
        pick_service.commit_pick(db_conn, d.event.id, d.players["Ava"].id, BySlot(1), d.coach(0), now=T0)


def test_board_cannot_pick(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES)
    board = Actor("board-user", Role.BOARD)
    with pytest.raises(AuthorizationError):
        pick_service.commit_pick(db_conn, d.event.id, d.players["Ava"].id, BySlot(1), board, now=T0)


def test_ineligible_player_rejected(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES)
    benched = DraftService().register_player(db_conn, d.event.id, "Gus", is_draft_eligible=False)
    with pytest.raises(IneligiblePlayerError):
        pick_service.commit_pick(db_conn, d.event.id, benched.id, BySlot(1), d.admin, now=T0)


def test_unknown_player_rejected(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES)
    with pytest.raises(NotFoundError):
        pick_service.commit_pick(db_conn, d.event.id, "ghost", BySlot(1), d.admin, now=T0)


def test_unknown_event_rejected(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES)
    with pytest.raises(NotFoundError):
        pick_service.commit_pick(db_conn, "missing", d.players["Ava"].id, BySlot(1), d.admin, now=T0)
    with pytest.raises(NotFoundError):
        pick_service.list_picks(db_conn, "missing")


def test_event_deleted_mid_commit_is_not_found(db_conn, seed_draft, pick_service, monkeypatch):
    d = seed_draft(player_names=NAMES)
    repo = pick_service._event_repo
    real_get = repo.get
    calls = []

    def get_once(conn, event_id):
        calls.append(event_id)
        return real_get(conn, event_id) if len(calls) == 1 else None

    monkeypatch.setattr(repo, "get", get_once)
    with pytest.raises(NotFoundError):
        pick_service.commit_pick(db_conn, d.event.id, d.players["Ava"].id, BySlot(1), d.admin, now=T0)
    assert PickRepository().list_by_event(db_conn, d.event.id) == []


def test_already_drafted_player_rejected(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES)
    pick_service.commit_pick(db_conn, d.event.id, d.players["Ava"].id, BySlot(1), d.admin, now=T0)
    with pytest.raises(PlayerAlreadyDraftedError):
        pick_service.commit_pick(db_conn, d.event.id, d.players["Ava"].id, BySlot(2), d.admin, now=T0)


def test_filled_slot_rejected(db_conn, seed_draft, pick_service):
    d = seed_draft(player_names=NAMES)
    pick_service.commit_pick(db_conn, d.event.id, d.players["Ava"].id, BySlot(1), d.admin, now=T0)
    with pytest.raises(SlotFilledError):
        pick_service.commit_pick(db_conn, d.event.id, d.players["Ben"].id, BySlot(1), d.admin, now=T0)
    assert PlayerRepository().get(db_conn, d.players["Ben"].id).is_drafted is False


# ---------- Allocation failure ----------


def test_allocation_failure_rolls_back_primary_pick(db_conn, seed_draft, pick_service, monkeypatch):
    d = seed_draft(player_names=NAMES)
    monkeypatch.setattr(config, "NEXT_SLOT_SCAN_ROUNDS", 0)
    with pytest.raises(AllocationError):
        pick_service.commit_pick(db_conn, d.event.id, d.players["Ava"].id, BySlot(1), d.admin, now=T0)
    assert PickRepository().list_by_event(db_conn, d.event.id) == []
    assert PlayerRepository().get(db_conn, d.players["Ava"].id).is_drafted is False
    assert DraftService().get_event(db_conn, d.event.id).current_pick == 1


# ---------- Concurrency ----------


def _race(db_path, event_id, jobs):
    """Run each (player_id, overall) commit on its own thread and connection; collect outcomes."""
    outcomes: list = []
    lock = threading.Lock()
    barrier = threading.Barrier(len(jobs))

    def worker(player_id, overall, actor):
        conn = get_connection(db_path)
        try:
            barrier.wait()
            try:
                PickService().commit_pick(conn, event_id, player_id, BySlot(overall), actor, now=T0)
                outcome = "ok"
            except (SlotFilledError, PlayerAlreadyDraftedError) as e:
                outcome = e
        finally:
            conn.close()
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker, args=job) for job in jobs]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return outcomes


def test_concurrent_commits_to_one_slot_exactly_one_wins(db_conn, db_path, seed_draft):
    d = seed_draft(player_names=NAMES)
    jobs = [(d.players[name].id, 1, d.admin) for name in NAMES]
    outcomes = _race(db_path, d.event.id, jobs)
    assert outcomes.count("ok") == 1
    assert all(isinstance(o, SlotFilledError) for o in outcomes if o != "ok")
    picks = PickRepository().list_by_event(db_conn, d.event.id)
    assert len(picks) == 1
    drafted = [p for p in PlayerRepository().list_by_event(db_conn, d.event.id) if p.is_drafted]
    assert [p.id for p in drafted] == [picks[0].player_id]


def test_concurrent_commits_of_one_player_exactly_one_wins(db_conn, db_path, seed_draft):
    d = seed_draft(player_names=NAMES)
    jobs = [(d.players["Ava"].id, overall, d.admin) for overall in range(1, 6)]
    outcomes = _race(db_path, d.event.id, jobs)
    assert outcomes.count("ok") == 1
    assert all(isinstance(o, PlayerAlreadyDraftedError) for o in outcomes if o != "ok")
    assert len(PickRepository().list_by_event(db_conn, d.event.id)) == 1
