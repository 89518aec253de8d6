"""
Shared fixtures: a temporary SQLite database per test and a small draft builder.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

import pytest

from draftroom.models import Actor, Claimant, DraftEvent, Player, Role, User
from draftroom.persistence import UserRepository
from draftroom.persistence.db import get_connection, init_db, set_db_path
from draftroom.services.draft_service import DraftService

T0 = datetime(2026, 3, 14, 19, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "draft_test.db"
    set_db_path(path)
    init_db(db_path=path)
    return path


@pytest.fixture
def db_conn(db_path):
    conn = get_connection(db_path)
    try:
        yield conn
    finally:
        conn.close()


@dataclass
class Draft:
    """A seeded event: claimants in draft order, one coach per claimant, an admin."""
    event: DraftEvent
    claimants: list[Claimant]
    coaches: list[User]
    admin: Actor
    players: dict[str, Player] = field(default_factory=dict)

    def coach(self, i: int) -> Actor:
        return Actor(self.coaches[i].id, Role.COACH)


def _seed(conn, n_claimants: int = 3, player_names: tuple[str, ...] = (), start: bool = True,
          clock: int = 120) -> Draft:
    users = UserRepository()
    svc = DraftService()
    admin = users.create(conn, "admin", "x", role=Role.ADMIN)
    event = svc.create_event(conn, "Spring Draft", pick_clock_seconds=clock)
    coaches, claimants = [], []
    for i in range(n_claimants):
        coach = users.create(conn, f"coach{i}", "x", role=Role.COACH)
        coaches.append(coach)
        claimants.append(svc.register_claimant(conn, event.id, f"Team {i}", owner_user_id=coach.id))
    players = {name: svc.register_player(conn, event.id, name) for name in player_names}
    if start:
        event = svc.start(conn, event.id, now=T0)
    return Draft(event, claimants, coaches, Actor(admin.id, Role.ADMIN), players)


@pytest.fixture
def seed_draft(db_conn):
    """Factory: seed_draft(n_claimants, player_names, start=True) -> Draft."""
    def _factory(n_claimants: int = 3, player_names: tuple[str, ...] = (), start: bool = True, clock: int = 120):
        return _seed(db_conn, n_claimants, player_names, start, clock)
    return _factory
