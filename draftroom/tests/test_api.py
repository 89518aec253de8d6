"""
API integration tests.
Uses TestClient to avoid starting a server.
"""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from draftroom.api import app
from draftroom.auth import hash_password
from draftroom.models import Role
from draftroom.persistence import UserRepository, get_connection


@pytest.fixture
def client(db_path):
    return TestClient(app)


@pytest.fixture
def admin_token(client, db_path):
    conn = get_connection(db_path)
    try:
        UserRepository().create(conn, "commish", hash_password("secret-pw"), role=Role.ADMIN)
    finally:
        conn.close()
    resp = client.post("/login", json={"username": "commish", "password": "secret-pw"})
    assert resp.status_code == 200
    return resp.json()["token"]


def _h(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _signup(client, username: str) -> dict:
    resp = client.post("/signup", json={"username": username, "password": "hunter22"})
    assert resp.status_code == 200
    return resp.json()


@pytest.fixture
def live_draft(client, admin_token):
    """Two coached claimants, four players, draft started."""
    event = client.post("/events", json={"name": "Spring", "pick_clock_seconds": 90}, headers=_h(admin_token)).json()
    eid = event["id"]
    coaches = [_signup(client, f"coach{i}") for i in range(2)]
    claimants = []
    for i, coach in enumerate(coaches):
        resp = client.post(
            f"/events/{eid}/claimants",
            json={"name": f"Team {i}", "owner_user_id": coach["user_id"]},
            headers=_h(admin_token),
        )
        assert resp.status_code == 200
        claimants.append(resp.json())
    players = {}
    for name in ("Ava", "Ben", "Cal", "Dee"):
        resp = client.post(f"/events/{eid}/players", json={"full_name": name}, headers=_h(admin_token))
        assert resp.status_code == 200
        players[name] = resp.json()["id"]
    resp = client.post(f"/events/{eid}/start", headers=_h(admin_token))
    assert resp.status_code == 200
    assert resp.json()["phase"] == "LIVE"
    return {"id": eid, "coaches": coaches, "claimants": claimants, "players": players}


# ---------- Accounts ----------


def test_signup_and_login(client, db_path):
    data = _signup(client, "newcoach")
    assert data["role"] == "COACH"
    assert data["token"]
    resp = client.post("/signup", json={"username": "newcoach", "password": "hunter22"})
    assert resp.status_code == 400
    resp = client.post("/login", json={"username": "newcoach", "password": "wrong-pw"})
    assert resp.status_code == 401
    resp = client.post("/login", json={"username": "newcoach", "password": "hunter22"})
    assert resp.status_code == 200


def test_admin_routes_require_admin(client, admin_token):
    resp = client.post("/events", json={"name": "Nope"})
    assert resp.status_code == 401
    coach = _signup(client, "coachy")
    resp = client.post("/events", json={"name": "Nope"}, headers=_h(coach["token"]))
    assert resp.status_code == 403
    resp = client.post("/events", json={"name": "Yes"}, headers=_h("not-a-token"))
    assert resp.status_code == 401


def test_admin_sets_role(client, admin_token):
    coach = _signup(client, "boardie")
    resp = client.post(f"/users/{coach['user_id']}/role", json={"role": "board"}, headers=_h(admin_token))
    assert resp.status_code == 200
    assert resp.json()["role"] == "BOARD"
    resp = client.post(f"/users/{coach['user_id']}/role", json={"role": "mascot"}, headers=_h(admin_token))
    assert resp.status_code == 400


# ---------- Draft flow ----------


def test_state_and_current_event(client, live_draft):
    resp = client.get(f"/events/{live_draft['id']}/state")
    assert resp.status_code == 200
    state = resp.json()
    assert state["on_clock"]["id"] == live_draft["claimants"][0]["id"]
    assert state["seconds_remaining"] <= 90
    assert state["counts"] == {"drafted": 0, "undrafted": 4}
    resp = client.get("/events/current")
    assert resp.status_code == 200
    assert resp.json()["event"]["id"] == live_draft["id"]
    assert client.get("/events/missing/state").status_code == 404


def test_current_event_prefers_live_over_newer_setup(client, admin_token, live_draft):
    newer = client.post("/events", json={"name": "Fall"}, headers=_h(admin_token)).json()
    assert newer["phase"] == "SETUP"
    resp = client.get("/events/current")
    assert resp.status_code == 200
    assert resp.json()["event"]["id"] == live_draft["id"]


def test_coach_pick_flow(client, live_draft):
    eid = live_draft["id"]
    coach0, coach1 = (c["token"] for c in live_draft["coaches"])
    ava = live_draft["players"]["Ava"]

    resp = client.post(f"/events/{eid}/picks", json={"player_id": ava, "overall_number": 1}, headers=_h(coach1))
    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "not_your_turn"

    resp = client.post(f"/events/{eid}/picks", json={"player_id": ava, "overall_number": 1}, headers=_h(coach0))
    assert resp.status_code == 200
    data = resp.json()
    assert data["overall_number"] == 1
    assert data["pick_id"]
    assert data["sibling_pick"] is None
    assert data["event"]["current_pick"] == 2

    resp = client.post(
        f"/events/{eid}/picks",
        json={"player_id": ava, "claimant_id": live_draft["claimants"][1]["id"], "round": 1},
        headers=_h(coach1),
    )
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "player_already_drafted"

    resp = client.get(f"/events/{eid}/picks")
    assert [p["player_id"] for p in resp.json()["picks"]] == [ava]
    resp = client.get(f"/events/{eid}/players", params={"available": True})
    assert len(resp.json()["players"]) == 3


def test_pick_requires_target(client, live_draft):
    coach0 = live_draft["coaches"][0]["token"]
    resp = client.post(
        f"/events/{live_draft['id']}/picks",
        json={"player_id": live_draft["players"]["Ava"]},
        headers=_h(coach0),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "validation_error"


def test_pick_target_out_of_range_is_field_error(client, admin_token, live_draft):
    eid = live_draft["id"]
    ava = live_draft["players"]["Ava"]
    resp = client.post(
        f"/events/{eid}/picks", json={"player_id": ava, "overall_number": 10**20}, headers=_h(admin_token),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"]["field"] == "overall_number"
    resp = client.post(
        f"/events/{eid}/picks",
        json={"player_id": ava, "claimant_id": live_draft["claimants"][0]["id"], "round": 10**20},
        headers=_h(admin_token),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"]["field"] == "round"
    assert client.get(f"/events/{eid}/picks").json()["picks"] == []


def test_paused_draft_blocks_coach(client, admin_token, live_draft):
    eid = live_draft["id"]
    resp = client.post(f"/events/{eid}/pause", json={"paused": True}, headers=_h(admin_token))
    assert resp.json()["is_paused"] is True
    resp = client.post(
        f"/events/{eid}/picks",
        json={"player_id": live_draft["players"]["Ava"], "overall_number": 1},
        headers=_h(live_draft["coaches"][0]["token"]),
    )
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "draft_paused"
    resp = client.post(f"/events/{eid}/pause", json={"paused": False}, headers=_h(admin_token))
    assert resp.json()["is_paused"] is False


def test_sibling_costs_and_groups(client, admin_token):
    eid = client.post("/events", json={"name": "Sibs"}, headers=_h(admin_token)).json()["id"]
    ids = []
    for name in ("Ann", "Bo"):
        resp = client.post(
            f"/events/{eid}/players",
            json={"full_name": name, "primary_email": "fam@x.org", "league_choice": "U10"},
            headers=_h(admin_token),
        )
        ids.append(resp.json()["id"])
    groups = client.get(f"/events/{eid}/sibling-groups", headers=_h(admin_token)).json()["groups"]
    assert len(groups) == 1
    key = groups[0]["group_key"]
    resp = client.post(
        f"/events/{eid}/sibling-costs",
        json={"player_id": ids[0], "group_key": key, "draft_cost": 3},
        headers=_h(admin_token),
    )
    assert resp.status_code == 200
    assert resp.json()["link"]["draft_cost"] == 3
    resp = client.post(
        f"/events/{eid}/sibling-costs",
        json={"player_id": ids[1], "group_key": key, "draft_cost": 11},
        headers=_h(admin_token),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"]["field"] == "draft_cost"


# ---------- Trades ----------


def _fill(client, admin_token, live_draft):
    """Ava@1 (r1, team 0), Ben@2 (r1, team 1), Cal@3 (r2, team 1), Dee@4 (r2, team 0)."""
    eid = live_draft["id"]
    for overall, name in enumerate(("Ava", "Ben", "Cal", "Dee"), start=1):
        resp = client.post(
            f"/events/{eid}/picks",
            json={"player_id": live_draft["players"][name], "overall_number": overall},
            headers=_h(admin_token),
        )
        assert resp.status_code == 200


def test_trade_propose_and_accept(client, admin_token, live_draft):
    _fill(client, admin_token, live_draft)
    eid = live_draft["id"]
    p = live_draft["players"]
    coach0, coach1 = (c["token"] for c in live_draft["coaches"])

    resp = client.post(
        f"/events/{eid}/trades",
        json={"partner_claimant_id": live_draft["claimants"][1]["id"], "give_ids": [p["Dee"]], "receive_ids": [p["Cal"]]},
        headers=_h(coach0),
    )
    assert resp.status_code == 200
    trade_id = resp.json()["trade_id"]
    assert resp.json()["round_delta"] == 0.0

    inbox = client.get(f"/events/{eid}/trades", headers=_h(coach1)).json()["trades"]
    assert [t["id"] for t in inbox] == [trade_id]

    resp = client.post(f"/trades/{trade_id}/respond", json={"action": "accept"}, headers=_h(coach1))
    assert resp.status_code == 200
    assert resp.json()["ok"] is True

    roster = client.get(
        f"/events/{eid}/claimants/{live_draft['claimants'][0]['id']}/roster", headers=_h(coach0),
    ).json()["players"]
    assert {r["full_name"] for r in roster} == {"Ava", "Cal"}

    resp = client.post(f"/trades/{trade_id}/respond", json={"action": "reject"}, headers=_h(coach1))
    assert resp.status_code == 409


def test_trade_bad_action_and_auth(client, admin_token, live_draft):
    _fill(client, admin_token, live_draft)
    eid = live_draft["id"]
    p = live_draft["players"]
    coach0 = live_draft["coaches"][0]["token"]
    trade_id = client.post(
        f"/events/{eid}/trades",
        json={"partner_claimant_id": live_draft["claimants"][1]["id"], "give_ids": [p["Ava"]], "receive_ids": [p["Ben"]]},
        headers=_h(coach0),
    ).json()["trade_id"]
    resp = client.post(f"/trades/{trade_id}/respond", json={"action": "shrug"}, headers=_h(coach0))
    assert resp.status_code == 400
    resp = client.post(f"/trades/{trade_id}/respond", json={"action": "ACCEPT"}, headers=_h(coach0))
    assert resp.status_code == 403
    resp = client.post(f"/trades/{trade_id}/respond", json={"action": "ACCEPT"})
    assert resp.status_code == 401


def test_unfair_trade_reports_round_averages(client, admin_token, live_draft):
    _fill(client, admin_token, live_draft)
    eid = live_draft["id"]
    eve = client.post(f"/events/{eid}/players", json={"full_name": "Eve"}, headers=_h(admin_token)).json()["id"]
    # Two claimants: overall 10 is round 5 for team 1
    resp = client.post(f"/events/{eid}/picks", json={"player_id": eve, "overall_number": 10}, headers=_h(admin_token))
    assert resp.json()["pick"]["round"] == 5

    resp = client.post(
        f"/events/{eid}/trades",
        json={
            "partner_claimant_id": live_draft["claimants"][1]["id"],
            "give_ids": [live_draft["players"]["Ava"]],
            "receive_ids": [eve],
        },
        headers=_h(live_draft["coaches"][0]["token"]),
    )
    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["code"] == "trade_unfair"
    assert (detail["from_avg_round"], detail["to_avg_round"], detail["round_delta"]) == (1.0, 5.0, 4.0)


# ---------- Boards and rosters ----------


def test_coach_finds_own_claimant(client, admin_token, live_draft):
    eid = live_draft["id"]
    coach1 = live_draft["coaches"][1]["token"]
    resp = client.post(
        f"/events/{eid}/picks", json={"player_id": live_draft["players"]["Ben"], "overall_number": 2},
        headers=_h(admin_token),
    )
    assert resp.status_code == 200

    resp = client.get(f"/events/{eid}/claimants/me", headers=_h(coach1))
    assert resp.status_code == 200
    data = resp.json()
    assert data["claimant"]["id"] == live_draft["claimants"][1]["id"]
    assert [(p["full_name"], p["round"]) for p in data["players"]] == [("Ben", 1)]

    resp = client.get(f"/events/{eid}/claimants/me", headers=_h(admin_token))
    assert resp.json() == {"claimant": None, "players": []}
    assert client.get(f"/events/{eid}/claimants/me").status_code == 401


def test_board_round_trip(client, admin_token, live_draft):
    eid = live_draft["id"]
    p = live_draft["players"]
    cid0, cid1 = (c["id"] for c in live_draft["claimants"])
    coach0 = live_draft["coaches"][0]["token"]

    resp = client.get(f"/events/{eid}/claimants/{cid0}/board", headers=_h(coach0))
    assert resp.status_code == 200
    assert resp.json()["entries"] == []

    resp = client.put(
        f"/events/{eid}/claimants/{cid0}/board",
        json={"entries": [{"player_id": p["Dee"], "slot": 3}, {"player_id": "ghost"}, {"player_id": p["Ava"]}]},
        headers=_h(coach0),
    )
    assert resp.status_code == 200
    assert resp.json()["ok"] is True
    assert [e["player_id"] for e in resp.json()["entries"]] == [p["Dee"], p["Ava"]]

    entries = client.get(f"/events/{eid}/claimants/{cid0}/board", headers=_h(coach0)).json()["entries"]
    assert [e["player_id"] for e in entries] == [p["Dee"], p["Ava"]]
    assert entries[0]["slot"] == 3

    resp = client.get(f"/events/{eid}/claimants/{cid1}/board", headers=_h(coach0))
    assert resp.status_code == 403
    resp = client.get(f"/events/{eid}/claimants/{cid0}/board", headers=_h(admin_token))
    assert len(resp.json()["entries"]) == 2
    resp = client.get(f"/events/{eid}/claimants/ghost/board", headers=_h(admin_token))
    assert resp.status_code == 404


def test_full_rosters_admin_view(client, admin_token, live_draft):
    _fill(client, admin_token, live_draft)
    eid = live_draft["id"]
    resp = client.get(f"/events/{eid}/rosters", headers=_h(live_draft["coaches"][0]["token"]))
    assert resp.status_code == 403
    resp = client.get(f"/events/{eid}/rosters", headers=_h(admin_token))
    assert resp.status_code == 200
    claimants = resp.json()["claimants"]
    assert [c["claimant"]["id"] for c in claimants] == [c["id"] for c in live_draft["claimants"]]
    assert sum(len(c["players"]) for c in claimants) == 4
    assert client.get("/events/missing/rosters", headers=_h(admin_token)).status_code == 404
