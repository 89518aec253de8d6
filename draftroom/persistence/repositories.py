"""
Repository interfaces for draft data.
No business logic; only read/write operations.
Repositories never commit: single statements autocommit, multi-statement
writes are grouped by the caller with persistence.db.transaction.
"""
from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable

from draftroom.models import (
    BoardEntry,
    Claimant,
    DraftBoard,
    DraftEvent,
    DraftPhase,
    Pick,
    Player,
    Role,
    SiblingCostLink,
    Trade,
    TradeItem,
    TradeSide,
    TradeStatus,
    User,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(s: str | None) -> datetime:
    if s is None:
        raise ValueError("expected datetime string")
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _parse_optional_datetime(s: str | None) -> datetime | None:
    return _parse_datetime(s) if s else None


def _placeholders(values: Iterable[Any]) -> str:
    return ", ".join("?" for _ in values)


# ---------- UserRepository ----------


class UserRepository:
    """CRUD for users. Passwords arrive already hashed."""

    def create(
        self,
        conn: sqlite3.Connection,
        username: str,
        password_hash: str,
        role: Role = Role.COACH,
        name: str | None = None,
        id: str | None = None,
    ) -> User:
        uid = id or str(uuid.uuid4())
        now = _now()
        display_name = name or username
        conn.execute(
            "INSERT INTO users (id, username, password_hash, name, role, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (uid, username, password_hash, display_name, role.value, now.isoformat()),
        )
        return User(
            id=uid, username=username, name=display_name, role=role,
            created_at=now, password_hash=password_hash,
        )

    def get(self, conn: sqlite3.Connection, user_id: str) -> User | None:
        row = conn.execute(
            "SELECT id, username, password_hash, name, role, created_at FROM users WHERE id = ?",
            (user_id,),
        ).fetchone()
        return self._from_row(row) if row else None

    def get_by_username(self, conn: sqlite3.Connection, username: str) -> User | None:
        row = conn.execute(
            "SELECT id, username, password_hash, name, role, created_at FROM users WHERE username = ?",
            (username,),
        ).fetchone()
        return self._from_row(row) if row else None

    def update_role(self, conn: sqlite3.Connection, user_id: str, role: Role) -> None:
        conn.execute("UPDATE users SET role = ? WHERE id = ?", (role.value, user_id))

    @staticmethod
    def _from_row(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            username=row["username"],
            name=row["name"],
            role=Role(row["role"]),
            created_at=_parse_datetime(row["created_at"]),
            password_hash=row["password_hash"],
        )


# ---------- DraftEventRepository ----------

_EVENT_COLS = (
    "id, name, phase, current_pick, pick_clock_seconds, is_paused, "
    "clock_ends_at, pause_remaining_secs, created_at, updated_at"
)

# Columns update() may touch; updated_at is always refreshed.
_EVENT_MUTABLE = {
    "name",
    "phase",
    "current_pick",
    "pick_clock_seconds",
    "is_paused",
    "clock_ends_at",
    "pause_remaining_secs",
}


def _to_db_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (DraftPhase, TradeStatus, TradeSide, Role)):
        return value.value
    return value


class DraftEventRepository:
    """CRUD for draft events. No business logic."""

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        pick_clock_seconds: int,
        id: str | None = None,
    ) -> DraftEvent:
        eid = id or str(uuid.uuid4())
        now = _now()
        conn.execute(
            f"INSERT INTO draft_events ({_EVENT_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (eid, name, DraftPhase.SETUP.value, 1, pick_clock_seconds, 1, None, None,
             now.isoformat(), now.isoformat()),
        )
        return DraftEvent(
            id=eid, name=name, phase=DraftPhase.SETUP, current_pick=1,
            pick_clock_seconds=pick_clock_seconds, is_paused=True,
            created_at=now, updated_at=now,
        )

    def get(self, conn: sqlite3.Connection, event_id: str) -> DraftEvent | None:
        row = conn.execute(
            f"SELECT {_EVENT_COLS} FROM draft_events WHERE id = ?", (event_id,)
        ).fetchone()
        return self._from_row(row) if row else None

    def get_current(self, conn: sqlite3.Connection) -> DraftEvent | None:
        """Most recently updated LIVE event, else most recently updated event overall."""
        row = conn.execute(
            f"SELECT {_EVENT_COLS} FROM draft_events WHERE phase = ? ORDER BY updated_at DESC LIMIT 1",
            (DraftPhase.LIVE.value,),
        ).fetchone()
        if row is None:
            row = conn.execute(
                f"SELECT {_EVENT_COLS} FROM draft_events ORDER BY updated_at DESC LIMIT 1"
            ).fetchone()
        return self._from_row(row) if row else None

    def update(self, conn: sqlite3.Connection, event_id: str, **changes: Any) -> None:
        unknown = set(changes) - _EVENT_MUTABLE
        if unknown:
            raise ValueError(f"Unknown draft_events columns: {sorted(unknown)}")
        cols = list(changes)
        assignments = ", ".join(f"{c} = ?" for c in cols + ["updated_at"])
        args = [_to_db_value(changes[c]) for c in cols] + [_now().isoformat(), event_id]
        conn.execute(f"UPDATE draft_events SET {assignments} WHERE id = ?", args)

    @staticmethod
    def _from_row(row: sqlite3.Row) -> DraftEvent:
        return DraftEvent(
            id=row["id"],
            name=row["name"],
            phase=DraftPhase(row["phase"]),
            current_pick=row["current_pick"],
            pick_clock_seconds=row["pick_clock_seconds"],
            is_paused=bool(row["is_paused"]),
            clock_ends_at=_parse_optional_datetime(row["clock_ends_at"]),
            pause_remaining_secs=row["pause_remaining_secs"],
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )


# ---------- ClaimantRepository ----------


class ClaimantRepository:
    """CRUD for claimants (teams). Ordered by draft_order everywhere."""

    def create(
        self,
        conn: sqlite3.Connection,
        draft_event_id: str,
        name: str,
        order: int,
        owner_user_id: str | None = None,
        id: str | None = None,
    ) -> Claimant:
        cid = id or str(uuid.uuid4())
        conn.execute(
            "INSERT INTO claimants (id, draft_event_id, name, draft_order, owner_user_id) VALUES (?, ?, ?, ?, ?)",
            (cid, draft_event_id, name, order, owner_user_id),
        )
        return Claimant(id=cid, draft_event_id=draft_event_id, name=name, order=order, owner_user_id=owner_user_id)

    def get(self, conn: sqlite3.Connection, claimant_id: str) -> Claimant | None:
        row = conn.execute(
            "SELECT id, draft_event_id, name, draft_order, owner_user_id FROM claimants WHERE id = ?",
            (claimant_id,),
        ).fetchone()
        return self._from_row(row) if row else None

    def get_by_owner(self, conn: sqlite3.Connection, draft_event_id: str, owner_user_id: str) -> Claimant | None:
        row = conn.execute(
            "SELECT id, draft_event_id, name, draft_order, owner_user_id FROM claimants "
            "WHERE draft_event_id = ? AND owner_user_id = ? ORDER BY draft_order LIMIT 1",
            (draft_event_id, owner_user_id),
        ).fetchone()
        return self._from_row(row) if row else None

    def list_by_event(self, conn: sqlite3.Connection, draft_event_id: str) -> list[Claimant]:
        rows = conn.execute(
            "SELECT id, draft_event_id, name, draft_order, owner_user_id FROM claimants "
            "WHERE draft_event_id = ? ORDER BY draft_order",
            (draft_event_id,),
        ).fetchall()
        return [self._from_row(r) for r in rows]

    def shift_orders(self, conn: sqlite3.Connection, draft_event_id: str, offset: int) -> None:
        """Move every order out of the way so a reorder never trips the unique index."""
        conn.execute(
            "UPDATE claimants SET draft_order = draft_order + ? WHERE draft_event_id = ?",
            (offset, draft_event_id),
        )

    def update_order(self, conn: sqlite3.Connection, claimant_id: str, order: int) -> None:
        conn.execute("UPDATE claimants SET draft_order = ? WHERE id = ?", (order, claimant_id))

    def delete_by_event(self, conn: sqlite3.Connection, draft_event_id: str) -> None:
        conn.execute("DELETE FROM claimants WHERE draft_event_id = ?", (draft_event_id,))

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Claimant:
        return Claimant(
            id=row["id"],
            draft_event_id=row["draft_event_id"],
            name=row["name"],
            order=row["draft_order"],
            owner_user_id=row["owner_user_id"],
        )


# ---------- PlayerRepository ----------

_PLAYER_COLS = (
    "id, draft_event_id, full_name, is_draft_eligible, is_drafted, drafted_claimant_id, drafted_at, "
    "guardian_name, primary_email, primary_phone, league_choice"
)


class PlayerRepository:
    """CRUD for the player pool. Drafted-flag writes are compare-and-set."""

    def create(
        self,
        conn: sqlite3.Connection,
        draft_event_id: str,
        full_name: str,
        is_draft_eligible: bool = True,
        guardian_name: str | None = None,
        primary_email: str | None = None,
        primary_phone: str | None = None,
        league_choice: str | None = None,
        id: str | None = None,
    ) -> Player:
        pid = id or str(uuid.uuid4())
        conn.execute(
            f"INSERT INTO players ({_PLAYER_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (pid, draft_event_id, full_name, int(is_draft_eligible), 0, None, None,
             guardian_name, primary_email, primary_phone, league_choice),
        )
        return Player(
            id=pid, draft_event_id=draft_event_id, full_name=full_name,
            is_draft_eligible=is_draft_eligible, guardian_name=guardian_name,
            primary_email=primary_email, primary_phone=primary_phone, league_choice=league_choice,
        )

    def get(self, conn: sqlite3.Connection, player_id: str) -> Player | None:
        row = conn.execute(f"SELECT {_PLAYER_COLS} FROM players WHERE id = ?", (player_id,)).fetchone()
        return self._from_row(row) if row else None

    def get_many(self, conn: sqlite3.Connection, player_ids: list[str]) -> dict[str, Player]:
        if not player_ids:
            return {}
        rows = conn.execute(
            f"SELECT {_PLAYER_COLS} FROM players WHERE id IN ({_placeholders(player_ids)})",
            tuple(player_ids),
        ).fetchall()
        return {r["id"]: self._from_row(r) for r in rows}

    def list_by_event(
        self, conn: sqlite3.Connection, draft_event_id: str, available_only: bool = False
    ) -> list[Player]:
        sql = f"SELECT {_PLAYER_COLS} FROM players WHERE draft_event_id = ?"
        if available_only:
            sql += " AND is_draft_eligible = 1 AND is_drafted = 0"
        rows = conn.execute(sql + " ORDER BY full_name", (draft_event_id,)).fetchall()
        return [self._from_row(r) for r in rows]

    def list_roster(self, conn: sqlite3.Connection, draft_event_id: str, claimant_id: str) -> list[Player]:
        rows = conn.execute(
            f"SELECT {_PLAYER_COLS} FROM players "
            "WHERE draft_event_id = ? AND drafted_claimant_id = ? AND is_drafted = 1 ORDER BY full_name",
            (draft_event_id, claimant_id),
        ).fetchall()
        return [self._from_row(r) for r in rows]

    def list_drafted(self, conn: sqlite3.Connection, draft_event_id: str) -> list[Player]:
        """Every drafted player of the event in the order they were drafted."""
        rows = conn.execute(
            f"SELECT {_PLAYER_COLS} FROM players "
            "WHERE draft_event_id = ? AND is_drafted = 1 ORDER BY drafted_at, full_name",
            (draft_event_id,),
        ).fetchall()
        return [self._from_row(r) for r in rows]

    def mark_drafted(
        self, conn: sqlite3.Connection, player_id: str, claimant_id: str, drafted_at: datetime
    ) -> bool:
        """Flip is_drafted only if still undrafted. Returns False when someone got there first."""
        cur = conn.execute(
            "UPDATE players SET is_drafted = 1, drafted_claimant_id = ?, drafted_at = ? "
            "WHERE id = ? AND is_drafted = 0",
            (claimant_id, drafted_at.isoformat(), player_id),
        )
        return cur.rowcount == 1

    def reassign(
        self, conn: sqlite3.Connection, player_id: str, from_claimant_id: str, to_claimant_id: str
    ) -> bool:
        """Move a drafted player between rosters only if still owned by from_claimant_id."""
        cur = conn.execute(
            "UPDATE players SET drafted_claimant_id = ? "
            "WHERE id = ? AND drafted_claimant_id = ? AND is_drafted = 1",
            (to_claimant_id, player_id, from_claimant_id),
        )
        return cur.rowcount == 1

    def count_eligible(self, conn: sqlite3.Connection, draft_event_id: str) -> dict[str, int]:
        row = conn.execute(
            "SELECT SUM(CASE WHEN is_drafted = 1 THEN 1 ELSE 0 END) AS drafted, "
            "SUM(CASE WHEN is_drafted = 0 THEN 1 ELSE 0 END) AS undrafted "
            "FROM players WHERE draft_event_id = ? AND is_draft_eligible = 1",
            (draft_event_id,),
        ).fetchone()
        return {"drafted": row["drafted"] or 0, "undrafted": row["undrafted"] or 0}

    def delete_by_event(self, conn: sqlite3.Connection, draft_event_id: str) -> None:
        conn.execute("DELETE FROM players WHERE draft_event_id = ?", (draft_event_id,))

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Player:
        return Player(
            id=row["id"],
            draft_event_id=row["draft_event_id"],
            full_name=row["full_name"],
            is_draft_eligible=bool(row["is_draft_eligible"]),
            is_drafted=bool(row["is_drafted"]),
            drafted_claimant_id=row["drafted_claimant_id"],
            drafted_at=_parse_optional_datetime(row["drafted_at"]),
            guardian_name=row["guardian_name"],
            primary_email=row["primary_email"],
            primary_phone=row["primary_phone"],
            league_choice=row["league_choice"],
        )


# ---------- PickRepository ----------

_PICK_COLS = "id, draft_event_id, claimant_id, player_id, round, pick_in_round, overall_number, made_at, is_auto"


class PickRepository:
    """Insert/read committed picks. Inserts raise sqlite3.IntegrityError on a taken slot or player."""

    def create(
        self,
        conn: sqlite3.Connection,
        draft_event_id: str,
        claimant_id: str,
        player_id: str,
        round: int,
        pick_in_round: int,
        overall_number: int,
        made_at: datetime,
        is_auto: bool = False,
        id: str | None = None,
    ) -> Pick:
        pid = id or str(uuid.uuid4())
        conn.execute(
            f"INSERT INTO picks ({_PICK_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (pid, draft_event_id, claimant_id, player_id, round, pick_in_round, overall_number,
             made_at.isoformat(), int(is_auto)),
        )
        return Pick(
            id=pid, draft_event_id=draft_event_id, claimant_id=claimant_id, player_id=player_id,
            round=round, pick_in_round=pick_in_round, overall_number=overall_number,
            made_at=made_at, is_auto=is_auto,
        )

    def get_by_overall(self, conn: sqlite3.Connection, draft_event_id: str, overall_number: int) -> Pick | None:
        row = conn.execute(
            f"SELECT {_PICK_COLS} FROM picks WHERE draft_event_id = ? AND overall_number = ?",
            (draft_event_id, overall_number),
        ).fetchone()
        return self._from_row(row) if row else None

    def get_by_player(self, conn: sqlite3.Connection, draft_event_id: str, player_id: str) -> Pick | None:
        row = conn.execute(
            f"SELECT {_PICK_COLS} FROM picks WHERE draft_event_id = ? AND player_id = ?",
            (draft_event_id, player_id),
        ).fetchone()
        return self._from_row(row) if row else None

    def filled_overalls(self, conn: sqlite3.Connection, draft_event_id: str, start: int, stop: int) -> set[int]:
        """Committed overall numbers in [start, stop)."""
        rows = conn.execute(
            "SELECT overall_number FROM picks WHERE draft_event_id = ? AND overall_number >= ? AND overall_number < ?",
            (draft_event_id, start, stop),
        ).fetchall()
        return {r["overall_number"] for r in rows}

    def count_by_event(self, conn: sqlite3.Connection, draft_event_id: str) -> int:
        row = conn.execute("SELECT COUNT(*) AS n FROM picks WHERE draft_event_id = ?", (draft_event_id,)).fetchone()
        return row["n"]

    def list_by_event(self, conn: sqlite3.Connection, draft_event_id: str) -> list[Pick]:
        rows = conn.execute(
            f"SELECT {_PICK_COLS} FROM picks WHERE draft_event_id = ? ORDER BY overall_number, made_at",
            (draft_event_id,),
        ).fetchall()
        return [self._from_row(r) for r in rows]

    def list_recent(self, conn: sqlite3.Connection, draft_event_id: str, limit: int) -> list[Pick]:
        """Last `limit` picks by commit time (overall number breaks ties), oldest first."""
        rows = conn.execute(
            f"SELECT {_PICK_COLS} FROM picks WHERE draft_event_id = ? "
            "ORDER BY made_at DESC, overall_number DESC LIMIT ?",
            (draft_event_id, limit),
        ).fetchall()
        return [self._from_row(r) for r in reversed(rows)]

    def rounds_by_player(self, conn: sqlite3.Connection, draft_event_id: str, player_ids: list[str]) -> dict[str, int]:
        if not player_ids:
            return {}
        rows = conn.execute(
            f"SELECT player_id, round FROM picks WHERE draft_event_id = ? AND player_id IN ({_placeholders(player_ids)})",
            (draft_event_id, *player_ids),
        ).fetchall()
        return {r["player_id"]: r["round"] for r in rows}

    def delete_by_event(self, conn: sqlite3.Connection, draft_event_id: str) -> None:
        conn.execute("DELETE FROM picks WHERE draft_event_id = ?", (draft_event_id,))

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Pick:
        return Pick(
            id=row["id"],
            draft_event_id=row["draft_event_id"],
            claimant_id=row["claimant_id"],
            player_id=row["player_id"],
            round=row["round"],
            pick_in_round=row["pick_in_round"],
            overall_number=row["overall_number"],
            made_at=_parse_datetime(row["made_at"]),
            is_auto=bool(row["is_auto"]),
        )


# ---------- SiblingCostRepository ----------


class SiblingCostRepository:
    """Sibling group membership and draft cost per player. Read-only to the allocation path."""

    def upsert(
        self,
        conn: sqlite3.Connection,
        draft_event_id: str,
        player_id: str,
        group_key: str,
        draft_cost: int,
    ) -> SiblingCostLink:
        conn.execute(
            "INSERT INTO sibling_cost_links (draft_event_id, player_id, group_key, draft_cost) VALUES (?, ?, ?, ?) "
            "ON CONFLICT (draft_event_id, player_id) DO UPDATE SET group_key = excluded.group_key, "
            "draft_cost = excluded.draft_cost",
            (draft_event_id, player_id, group_key, draft_cost),
        )
        row = conn.execute(
            "SELECT id, draft_event_id, player_id, group_key, draft_cost FROM sibling_cost_links "
            "WHERE draft_event_id = ? AND player_id = ?",
            (draft_event_id, player_id),
        ).fetchone()
        return self._from_row(row)

    def get_for_player(self, conn: sqlite3.Connection, draft_event_id: str, player_id: str) -> SiblingCostLink | None:
        row = conn.execute(
            "SELECT id, draft_event_id, player_id, group_key, draft_cost FROM sibling_cost_links "
            "WHERE draft_event_id = ? AND player_id = ?",
            (draft_event_id, player_id),
        ).fetchone()
        return self._from_row(row) if row else None

    def list_available_in_group(
        self,
        conn: sqlite3.Connection,
        draft_event_id: str,
        group_key: str,
        exclude_player_id: str,
    ) -> list[SiblingCostLink]:
        """Links in the group whose players are still eligible and undrafted, in insertion order."""
        rows = conn.execute(
            "SELECT l.id, l.draft_event_id, l.player_id, l.group_key, l.draft_cost "
            "FROM sibling_cost_links l JOIN players p ON p.id = l.player_id "
            "WHERE l.draft_event_id = ? AND l.group_key = ? AND l.player_id != ? "
            "AND p.is_draft_eligible = 1 AND p.is_drafted = 0 "
            "ORDER BY l.id",
            (draft_event_id, group_key, exclude_player_id),
        ).fetchall()
        return [self._from_row(r) for r in rows]

    def list_by_event(self, conn: sqlite3.Connection, draft_event_id: str) -> list[SiblingCostLink]:
        rows = conn.execute(
            "SELECT id, draft_event_id, player_id, group_key, draft_cost FROM sibling_cost_links "
            "WHERE draft_event_id = ? ORDER BY group_key, id",
            (draft_event_id,),
        ).fetchall()
        return [self._from_row(r) for r in rows]

    def delete_by_event(self, conn: sqlite3.Connection, draft_event_id: str) -> None:
        conn.execute("DELETE FROM sibling_cost_links WHERE draft_event_id = ?", (draft_event_id,))

    @staticmethod
    def _from_row(row: sqlite3.Row) -> SiblingCostLink:
        return SiblingCostLink(
            id=row["id"],
            draft_event_id=row["draft_event_id"],
            player_id=row["player_id"],
            group_key=row["group_key"],
            draft_cost=row["draft_cost"],
        )


# ---------- TradeRepository ----------

_TRADE_COLS = (
    "id, draft_event_id, from_claimant_id, to_claimant_id, status, parent_trade_id, "
    "from_avg_round, to_avg_round, round_delta, message, created_by_user_id, "
    "responded_by_user_id, created_at, updated_at, executed_at"
)


class TradeRepository:
    """Trades with their items. Status changes are compare-and-set on the expected status."""

    def create(
        self,
        conn: sqlite3.Connection,
        draft_event_id: str,
        from_claimant_id: str,
        to_claimant_id: str,
        give_ids: list[str],
        receive_ids: list[str],
        from_avg_round: float | None,
        to_avg_round: float | None,
        round_delta: float | None,
        message: str | None = None,
        created_by_user_id: str | None = None,
        parent_trade_id: str | None = None,
        id: str | None = None,
    ) -> Trade:
        tid = id or str(uuid.uuid4())
        now = _now()
        conn.execute(
            f"INSERT INTO trades ({_TRADE_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (tid, draft_event_id, from_claimant_id, to_claimant_id, TradeStatus.PENDING.value,
             parent_trade_id, from_avg_round, to_avg_round, round_delta, message,
             created_by_user_id, None, now.isoformat(), now.isoformat(), None),
        )
        items = [TradeItem(tid, pid, TradeSide.FROM_GIVES) for pid in give_ids]
        items += [TradeItem(tid, pid, TradeSide.TO_GIVES) for pid in receive_ids]
        conn.executemany(
            "INSERT INTO trade_items (trade_id, player_id, side) VALUES (?, ?, ?)",
            [(i.trade_id, i.player_id, i.side.value) for i in items],
        )
        return Trade(
            id=tid, draft_event_id=draft_event_id, from_claimant_id=from_claimant_id,
            to_claimant_id=to_claimant_id, status=TradeStatus.PENDING,
            created_at=now, updated_at=now, from_avg_round=from_avg_round,
            to_avg_round=to_avg_round, round_delta=round_delta, parent_trade_id=parent_trade_id,
            message=message, created_by_user_id=created_by_user_id, items=items,
        )

    def get(self, conn: sqlite3.Connection, trade_id: str) -> Trade | None:
        row = conn.execute(f"SELECT {_TRADE_COLS} FROM trades WHERE id = ?", (trade_id,)).fetchone()
        if row is None:
            return None
        trade = self._from_row(row)
        trade.items = self._items(conn, trade.id)
        return trade

    def list_by_event(
        self,
        conn: sqlite3.Connection,
        draft_event_id: str,
        claimant_id: str | None = None,
        limit: int = 50,
    ) -> list[Trade]:
        if claimant_id is not None:
            rows = conn.execute(
                f"SELECT {_TRADE_COLS} FROM trades WHERE draft_event_id = ? "
                "AND (from_claimant_id = ? OR to_claimant_id = ?) ORDER BY updated_at DESC LIMIT ?",
                (draft_event_id, claimant_id, claimant_id, limit),
            ).fetchall()
        else:
            rows = conn.execute(
                f"SELECT {_TRADE_COLS} FROM trades WHERE draft_event_id = ? ORDER BY updated_at DESC LIMIT ?",
                (draft_event_id, limit),
            ).fetchall()
        trades = [self._from_row(r) for r in rows]
        for t in trades:
            t.items = self._items(conn, t.id)
        return trades

    def update_status(
        self,
        conn: sqlite3.Connection,
        trade_id: str,
        expected: TradeStatus,
        new_status: TradeStatus,
        responded_by_user_id: str | None = None,
        executed_at: datetime | None = None,
    ) -> bool:
        """Set status only if the trade is still in `expected`. Returns False otherwise."""
        cur = conn.execute(
            "UPDATE trades SET status = ?, responded_by_user_id = ?, executed_at = ?, updated_at = ? "
            "WHERE id = ? AND status = ?",
            (new_status.value, responded_by_user_id, _to_db_value(executed_at), _now().isoformat(),
             trade_id, expected.value),
        )
        return cur.rowcount == 1

    def delete_by_event(self, conn: sqlite3.Connection, draft_event_id: str) -> None:
        conn.execute(
            "DELETE FROM trade_items WHERE trade_id IN (SELECT id FROM trades WHERE draft_event_id = ?)",
            (draft_event_id,),
        )
        conn.execute("DELETE FROM trades WHERE draft_event_id = ?", (draft_event_id,))

    @staticmethod
    def _items(conn: sqlite3.Connection, trade_id: str) -> list[TradeItem]:
        rows = conn.execute(
            "SELECT trade_id, player_id, side FROM trade_items WHERE trade_id = ? ORDER BY side, player_id",
            (trade_id,),
        ).fetchall()
        return [TradeItem(r["trade_id"], r["player_id"], TradeSide(r["side"])) for r in rows]

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Trade:
        return Trade(
            id=row["id"],
            draft_event_id=row["draft_event_id"],
            from_claimant_id=row["from_claimant_id"],
            to_claimant_id=row["to_claimant_id"],
            status=TradeStatus(row["status"]),
            parent_trade_id=row["parent_trade_id"],
            from_avg_round=row["from_avg_round"],
            to_avg_round=row["to_avg_round"],
            round_delta=row["round_delta"],
            message=row["message"],
            created_by_user_id=row["created_by_user_id"],
            responded_by_user_id=row["responded_by_user_id"],
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
            executed_at=_parse_optional_datetime(row["executed_at"]),
        )


# ---------- DraftBoardRepository ----------


class DraftBoardRepository:
    """One board row per (event, claimant); entries are stored as a JSON array."""

    def get(self, conn: sqlite3.Connection, draft_event_id: str, claimant_id: str) -> DraftBoard | None:
        row = conn.execute(
            "SELECT draft_event_id, claimant_id, entries, updated_at FROM draft_boards "
            "WHERE draft_event_id = ? AND claimant_id = ?",
            (draft_event_id, claimant_id),
        ).fetchone()
        return self._from_row(row) if row else None

    def upsert(
        self,
        conn: sqlite3.Connection,
        draft_event_id: str,
        claimant_id: str,
        entries: list[BoardEntry],
    ) -> DraftBoard:
        updated_at = _now()
        payload = json.dumps([e.to_dict() for e in entries])
        conn.execute(
            "INSERT INTO draft_boards (draft_event_id, claimant_id, entries, updated_at) VALUES (?, ?, ?, ?) "
            "ON CONFLICT (draft_event_id, claimant_id) DO UPDATE SET entries = excluded.entries, "
            "updated_at = excluded.updated_at",
            (draft_event_id, claimant_id, payload, updated_at.isoformat()),
        )
        return DraftBoard(
            draft_event_id=draft_event_id, claimant_id=claimant_id, entries=list(entries), updated_at=updated_at,
        )

    def delete_by_event(self, conn: sqlite3.Connection, draft_event_id: str) -> None:
        conn.execute("DELETE FROM draft_boards WHERE draft_event_id = ?", (draft_event_id,))

    @staticmethod
    def _from_row(row: sqlite3.Row) -> DraftBoard:
        entries = [
            BoardEntry(
                player_id=e["player_id"],
                added_at=_parse_datetime(e["added_at"]),
                slot=e.get("slot"),
            )
            for e in json.loads(row["entries"] or "[]")
        ]
        return DraftBoard(
            draft_event_id=row["draft_event_id"],
            claimant_id=row["claimant_id"],
            entries=entries,
            updated_at=_parse_datetime(row["updated_at"]),
        )
