"""
SQLite schema for draft entities.
Migration-friendly: each table created with IF NOT EXISTS.
The two unique indexes on picks are the final guard against double allocation.
"""
from __future__ import annotations


def users_schema() -> str:
    """Accounts. role: ADMIN | COACH | BOARD."""
    return """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        username TEXT NOT NULL,
        password_hash TEXT NOT NULL,
        name TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'COACH',
        created_at TEXT NOT NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_users_username ON users(username);
    """


def draft_events_schema() -> str:
    """One row per draft session. phase: SETUP | LIVE | COMPLETE."""
    return """
    CREATE TABLE IF NOT EXISTS draft_events (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        phase TEXT NOT NULL DEFAULT 'SETUP',
        current_pick INTEGER NOT NULL DEFAULT 1,
        pick_clock_seconds INTEGER NOT NULL DEFAULT 120,
        is_paused INTEGER NOT NULL DEFAULT 1,
        clock_ends_at TEXT,
        pause_remaining_secs INTEGER,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS ix_draft_events_phase ON draft_events(phase, updated_at);
    """


def claimants_schema() -> str:
    """Teams in an event. draft_order is 1-based and unique per event."""
    return """
    CREATE TABLE IF NOT EXISTS claimants (
        id TEXT PRIMARY KEY,
        draft_event_id TEXT NOT NULL,
        name TEXT NOT NULL,
        draft_order INTEGER NOT NULL CHECK (draft_order >= 1),
        owner_user_id TEXT,
        FOREIGN KEY (draft_event_id) REFERENCES draft_events(id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_claimants_event_order ON claimants(draft_event_id, draft_order);
    CREATE INDEX IF NOT EXISTS ix_claimants_owner ON claimants(draft_event_id, owner_user_id);
    """


def players_schema() -> str:
    """Player pool per event. Registration columns feed sibling-group suggestions."""
    return """
    CREATE TABLE IF NOT EXISTS players (
        id TEXT PRIMARY KEY,
        draft_event_id TEXT NOT NULL,
        full_name TEXT NOT NULL,
        is_draft_eligible INTEGER NOT NULL DEFAULT 1,
        is_drafted INTEGER NOT NULL DEFAULT 0,
        drafted_claimant_id TEXT,
        drafted_at TEXT,
        guardian_name TEXT,
        primary_email TEXT,
        primary_phone TEXT,
        league_choice TEXT,
        FOREIGN KEY (draft_event_id) REFERENCES draft_events(id),
        FOREIGN KEY (drafted_claimant_id) REFERENCES claimants(id)
    );
    CREATE INDEX IF NOT EXISTS ix_players_event ON players(draft_event_id);
    CREATE INDEX IF NOT EXISTS ix_players_claimant ON players(draft_event_id, drafted_claimant_id);
    """


def picks_schema() -> str:
    """Committed slots. At most one pick per (event, slot) and per (event, player)."""
    return """
    CREATE TABLE IF NOT EXISTS picks (
        id TEXT PRIMARY KEY,
        draft_event_id TEXT NOT NULL,
        claimant_id TEXT NOT NULL,
        player_id TEXT NOT NULL,
        round INTEGER NOT NULL,
        pick_in_round INTEGER NOT NULL,
        overall_number INTEGER NOT NULL CHECK (overall_number >= 1),
        made_at TEXT NOT NULL,
        is_auto INTEGER NOT NULL DEFAULT 0,
        FOREIGN KEY (draft_event_id) REFERENCES draft_events(id),
        FOREIGN KEY (claimant_id) REFERENCES claimants(id),
        FOREIGN KEY (player_id) REFERENCES players(id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ux_picks_event_overall ON picks(draft_event_id, overall_number);
    CREATE UNIQUE INDEX IF NOT EXISTS ux_picks_event_player ON picks(draft_event_id, player_id);
    CREATE INDEX IF NOT EXISTS ix_picks_claimant ON picks(claimant_id);
    """


def sibling_cost_links_schema() -> str:
    """Sibling groups. id (insertion order) is the tie-break when several siblings qualify."""
    return """
    CREATE TABLE IF NOT EXISTS sibling_cost_links (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        draft_event_id TEXT NOT NULL,
        player_id TEXT NOT NULL,
        group_key TEXT NOT NULL,
        draft_cost INTEGER NOT NULL CHECK (draft_cost BETWEEN 1 AND 10),
        FOREIGN KEY (draft_event_id) REFERENCES draft_events(id),
        FOREIGN KEY (player_id) REFERENCES players(id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ux_sibling_links_event_player ON sibling_cost_links(draft_event_id, player_id);
    CREATE INDEX IF NOT EXISTS ix_sibling_links_group ON sibling_cost_links(draft_event_id, group_key);
    """


def trades_schema() -> str:
    """Trades and their items. status: PENDING | ACCEPTED | REJECTED | COUNTERED | CANCELLED."""
    return """
    CREATE TABLE IF NOT EXISTS trades (
        id TEXT PRIMARY KEY,
        draft_event_id TEXT NOT NULL,
        from_claimant_id TEXT NOT NULL,
        to_claimant_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'PENDING',
        parent_trade_id TEXT,
        from_avg_round REAL,
        to_avg_round REAL,
        round_delta REAL,
        message TEXT,
        created_by_user_id TEXT,
        responded_by_user_id TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        executed_at TEXT,
        FOREIGN KEY (draft_event_id) REFERENCES draft_events(id),
        FOREIGN KEY (from_claimant_id) REFERENCES claimants(id),
        FOREIGN KEY (to_claimant_id) REFERENCES claimants(id),
        FOREIGN KEY (parent_trade_id) REFERENCES trades(id)
    );
    CREATE INDEX IF NOT EXISTS ix_trades_event ON trades(draft_event_id, updated_at);
    CREATE INDEX IF NOT EXISTS ix_trades_from ON trades(from_claimant_id);
    CREATE INDEX IF NOT EXISTS ix_trades_to ON trades(to_claimant_id);

    CREATE TABLE IF NOT EXISTS trade_items (
        trade_id TEXT NOT NULL,
        player_id TEXT NOT NULL,
        side TEXT NOT NULL,
        PRIMARY KEY (trade_id, player_id),
        FOREIGN KEY (trade_id) REFERENCES trades(id),
        FOREIGN KEY (player_id) REFERENCES players(id)
    );
    """


def draft_boards_schema() -> str:
    """Per-claimant draft board: an ordered JSON list of {player_id, added_at, slot} entries."""
    return """
    CREATE TABLE IF NOT EXISTS draft_boards (
        draft_event_id TEXT NOT NULL,
        claimant_id TEXT NOT NULL,
        entries TEXT NOT NULL DEFAULT '[]',
        updated_at TEXT NOT NULL,
        PRIMARY KEY (draft_event_id, claimant_id),
        FOREIGN KEY (draft_event_id) REFERENCES draft_events(id),
        FOREIGN KEY (claimant_id) REFERENCES claimants(id)
    );
    """


def all_schema_sql() -> str:
    """Combine all schema DDL for a single execution. Order follows foreign-key dependencies."""
    return "\n".join([
        users_schema(),
        draft_events_schema(),
        claimants_schema(),
        players_schema(),
        picks_schema(),
        sibling_cost_links_schema(),
        trades_schema(),
        draft_boards_schema(),
    ])
