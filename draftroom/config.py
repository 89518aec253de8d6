"""
Runtime configuration. Module-level constants; environment variables override where noted.
"""
from __future__ import annotations

import os

# ---------- Storage ----------
# Empty means the default location (project root / data / draftroom.db).
DB_PATH = os.environ.get("DRAFTROOM_DB_PATH", "")
# Seconds a connection waits on a locked database before giving up.
DB_BUSY_TIMEOUT = float(os.environ.get("DRAFTROOM_DB_BUSY_TIMEOUT", "10"))

# ---------- Auth ----------
JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "draftroom-dev-secret-change-in-production")
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 12  # one draft night

# ---------- Logging ----------
LOG_LEVEL = os.environ.get("DRAFTROOM_LOG_LEVEL", "INFO")

# ---------- Draft clock ----------
DEFAULT_PICK_CLOCK_SECONDS = 120
DEFAULT_EVENT_NAME = "Draft Night"
RECENT_PICKS_WINDOW = 12

# ---------- Pick addressing ----------
MAX_PICK_NUMBER = 2**31 - 1  # upper bound for overall_number and round in requests

# ---------- Allocation scan bounds (in rounds of claimant_count slots) ----------
NEXT_SLOT_SCAN_ROUNDS = 50
SIBLING_SCAN_ROUNDS = 40

# ---------- Sibling draft cost ----------
DRAFT_COST_MIN = 1
DRAFT_COST_MAX = 10

# ---------- Trades ----------
MAX_ROUND_DELTA = 2.0
TRADE_MESSAGE_MAX_LEN = 400
TRADE_INBOX_LIMIT = 50

# ---------- Draft boards ----------
BOARD_MAX_ENTRIES = 500

# ---------- HTTP ----------
CORS_ORIGINS = [
    o.strip()
    for o in os.environ.get(
        "DRAFTROOM_CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173",
    ).split(",")
    if o.strip()
]
