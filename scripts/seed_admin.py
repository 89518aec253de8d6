#!/usr/bin/env python3
"""
Create (or promote) the admin account for a fresh draft database.
Run from project root: python3 scripts/seed_admin.py --username admin --password ChangeMeNow!
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Ensure project root on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from draftroom.auth import hash_password
from draftroom.models import Role
from draftroom.persistence import UserRepository, get_connection, init_db
from draftroom.persistence.db import get_db_path, set_db_path


def seed_admin(username: str, password: str, name: str | None = None) -> str:
    """Ensure `username` exists with the ADMIN role. Returns the user id."""
    init_db(db_path=get_db_path())
    conn = get_connection()
    try:
        user_repo = UserRepository()
        user = user_repo.get_by_username(conn, username)
        if user is None:
            user = user_repo.create(conn, username, hash_password(password), role=Role.ADMIN, name=name)
            print(f"Created admin: {user.username} (id={user.id})")
        elif user.role != Role.ADMIN:
            user_repo.update_role(conn, user.id, Role.ADMIN)
            print(f"Promoted {user.username} to ADMIN (password unchanged)")
        else:
            print(f"Admin already present: {user.username}")
        return user.id
    finally:
        conn.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the draft room admin account.")
    parser.add_argument("--username", default="admin")
    parser.add_argument("--password", required=True)
    parser.add_argument("--name", default="Draft Admin")
    parser.add_argument("--db", default=None, help="SQLite path (default: DRAFTROOM_DB_PATH or data/draftroom.db)")
    args = parser.parse_args()
    if len(args.password) < 6:
        parser.error("password must be at least 6 characters")
    if args.db:
        set_db_path(args.db)
    seed_admin(args.username, args.password, args.name)


if __name__ == "__main__":
    main()
