"""Create a CodeTrack user.

Usage:
    python -m codetrack.scripts.create_user --username admin --password <password>
"""

from __future__ import annotations

import argparse
import sys

from codetrack.db.session import SessionLocal
from codetrack.models.user import User
from codetrack.services.auth import create_user


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create a CodeTrack user")
    parser.add_argument("--username", required=True, help="Username for the new user")
    parser.add_argument("--password", required=True, help="Password for the new user")
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        existing = db.query(User).filter(User.username == args.username).first()
        if existing:
            print(f"User '{args.username}' already exists.")
            return 1

        user = create_user(db, args.username, args.password)
        print(f"User '{user.username}' created successfully (id={user.id}).")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
