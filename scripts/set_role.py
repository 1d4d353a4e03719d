"""
Promote or demote a user.

Usage:
    python scripts/set_role.py (--email user@example.com | --id <uuid>) --role ADMIN|USER
"""

import argparse
import asyncio
import os
import sys
from typing import List, Optional
from uuid import UUID

from dotenv import load_dotenv
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from authstarter.core.security import normalize_email
from authstarter.db.session import Database
from authstarter.models.user import Role, User


async def set_role(
    sessions: async_sessionmaker,
    role: Role,
    email: Optional[str] = None,
    user_id: Optional[UUID] = None,
) -> Optional[User]:
    """Return the updated user, or None when no user matches."""
    async with sessions() as db:
        if user_id is not None:
            user = await db.get(User, user_id)
        else:
            stmt = select(User).where(User.email == normalize_email(email or ""))
            user = (await db.execute(stmt)).scalar_one_or_none()
        if user is None:
            return None
        user.role = role
        await db.commit()
        return user


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Promote or demote a user.")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--email", help="user email")
    target.add_argument("--id", type=UUID, dest="user_id", help="user id (uuid)")
    parser.add_argument(
        "--role",
        required=True,
        type=lambda v: Role(v.strip().upper()),
        help="ADMIN or USER",
    )
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:
    load_dotenv()
    url = os.getenv("DATABASE_URL", "")
    if not url:
        print("ERROR: DATABASE_URL not set in environment")
        return 1

    db = Database(url)
    try:
        user = await set_role(db.sessions, args.role, email=args.email, user_id=args.user_id)
    finally:
        await db.dispose()

    if user is None:
        print("ERROR: user not found")
        return 1
    print(f"✓ {user.email} is now {user.role.value}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    return asyncio.run(_run(parse_args(argv)))


if __name__ == "__main__":
    sys.exit(main())
