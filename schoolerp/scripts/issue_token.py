"""
Mint a development access token for an existing user (tokens normally come from the auth service).

Usage: python -m schoolerp.scripts.issue_token --email admin@school.example [--school-id UUID] [--minutes 60]
"""

import argparse
import asyncio
import sys
from typing import Optional
from uuid import UUID

from sqlalchemy import select

import schoolerp.core.models  # noqa: F401
from schoolerp.auth.models import User
from schoolerp.auth.security import create_access_token, token_claims_for
from schoolerp.core.config import settings
from schoolerp.db.session import build_engine, build_sessionmaker


async def issue_token(email: str, school_id: Optional[UUID], minutes: int) -> Optional[str]:
    engine = build_engine(settings.database_url)
    try:
        async with build_sessionmaker(engine)() as session:
            stmt = select(User).where(User.email == email)
            if school_id is not None:
                stmt = stmt.where(User.school_id == school_id)
            users = (await session.execute(stmt)).scalars().all()
    finally:
        await engine.dispose()

    if len(users) != 1:
        print(f"Expected exactly one user for {email}, found {len(users)}. Pass --school-id.", file=sys.stderr)
        return None
    user = users[0]
    if user.status != "ACTIVE":
        print(f"User {email} is {user.status}.", file=sys.stderr)
        return None
    return create_access_token(
        subject=token_claims_for(user.id, user.role, user.school_id),
        expires_minutes=minutes,
    )


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--email", required=True)
    parser.add_argument("--school-id", type=UUID, default=None)
    parser.add_argument("--minutes", type=int, default=settings.access_token_expire_minutes)
    args = parser.parse_args()

    token = asyncio.run(issue_token(args.email, args.school_id, args.minutes))
    if token is None:
        return 1
    print(token)
    return 0


if __name__ == "__main__":
    sys.exit(main())
