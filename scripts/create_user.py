#!/usr/bin/env python3
"""Operator script to create users and issue bearer tokens.

Usage:
    uv run python scripts/create_user.py <name> <email> [--role admin|vendor|customer]
    uv run python scripts/create_user.py --token <email>
    uv run python scripts/create_user.py --list
"""

import asyncio
import logging
import sys

from src.core import db_client
from src.core.db_client import sanitize_param
from src.core.errors import ValidationFailedError
from src.domain.create_models import UserCreate
from src.domain.user import Role
from src.services import identity_service, user_service


logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


async def list_users() -> None:
    """List all users."""
    for user in await user_service.list_users():
        state = "active" if user.is_active else "inactive"
        logger.info(f"{user.id}  {user.email}  {user.name} ({user.role}, {state})")


async def print_token(email: str) -> None:
    """Issue a fresh token for an existing user."""
    user = await db_client.get_first_record(
        collection="users",
        filter_query=f'email = "{sanitize_param(email.strip().lower())}"',
    )
    if not user:
        logger.error(f"No user with email {email}")
        sys.exit(1)
        return

    logger.info(identity_service.issue_token(user["id"]))


async def create_user(name: str, email: str, role: Role) -> None:
    """Create a user and print its bearer token."""
    try:
        user = await user_service.create_user(payload=UserCreate(name=name, email=email, role=role))
    except ValidationFailedError as e:
        logger.error(e.message)
        sys.exit(1)
        return

    logger.info(f"Created {user.role} {user.name} ({user.id})")
    logger.info(identity_service.issue_token(user.id))


def print_usage() -> None:
    """Print usage information."""
    logger.info(__doc__)


async def main() -> None:
    """Main entry point."""
    args = sys.argv[1:]

    if not args or "--help" in args or "-h" in args:
        print_usage()
        return

    await db_client.init_db()

    if "--list" in args:
        await list_users()
        return

    if "--token" in args:
        token_index = args.index("--token")
        if token_index + 1 >= len(args):
            sys.exit(1)
        await print_token(args[token_index + 1])
        return

    if len(args) < 2:  # noqa: PLR2004
        print_usage()
        sys.exit(1)

    name, email = args[0], args[1]
    role = Role.CUSTOMER

    if "--role" in args:
        role_index = args.index("--role")
        if role_index + 1 >= len(args) or args[role_index + 1] not in {r.value for r in Role}:
            sys.exit(1)
        role = Role(args[role_index + 1])

    await create_user(name, email, role)


if __name__ == "__main__":
    asyncio.run(main())
