"""
Seed Admin User

Creates the first administrator account, or promotes an existing account.
Credentials come from the command line or the environment; nothing is
stored in this file.

Usage:
    cd apps/api
    ADMIN_EMAIL=registrar@example.edu ADMIN_PASSWORD=... python scripts/seed_admin.py
    python scripts/seed_admin.py --email registrar@example.edu --name "Registrar" --role admin
"""

import argparse
import asyncio
import getpass
import logging
import os
import sys

import admissions.models  # noqa: F401 - registers every table
from admissions.core.database import async_session_maker, close_db
from admissions.core.security import hash_password
from admissions.modules.users.models import UserRole
from admissions.modules.users.repository import UserRepository

logger = logging.getLogger("admissions.seed")

SEED_ROLES = (UserRole.SUPER_ADMIN, UserRole.ADMIN, UserRole.ADMISSIONS_OFFICER)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or promote an administrator account.")
    parser.add_argument("--email", default=os.environ.get("ADMIN_EMAIL"))
    parser.add_argument("--name", default=os.environ.get("ADMIN_NAME", "Administrator"))
    parser.add_argument(
        "--role",
        choices=[r.value for r in SEED_ROLES],
        default=os.environ.get("ADMIN_ROLE", UserRole.SUPER_ADMIN.value),
    )
    return parser.parse_args(argv)


async def seed_admin(email: str, password: str | None, full_name: str, role: UserRole) -> None:
    email = email.strip().lower()

    async with async_session_maker() as db:
        existing = await UserRepository.get_by_email(db, email)

        if existing:
            await UserRepository.set_role(db, existing.id, role)
            logger.info(f"Existing user {email} ({existing.id}) now has role {role.value}")
            return

        if not password:
            raise SystemExit("A password is required to create a new account")

        user = await UserRepository.create(
            db,
            email=email,
            password_hash=hash_password(password),
            full_name=full_name,
            role=role,
            is_active=True,
            is_verified=True,
        )
        logger.info(f"Created {role.value} {email} ({user.id})")


async def _run(email: str, password: str | None, full_name: str, role: UserRole) -> None:
    try:
        await seed_admin(email, password, full_name, role)
    finally:
        await close_db()


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    args = parse_args(argv)

    if not args.email:
        sys.exit("Provide --email or set ADMIN_EMAIL")

    password = os.environ.get("ADMIN_PASSWORD")
    if not password and sys.stdin.isatty():
        password = getpass.getpass("Password for new account: ")

    asyncio.run(_run(args.email, password, args.name, UserRole(args.role)))


if __name__ == "__main__":
    main()
