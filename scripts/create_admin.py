"""
Create an admin account, or promote an existing user to admin.

Registration over the API only hands out client and provider roles.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chefmarket.config import get_settings
from chefmarket.db_postgres import PostgresDbClient
from chefmarket.passwords import hash_password
from chefmarket.types import UserRole

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Create or promote an admin user")
    parser.add_argument("username", type=str)
    parser.add_argument("--email", type=str, default=None)
    parser.add_argument("--fullname", type=str, default="Administrator")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="SQLAlchemy URL (defaults to DATABASE_URL)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    database_url = args.database_url or get_settings().database_url
    if not database_url:
        logger.error("No database URL given and DATABASE_URL is not set")
        return 1
    db = PostgresDbClient(database_url)

    existing = db.get_user_by_username(args.username)
    if existing:
        db.update_user(existing.id, role=UserRole.ADMIN)
        logger.info("Promoted user %s (id=%s) to admin", args.username, existing.id)
        return 0

    if not args.email:
        logger.error("--email is required when creating a new user")
        return 1
    password = getpass.getpass("Password: ")
    if len(password) < 6:
        logger.error("Password must be at least 6 characters")
        return 1
    if password != getpass.getpass("Repeat password: "):
        logger.error("Passwords do not match")
        return 1

    user = db.create_user(
        username=args.username,
        email=args.email,
        fullname=args.fullname,
        password=hash_password(password),
        role=UserRole.ADMIN,
    )
    logger.info("Created admin %s (id=%s)", user.username, user.id)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
