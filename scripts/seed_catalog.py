"""
Create the database schema and load the starter chef/menu catalog.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chefmarket.config import get_settings
from chefmarket.db_postgres import PostgresDbClient
from chefmarket.seed import seed_catalog

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed the chef/menu catalog")
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
    if seed_catalog(db):
        logger.info("Catalog seeded")
    else:
        logger.info("Catalog already present, nothing to do")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
