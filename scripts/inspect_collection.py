#!/usr/bin/env python3
"""Inspect a collection in the SQLite store.

Usage:
    uv run python scripts/inspect_collection.py <collection> [field ...]

Prints the record count and, for each given field, a breakdown of its values.
"""

import asyncio
import logging
import sys

from src.core import db_client
from src.core.schema import COLLECTIONS


logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


async def main() -> None:
    args = sys.argv[1:]
    if not args or args[0] not in COLLECTIONS:
        logger.info(__doc__)
        logger.info(f"Collections: {', '.join(COLLECTIONS)}")
        sys.exit(1)

    collection, fields = args[0], args[1:]
    await db_client.init_db()
    try:
        counts = await db_client.aggregate_counts(collection=collection, group_fields=fields)
        logger.info(f"{collection}: {counts['total']} records")
        for field in fields:
            logger.info(f"  {field}:")
            for value, count in sorted(counts[field].items(), key=lambda item: -item[1]):
                logger.info(f"    {value}: {count}")

        latest = await db_client.list_records(collection=collection, sort="-updated", per_page=1)
        if latest:
            logger.info(f"Last updated: {latest[0]['updated']} ({latest[0]['id']})")
    finally:
        await db_client.close_connection()


if __name__ == "__main__":
    asyncio.run(main())
