#!/usr/bin/env python3
"""
WarEra Ledger - Entry point for running the application.

Usage:
    python main.py                 # Run web server
    python main.py --sync          # Sync the target user's transactions once and exit
    python main.py --sync USER_ID  # Sync a specific user once and exit
"""

import argparse
import asyncio
import logging
import sys

import uvicorn

from warera.api.dependencies import close_common_deps, create_common_deps
from warera.errors import StorageError, ValidationError

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


async def run_sync(user_id: str | None) -> int:
    """Run one sync and return the process exit code."""
    try:
        deps = await create_common_deps()
    except StorageError as e:
        logger.error(f"Cannot open database: {e}")
        return 1

    try:
        user_id = user_id or await deps.settings.get("target_user_id")
        result = await deps.sync.run(user_id)
    except ValidationError as e:
        logger.error(f"Cannot sync: {e} (set a target user or pass USER_ID)")
        return 2
    finally:
        await close_common_deps(deps)

    if result.error:
        logger.error(f"Sync failed: {result.error} ({result.new_count} new, {result.total_in_db} stored)")
        return 1
    logger.info(f"Sync complete: {result.new_count} new, {result.total_in_db} stored")
    return 0


def main():
    parser = argparse.ArgumentParser(description="WarEra Ledger")
    parser.add_argument(
        "--sync",
        nargs="?",
        const="",
        default=None,
        metavar="USER_ID",
        help="Sync transactions once and exit (defaults to the target user)",
    )
    parser.add_argument("--host", default="::", help="Web server host")
    parser.add_argument("--port", type=int, default=8000, help="Web server port")
    args = parser.parse_args()

    if args.sync is not None:
        sys.exit(asyncio.run(run_sync(args.sync or None)))

    # The app's lifespan (warera.app) connects the DB in the same loop that serves requests.
    logger.info(f"Running web server on {args.host}:{args.port}")
    uvicorn.run("warera.app:app", host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
