"""
sync_identity.py
----------------
Backfill organizations, users and organization memberships from the
identity provider's REST API. Safe to run while webhooks are flowing.

Usage:
    python sync_identity.py
    python sync_identity.py --api-url https://api.clerk.com/v1 --api-key sk_...
"""

import argparse
import asyncio
import sys

from projecthub.core.logging import configure_logging, get_logger
from projecthub.db.session import AsyncSessionLocal, engine
from projecthub.services.identity_sync import IdentityProviderClient, sync_identity

logger = get_logger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.split("\n\n")[0])
    parser.add_argument("--api-url", default=None, help="Identity provider API base URL")
    parser.add_argument("--api-key", default=None, help="Identity provider secret key")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    async with IdentityProviderClient(args.api_url, args.api_key) as client:
        async with AsyncSessionLocal() as db:
            report = await sync_identity(db, client)
    await engine.dispose()

    for error in report.errors:
        logger.warning("Backfill error", error=error)
    return 1 if report.errors else 0


if __name__ == "__main__":
    configure_logging()
    sys.exit(asyncio.run(run(parse_args())))
