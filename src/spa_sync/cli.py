"""Command line entry point.

Usage:
    spa-sync sync --api-key KEY --company "Glow Spa" \\
        --center-id 6a2b...-... --start 2024-03-01 --end 2024-03-31
    spa-sync centers --api-key KEY --company "Glow Spa"
    spa-sync auth-link --company "Glow Spa"

Every command prints the JSON response body to stdout and exits non-zero
when it carries an error.
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Sequence

from spa_sync.config import configure_logging
from spa_sync.service import run_auth_link_request, run_centers_request, run_sync_request


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spa-sync",
        description="Post daily Zenoti activity to the Codat ledger",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Sync a date range into journal entries")
    sync.add_argument("--api-key", required=True, help="Zenoti API key")
    sync.add_argument("--company", required=True, help="Codat company name")
    sync.add_argument("--center-id", required=True, help="Zenoti center id (UUID)")
    sync.add_argument("--start", required=True, help="First day, YYYY-MM-DD")
    sync.add_argument("--end", required=True, help="Last day, YYYY-MM-DD")

    centers = subparsers.add_parser("centers", help="List Zenoti centers")
    centers.add_argument("--api-key", required=True, help="Zenoti API key")
    centers.add_argument("--company", required=True, help="Codat company name")

    auth_link = subparsers.add_parser(
        "auth-link", help="Create a Codat company and print its connection link"
    )
    auth_link.add_argument("--company", required=True, help="Codat company name")

    return parser


async def _dispatch(args: argparse.Namespace) -> dict[str, Any]:
    if args.command == "sync":
        return await run_sync_request(
            {
                "apiKey": args.api_key,
                "companyName": args.company,
                "centerId": args.center_id,
                "startDate": args.start,
                "endDate": args.end,
            }
        )
    if args.command == "centers":
        return await run_centers_request({"apiKey": args.api_key, "companyName": args.company})
    return await run_auth_link_request({"companyName": args.company})


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    response = asyncio.run(_dispatch(args))
    json.dump(response, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 1 if "error" in response else 0


if __name__ == "__main__":
    sys.exit(main())
