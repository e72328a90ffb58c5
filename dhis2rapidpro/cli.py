"""Administrative command line for the bridge.

These commands act on the bridge's state out of band, while it is running
or stopped:

    dhis2rapidpro-admin reset-token        # truncate TOKEN; next webhook request provisions a new token
    dhis2rapidpro-admin token-status       # report whether a token is provisioned
    dhis2rapidpro-admin check-connections  # run the DHIS2 / RapidPro connection tests
"""

import argparse
import asyncio
import sys
from pathlib import Path

import aiosqlite
import structlog

from dhis2rapidpro.config import Settings
from dhis2rapidpro.connections import ConnectionTester
from dhis2rapidpro.errors import ApplicationTerminatedError, StoreUnavailableError
from dhis2rapidpro.logging_config import configure_logging
from dhis2rapidpro.security.token_store import TOKEN_TABLE, TokenStore

logger = structlog.get_logger(__name__)


async def truncate_token_table(db_path: Path) -> int:
    """Delete the stored webhook token.

    Args:
        db_path: SQLite database holding the TOKEN table.

    Returns:
        Number of rows removed.
    """
    # Creates the table if missing, so the DELETE below always has a target.
    await TokenStore(db_path).load()

    async with aiosqlite.connect(db_path) as db:
        cursor = await db.execute(f"DELETE FROM {TOKEN_TABLE}")
        removed = cursor.rowcount
        await db.commit()
    return removed


async def reset_token_command(args: argparse.Namespace) -> int:
    """Execute the 'reset-token' command."""
    db_path = Path(args.db)
    try:
        removed = await truncate_token_table(db_path)
    except StoreUnavailableError as e:
        logger.error("token_reset_failed", error=e.message)
        return 1
    except aiosqlite.Error as e:
        logger.error("token_reset_failed", error=str(e))
        return 1

    logger.info("token_reset", db_path=str(db_path), removed=removed)
    print(
        "Webhook token removed. A new token will be generated and logged on the "
        "next webhook request."
        if removed
        else "No webhook token was provisioned."
    )
    return 0


async def token_status_command(args: argparse.Namespace) -> int:
    """Execute the 'token-status' command."""
    store = TokenStore(args.db)
    try:
        digest = await store.load()
    except StoreUnavailableError as e:
        logger.error("token_status_failed", error=e.message)
        return 1

    print("provisioned" if digest else "not provisioned")
    return 0


async def check_connections_command(args: argparse.Namespace) -> int:  # noqa: ARG001
    """Execute the 'check-connections' command."""
    settings = Settings.from_env()
    try:
        await ConnectionTester(settings).run()
    except ApplicationTerminatedError as e:
        print(e.message, file=sys.stderr)
        return 1

    print("DHIS2 and RapidPro connections OK")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(
        prog="dhis2rapidpro-admin",
        description="Administrative commands for the DHIS2-to-RapidPro bridge",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    default_db = str(Settings.from_env().DATABASE_PATH)

    reset_parser = subparsers.add_parser(
        "reset-token",
        help="Truncate the TOKEN table so that a new webhook token is generated",
    )
    reset_parser.add_argument("--db", default=default_db, help="SQLite database path")

    status_parser = subparsers.add_parser(
        "token-status",
        help="Report whether a webhook token is provisioned",
    )
    status_parser.add_argument("--db", default=default_db, help="SQLite database path")

    subparsers.add_parser(
        "check-connections",
        help="Test the DHIS2 and RapidPro connections",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command-line arguments (uses sys.argv if not provided).

    Returns:
        Exit code.
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging("WARNING")

    commands = {
        "reset-token": reset_token_command,
        "token-status": token_status_command,
        "check-connections": check_connections_command,
    }
    return asyncio.run(commands[args.command](args))


if __name__ == "__main__":
    sys.exit(main())
