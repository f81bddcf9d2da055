"""
Command-line entrypoint.

Each command is an async function registered in COMMAND_REGISTRY and run
with asyncio.run().
"""

import argparse
import asyncio
import json
import sys
from collections.abc import Awaitable, Callable

from dsqlbench.auth.token_provider import CredentialError, TokenProvider
from dsqlbench.config import region_from_host, settings
from dsqlbench.db.connection import EncodingError
from dsqlbench.db.errors import DatabaseError
from dsqlbench.db.helpers import Database
from dsqlbench.db.pool import DatabasePoolManager
from dsqlbench.infrastructure.observability.logging import (
    get_logger,
    log_stress_run,
    setup_logging,
)
from dsqlbench.jobs.stress_test_job import StressHarness, StressRunAborted
from dsqlbench.repositories.user_repository import UserRepository

logger = get_logger(__name__)

CommandCoroutine = Callable[[argparse.Namespace], Awaitable[int]]


def confirm_drop(args: argparse.Namespace) -> Callable[[], bool]:
    """Confirmation for destructive commands: --yes, or an explicit 'y' on stdin."""

    def _confirm() -> bool:
        if args.yes:
            return True
        answer = input(
            "WARNING: This will drop the existing users table and all its data. Continue? [y/N] "
        )
        return answer.strip().lower() in ("y", "yes")

    return _confirm


async def _with_repository(action: Callable[[UserRepository], Awaitable[int]]) -> int:
    pool = DatabasePoolManager()
    await pool.initialize()
    try:
        repository = UserRepository(Database(pool), settings.get_retry_policy())
        return await action(repository)
    finally:
        await pool.close()


async def repopulate_command(args: argparse.Namespace) -> int:
    async def action(repository: UserRepository) -> int:
        inserted = await repository.repopulate(confirm_drop(args))
        print(f"Inserted {inserted} sample users")
        return 0

    return await _with_repository(action)


async def list_users_command(args: argparse.Namespace) -> int:
    async def action(repository: UserRepository) -> int:
        users = await repository.list_users()
        if not users:
            print("No users found in the database.")
        for user in users:
            print(user.describe())
        return 0

    return await _with_repository(action)


async def add_user_command(args: argparse.Namespace) -> int:
    async def action(repository: UserRepository) -> int:
        user_id = await repository.add_user(args.name, args.email, args.role)
        print(f"User added successfully! ID: {user_id}")
        return 0

    return await _with_repository(action)


async def stress_test_command(args: argparse.Namespace) -> int:
    async def action(repository: UserRepository) -> int:
        await repository.ensure_table_exists()
        harness = StressHarness(repository)
        try:
            run = await harness.run(
                args.users, args.concurrency, abort_on_failed_batch=args.abort_on_failed_batch
            )
        except StressRunAborted as e:
            log_stress_run(e.run, args.concurrency)
            raise

        log_stress_run(run, args.concurrency)
        print(
            f"Total time: {run.elapsed_seconds:.2f} seconds\n"
            f"Successful inserts: {run.succeeded}\n"
            f"Failed inserts: {run.failed}\n"
            f"Insert rate: {run.throughput:.2f} users/second"
        )
        return 0

    return await _with_repository(action)


async def health_command(args: argparse.Namespace) -> int:
    pool = DatabasePoolManager()
    await pool.initialize()
    try:
        health = await pool.health_check()
    finally:
        await pool.close()

    print(json.dumps(health, indent=2))
    return 0 if health["healthy"] else 1


async def generate_token_command(args: argparse.Namespace) -> int:
    endpoint = args.endpoint or settings.DB_HOST
    if not endpoint:
        raise EncodingError("No endpoint given and DB_HOST is not set", field="host")
    region = args.region or region_from_host(args.endpoint) or settings.db_region()

    token = await TokenProvider().generate_token(endpoint, region, args.admin)

    if args.token_only:
        print(token)
        return 0

    print(
        "Authentication token generated successfully!\n"
        f"Host:     {endpoint}\n"
        f"Port:     {settings.DB_PORT}\n"
        f"User:     {settings.DB_USER}\n"
        f"Database: {settings.DB_NAME}\n"
        f"Region:   {region}\n"
        f"Admin:    {'Yes' if args.admin else 'No'}\n"
        f"\nToken: {token}"
    )
    return 0


COMMAND_REGISTRY: dict[str, CommandCoroutine] = {
    "repopulate": repopulate_command,
    "list-users": list_users_command,
    "add-user": add_user_command,
    "stress-test": stress_test_command,
    "generate-token": generate_token_command,
    "health": health_command,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dsqlbench", description="Aurora DSQL user store tool")
    subcommands = parser.add_subparsers(dest="command", required=True)

    repopulate = subcommands.add_parser(
        "repopulate", help="Drop the users table and load sample users"
    )
    repopulate.add_argument("-y", "--yes", action="store_true", help="Skip the confirmation")

    subcommands.add_parser("list-users", help="List all users in the database")

    add_user = subcommands.add_parser("add-user", help="Add a new user")
    add_user.add_argument("--name", required=True)
    add_user.add_argument("--email", required=True)
    add_user.add_argument("--role", default="User")

    stress = subcommands.add_parser("stress-test", help="Stress test with parallel inserts")
    stress.add_argument("-u", "--users", type=int, default=settings.STRESS_DEFAULT_USERS)
    stress.add_argument(
        "-c", "--concurrency", type=int, default=settings.STRESS_DEFAULT_CONCURRENCY
    )
    stress.add_argument("--abort-on-failed-batch", action="store_true")

    subcommands.add_parser("health", help="Check pool connectivity and report pool stats")

    token = subcommands.add_parser("generate-token", help="Generate an auth token")
    token.add_argument("-r", "--region")
    token.add_argument("-e", "--endpoint")
    token.add_argument("--admin", action=argparse.BooleanOptionalAction, default=True)
    token.add_argument("-t", "--token-only", action="store_true")

    return parser


async def run_command(args: argparse.Namespace) -> int:
    """Run the requested command."""
    if args.command not in COMMAND_REGISTRY:
        raise ValueError(
            f"Unknown command '{args.command}'. "
            f"Available commands: {', '.join(sorted(COMMAND_REGISTRY.keys()))}"
        )

    logger.info("Running command", command=args.command)
    return await COMMAND_REGISTRY[args.command](args)


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""
    args = build_parser().parse_args(argv)
    setup_logging(settings.LOG_LEVEL)

    try:
        return asyncio.run(run_command(args))
    except (CredentialError, EncodingError, DatabaseError, StressRunAborted) as e:
        logger.error("Command failed", command=args.command, error=str(e), error_type=type(e).__name__)
        return 1


if __name__ == "__main__":
    sys.exit(main())
