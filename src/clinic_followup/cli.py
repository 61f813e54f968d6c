#!/usr/bin/env python3
"""Command line entry point.

Usage:
    clinic-followup serve                 # Run the HTTP API
    clinic-followup run-job no-shows      # Run one batch job now
    clinic-followup init-db               # Create database tables
    clinic-followup config                # Show effective configuration
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from clinic_followup.config import get_settings, validate_production_settings
from clinic_followup.core.exceptions import FollowupEngineError
from clinic_followup.core.logging import get_logger, setup_logging

log = get_logger(__name__)

# Credentials never printed by ``config``
_SECRET_KEYS = {"api_key"}


def serve(args: argparse.Namespace) -> int:
    """Run the API server."""
    from clinic_followup.main import run

    run()
    return 0


def run_job_command(args: argparse.Namespace) -> int:
    """Run a single batch job and print its results as JSON."""
    from clinic_followup.db import close_db, get_db_context, init_db
    from clinic_followup.integrations.channels import close_channel_adapter, get_channel_adapter
    from clinic_followup.workflows.jobs import run_job

    settings = get_settings()

    async def _run() -> dict:
        await init_db()
        try:
            async with get_db_context() as session:
                batch = await run_job(args.job, session, get_channel_adapter(), settings)
            return batch.to_dict()
        finally:
            await close_channel_adapter()
            await close_db()

    try:
        result = asyncio.run(_run())
    except FollowupEngineError as e:
        log.error("Job failed", job=args.job, error_code=e.error_code, error=e.message)
        print(json.dumps(e.to_dict(), indent=2))
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


def init_database(args: argparse.Namespace) -> int:
    """Create all tables."""
    from clinic_followup.db import close_db, init_db

    async def _init() -> None:
        await init_db()
        await close_db()

    asyncio.run(_init())
    print(f"Database initialized: {get_settings().database.url}")
    return 0


def show_config(args: argparse.Namespace) -> int:
    """Print effective settings with credentials masked."""
    settings = get_settings()
    print(json.dumps(_mask(settings.model_dump()), indent=2, default=str))

    errors = validate_production_settings(settings)
    for error in errors:
        print(f"WARNING: {error}", file=sys.stderr)
    return 1 if errors else 0


def _mask(value):
    if isinstance(value, dict):
        return {
            k: ("***" if k in _SECRET_KEYS and v else _mask(v))
            for k, v in value.items()
        }
    return value


def main() -> int:
    """Main entry point."""
    from clinic_followup.workflows.jobs import JOBS

    parser = argparse.ArgumentParser(
        description="Clinic follow-up engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # serve
    subparsers.add_parser("serve", help="Run the HTTP API")

    # run-job
    job_parser = subparsers.add_parser("run-job", help="Run one batch job now")
    job_parser.add_argument("job", choices=sorted(JOBS), help="Job name")

    # init-db
    subparsers.add_parser("init-db", help="Create database tables")

    # config
    subparsers.add_parser("config", help="Show effective configuration")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    settings = get_settings()
    setup_logging(
        level=settings.log_level,
        json_output=settings.log_json,
        clinic_name=settings.clinic.name,
        mask_phones=settings.log_mask_phones,
    )

    commands = {
        "serve": serve,
        "run-job": run_job_command,
        "init-db": init_database,
        "config": show_config,
    }

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
