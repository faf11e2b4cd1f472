"""Timebudget command line interface.

Operational tools for:
- Schema creation
- Spending recomputation (one project or all of them)
- Rate history backfill

Usage:
    timebudget init-db
    timebudget recalculate --project-id X [--fiscal-year 2024]
    timebudget recalculate-all
    timebudget backfill-rate-history
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Awaitable
from typing import Callable
from uuid import UUID

from timebudget.calculators.aggregator import SpendingAggregator
from timebudget.calculators.types import FanOutResult, round_money
from timebudget.config import get_settings
from timebudget.database import dispose_db, get_session, init_db
from timebudget.errors import TimeBudgetError
from timebudget.logging_config import configure_logging
from timebudget.models import Base
from timebudget.services.rate_service import RateService


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


def print_fanout(result: FanOutResult) -> None:
    print(f"  Recomputed: {len(result.recomputed)} project(s)")
    for project_id, totals in result.recomputed.items():
        print(f"    {project_id}  total={round_money(totals.total_spent)}")
    if result.failed:
        print(f"  Failed: {len(result.failed)} project(s)")
        for project_id, reason in result.failed.items():
            print(f"    {project_id}  {reason}")


class TimebudgetCli:
    """Timebudget Command Line Interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="timebudget",
            description="Timebudget operational tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser(
            "init-db",
            help="Create all tables in the configured database",
        )

        recalculate = subparsers.add_parser(
            "recalculate",
            help="Recompute one project's cached quarterly spend",
        )
        recalculate.add_argument(
            "--project-id",
            type=parse_uuid,
            required=True,
            help="Project to recompute",
        )
        recalculate.add_argument(
            "--fiscal-year",
            type=int,
            help="Restrict to one fiscal year (April to March)",
        )

        subparsers.add_parser(
            "recalculate-all",
            help="Recompute every project's cached spend",
        )

        subparsers.add_parser(
            "backfill-rate-history",
            help="Record the current rate as history for users that have none",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        configure_logging(get_settings().log_level)

        # Dispatch to command handler
        handlers: dict[str, Callable[[argparse.Namespace], Awaitable[int]]] = {
            "init-db": self._cmd_init_db,
            "recalculate": self._cmd_recalculate,
            "recalculate-all": self._cmd_recalculate_all,
            "backfill-rate-history": self._cmd_backfill_rate_history,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        return asyncio.run(self._run_async(handler, parsed))

    async def _run_async(
        self,
        handler: Callable[[argparse.Namespace], Awaitable[int]],
        args: argparse.Namespace,
    ) -> int:
        try:
            return await handler(args)
        except TimeBudgetError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        finally:
            await dispose_db()

    async def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create tables."""
        engine, _ = init_db()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        print("Schema created.")
        return 0

    async def _cmd_recalculate(self, args: argparse.Namespace) -> int:
        """Recompute one project."""
        print(f"Recomputing project: {args.project_id}")
        if args.fiscal_year:
            print(f"  Fiscal year: {args.fiscal_year}")

        async with get_session() as session:
            totals = await SpendingAggregator(session).recompute_project_spending(
                args.project_id, args.fiscal_year
            )

        for key, value in totals.rounded().items():
            print(f"  {key}: {value}")
        return 0

    async def _cmd_recalculate_all(self, args: argparse.Namespace) -> int:
        """Recompute every project."""
        print("Recomputing all projects")
        async with get_session() as session:
            result = await SpendingAggregator(session).recompute_all()

        print_fanout(result)
        return 0 if result.complete else 1

    async def _cmd_backfill_rate_history(self, args: argparse.Namespace) -> int:
        """Backfill rate history, then recompute every project."""
        async with get_session() as session:
            result = await RateService(session).backfill_rate_history()

        print(f"Created rate history for {result.created} user(s)")
        print_fanout(result.fanout)
        return 0 if result.fanout.complete else 1


def main() -> int:
    """CLI entry point."""
    cli = TimebudgetCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
