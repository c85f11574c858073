"""Ledger Command Line Interface.

Provides batch tools for:
- Schema creation
- Leave type seeding and yearly balance allocation
- Month-end summary generation
- Reporting projection refresh
- Health checks

Usage:
    python -m workforce_ledger.cli init-db
    python -m workforce_ledger.cli seed-leave-types --actor-id X
    python -m workforce_ledger.cli allocate-balances --actor-id X --year 2025
    python -m workforce_ledger.cli generate-summaries --actor-id X --month 1 --year 2025
    python -m workforce_ledger.cli refresh-last-work-dates --actor-id X
    python -m workforce_ledger.cli health
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from decimal import Decimal
from typing import Any, Awaitable, Callable
from uuid import UUID

from sqlalchemy import text

from workforce_ledger.actor import Actor, Role
from workforce_ledger.config import get_settings
from workforce_ledger.database import get_engine, make_session_factory
from workforce_ledger.errors import LedgerError
from workforce_ledger.events import to_jsonable
from workforce_ledger.gateway import LedgerGateway
from workforce_ledger.models import Base

logger = logging.getLogger(__name__)


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


class LedgerCli:
    """Ledger Command Line Interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m workforce_ledger.cli",
            description="Workforce ledger batch tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: DATABASE_URL from the environment)",
        )
        parser.add_argument(
            "--format",
            choices=["text", "json"],
            default="text",
            help="Output format (default: text)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("init-db", help="Create any missing ledger tables")

        seed = subparsers.add_parser("seed-leave-types", help="Insert the default leave types")
        self._add_actor(seed)

        allocate = subparsers.add_parser(
            "allocate-balances",
            help="Allocate annual leave for every active employee",
        )
        self._add_actor(allocate)
        allocate.add_argument("--year", type=int, required=True, help="Balance year")
        allocate.add_argument(
            "--total-days",
            type=Decimal,
            help="Days to allocate (default: the leave type's yearly maximum)",
        )

        generate = subparsers.add_parser(
            "generate-summaries",
            help="Generate monthly summaries for every active employee",
        )
        self._add_actor(generate)
        generate.add_argument("--month", type=int, required=True, help="Month (1-12)")
        generate.add_argument("--year", type=int, required=True, help="Year")
        generate.add_argument(
            "--tax-percentage",
            type=Decimal,
            help="Compute financials at this tax rate while generating",
        )

        refresh = subparsers.add_parser(
            "refresh-last-work-dates",
            help="Rebuild the last check-out projection",
        )
        self._add_actor(refresh)

        subparsers.add_parser("health", help="Check database connectivity")

        return parser

    @staticmethod
    def _add_actor(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--actor-id",
            type=parse_uuid,
            required=True,
            help="Admin user the batch run is recorded against",
        )

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        # Dispatch to command handler
        handlers: dict[str, Callable[[argparse.Namespace], Awaitable[int]]] = {
            "init-db": self._cmd_init_db,
            "seed-leave-types": self._cmd_seed_leave_types,
            "allocate-balances": self._cmd_allocate_balances,
            "generate-summaries": self._cmd_generate_summaries,
            "refresh-last-work-dates": self._cmd_refresh_last_work_dates,
            "health": self._cmd_health,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return asyncio.run(self._with_engine(handler, parsed))
        except LedgerError as exc:
            print(f"Error [{exc.code}]: {exc.message}", file=sys.stderr)
            return 1

    async def _with_engine(
        self,
        handler: Callable[[argparse.Namespace], Awaitable[int]],
        args: argparse.Namespace,
    ) -> int:
        self.engine = get_engine(args.database_url)
        self.gateway = LedgerGateway(
            make_session_factory(self.engine), policy=get_settings().policy
        )
        try:
            return await handler(args)
        finally:
            await self.engine.dispose()

    def _actor(self, args: argparse.Namespace) -> Actor:
        return Actor(user_id=args.actor_id, role=Role.ADMIN)

    def _print(self, args: argparse.Namespace, title: str, data: dict[str, Any]) -> None:
        if args.format == "json":
            print(json.dumps(to_jsonable(data), indent=2))
            return
        print(title)
        for key, value in data.items():
            print(f"  {key}: {value}")

    async def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        print("Schema ready.")
        return 0

    async def _cmd_seed_leave_types(self, args: argparse.Namespace) -> int:
        """Seed leave types."""
        added = await self.gateway.leave_seed_types(self._actor(args))
        self._print(args, "Leave types", {"added": [t.code for t in added]})
        return 0

    async def _cmd_allocate_balances(self, args: argparse.Namespace) -> int:
        """Allocate annual leave."""
        result = await self.gateway.leave_allocate_annual(
            self._actor(args), args.year, args.total_days
        )
        self._print(
            args,
            f"Annual leave allocation for {args.year}",
            {"allocated": len(result.allocated), "reset": len(result.reset)},
        )
        return 0

    async def _cmd_generate_summaries(self, args: argparse.Namespace) -> int:
        """Generate a month of summaries."""
        result = await self.gateway.summary_generate_for_all(
            self._actor(args), args.month, args.year, args.tax_percentage
        )
        self._print(
            args,
            f"Monthly summaries for {args.year}-{args.month:02d}",
            {"generated": len(result.generated), "failed": result.failed},
        )
        # Partial runs are reported, not treated as fatal
        return 0

    async def _cmd_refresh_last_work_dates(self, args: argparse.Namespace) -> int:
        """Refresh projection."""
        count = await self.gateway.report_refresh_last_work_dates(self._actor(args))
        self._print(args, "Last work dates", {"refreshed": count})
        return 0

    async def _cmd_health(self, args: argparse.Namespace) -> int:
        """Check database health."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as exc:
            logger.exception("Database health check failed")
            self._print(args, "Ledger Health Check", {"db": "FAIL", "error": str(exc)})
            return 1
        self._print(args, "Ledger Health Check", {"db": "OK"})
        return 0


def main() -> int:
    """CLI entry point."""
    cli = LedgerCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
