"""Wattly command line: API server and operator/cron jobs."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any, Awaitable, Callable

from wattly.authz import Actor
from wattly.config.manager import ConfigManager
from wattly.config.schema import AppConfig
from wattly.db.engine import close_db, init_db
from wattly.db.repository import Repository
from wattly.errors import BillingError
from wattly.logging.structured import setup_logging
from wattly.services import Services, build_services

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="wattly", description=__doc__)
    p.add_argument("--defaults", type=Path, default=Path("config.defaults.yaml"))
    p.add_argument("--config", type=Path, default=Path("config.yaml"))
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="run the HTTP API")

    imp = sub.add_parser("import", help="import a CSV load curve")
    imp.add_argument("organization_id", type=int)
    imp.add_argument("path", type=Path)

    for name, helptext in (
        ("recompute", "recompute the monthly allocation"),
        ("generate-invoices", "generate member invoices for a month"),
        ("send-invoices", "send the draft invoices of a month"),
        ("platform-invoice", "generate the platform invoice of a month"),
    ):
        cmd = sub.add_parser(name, help=helptext)
        cmd.add_argument("organization_id", type=int)
        cmd.add_argument("year", type=int)
        cmd.add_argument("month", type=int)
        if name == "generate-invoices":
            cmd.add_argument("--member", type=int, action="append", dest="member_ids")

    overdue = sub.add_parser("check-overdue", help="mark sent invoices past due as overdue")
    overdue.add_argument("--today", type=date.fromisoformat, default=None)

    retry = sub.add_parser("retry-deliveries", help="retry failed document deliveries")
    retry.add_argument("--max-attempts", type=int, default=5)

    return p.parse_args(argv)


async def _run_job(config: AppConfig, job: Callable[[Services], Awaitable[Any]]) -> Any:
    db = await init_db(config.db.path)
    services = build_services(config, Repository(db))
    try:
        return await job(services)
    finally:
        await services.close()
        await close_db()


async def _serve(config: AppConfig, config_manager: ConfigManager) -> None:
    import uvicorn

    from wattly.api.app import create_app

    db = await init_db(config.db.path)
    repo = Repository(db)
    await config_manager.save_version(db)
    services = build_services(config, repo)
    app = create_app(config, repo, services)

    server = uvicorn.Server(uvicorn.Config(
        app,
        host=config.api.host,
        port=config.api.port,
        log_level=config.logging.level.lower(),
        log_config=None,  # keep the structlog handlers
    ))
    try:
        await server.serve()
    finally:
        await services.close()
        await close_db()


def _job(args: argparse.Namespace) -> Callable[[Services], Awaitable[Any]]:
    actor = Actor.system()

    async def run(s: Services) -> Any:
        if args.command == "import":
            return (await s.ingestor.import_csv(actor, args.organization_id, args.path)).to_dict()
        if args.command == "recompute":
            return (await s.allocation.recompute(actor, args.organization_id, args.year, args.month)).to_dict()
        if args.command == "generate-invoices":
            result = await s.invoices.generate(
                actor, args.organization_id, args.year, args.month, args.member_ids,
            )
            return result.to_dict()
        if args.command == "send-invoices":
            reports = await s.dispatcher.send_period(actor, args.organization_id, args.year, args.month)
            return [r.to_dict() for r in reports]
        if args.command == "platform-invoice":
            return await s.platform.generate(actor, args.organization_id, args.year, args.month)
        if args.command == "check-overdue":
            return (await s.lifecycle.check_overdue(args.today)).to_dict()
        if args.command == "retry-deliveries":
            return [r.to_dict() for r in await s.dispatcher.retry_failed_deliveries(args.max_attempts)]
        raise ValueError(f"Unknown command {args.command}")

    return run


def main(argv: list[str] | None = None) -> int:
    """Entry point for the application."""
    args = parse_args(argv)

    config_manager = ConfigManager(args.defaults, args.config)
    try:
        config = config_manager.load()
    except BillingError as e:
        print(json.dumps(e.to_dict(), indent=2, default=str), file=sys.stderr)
        return 2

    setup_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_file=config.logging.file,
    )

    if args.command == "serve":
        asyncio.run(_serve(config, config_manager))
        return 0

    try:
        result = asyncio.run(_run_job(config, _job(args)))
    except BillingError as e:
        logger.error("%s failed: %s", args.command, e)
        print(json.dumps(e.to_dict(), indent=2, default=str), file=sys.stderr)
        return 1
    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
