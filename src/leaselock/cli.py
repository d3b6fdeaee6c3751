"""CLI entrypoint for provisioning and sweeping lock spaces."""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Optional, Sequence

from pydantic import ValidationError
from redis.asyncio import Redis

from leaselock.core.errors import LockError
from leaselock.core.models import as_configuration_error
from leaselock.core.schema import SchemaManager
from leaselock.core.settings import LockSettings
from leaselock.core.space_redis import RedisLockSpace
from leaselock.core.sweeper import ExpirationSweeper, SweeperAgent
from leaselock.utils.logging import get_logger, set_level


logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="leaselock", description="Manage Redis-backed lock spaces.")
    parser.add_argument("--config", type=Path, default=None, help="Path to settings YAML")
    parser.add_argument("--space", default=None, help="Override the space name")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("setup", help="Provision the lock space")
    sub.add_parser("teardown", help="Drop the lock space and every record in it")

    sweep = sub.add_parser("sweep", help="Delete expired locks")
    sweep.add_argument("--forever", action="store_true", help="Keep sweeping every interval")
    sweep.add_argument("--limit", type=int, default=None, help="Rows deleted per pass")

    status = sub.add_parser("status", help="Show the current holder of a resource")
    status.add_argument("resource")
    return parser


def load_settings(args: argparse.Namespace) -> LockSettings:
    settings = LockSettings.from_file(args.config) if args.config else LockSettings()
    data = settings.model_dump()
    if args.space:
        data["space"] = args.space
    if getattr(args, "limit", None) is not None:
        data["sweeper"]["limit"] = args.limit
    try:
        return LockSettings.model_validate(data)
    except ValidationError as exc:
        raise as_configuration_error(exc) from exc


async def run(args: argparse.Namespace) -> int:
    settings = load_settings(args)
    set_level(settings.log_level)
    redis = Redis.from_url(settings.redis_url, decode_responses=True)
    space = RedisLockSpace(redis, name=settings.space)
    try:
        if args.command == "setup":
            await SchemaManager(redis, space=settings.space).setup()
        elif args.command == "teardown":
            await SchemaManager(redis, space=settings.space).tear_down()
        elif args.command == "sweep":
            sweeper = ExpirationSweeper(space, settings.sweeper)
            if args.forever:
                agent = SweeperAgent(sweeper)
                try:
                    await agent.run()
                except asyncio.CancelledError:
                    logger.info("Sweeper interrupted after %d row(s)", agent.total_swept)
                    raise
            else:
                print(await sweeper.process())
        elif args.command == "status":
            record = await space.get(args.resource)
            print(json.dumps(record.model_dump() if record else None))
    finally:
        await space.close()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130
    except LockError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
