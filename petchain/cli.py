"""Command line entrypoint for the offline sync agent."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from .cloudsync import SyncContext
from .config import ConfigError, load_config
from .const import CONF_BASE_URL, CONF_STORE_PATH, CONF_SYNC_INTERVAL, CONF_TIMEOUT

_LOGGER = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay queued PetChain mutations against the remote API")
    parser.add_argument("--config", type=Path, help="YAML file with sync settings")
    parser.add_argument("--base-url", help="Remote API base URL")
    parser.add_argument("--db", help="SQLite path for queue, status and credentials")
    parser.add_argument("--interval", type=int, help="Seconds between flushes")
    parser.add_argument("--timeout", type=float, help="Request timeout in seconds")
    parser.add_argument("--once", action="store_true", help="Flush once, print the status and exit")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser.parse_args(argv)


async def main_async(args: argparse.Namespace) -> int:
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
    try:
        config = load_config(
            args.config,
            {
                CONF_BASE_URL: args.base_url,
                CONF_STORE_PATH: args.db,
                CONF_SYNC_INTERVAL: args.interval,
                CONF_TIMEOUT: args.timeout,
            },
        )
    except ConfigError as err:
        _LOGGER.error("%s", err)
        return 2

    async with SyncContext(config) as context:
        if args.once:
            await context.async_sync_now()
            print(json.dumps(await context.status(), indent=2, sort_keys=True))
            return 0
        _LOGGER.info("Starting sync loop against %s every %ss", config.base_url, config.sync_interval)
        await context.run_forever()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        return asyncio.run(main_async(args))
    except KeyboardInterrupt:  # pragma: no cover - manual interruption
        _LOGGER.info("Sync agent stopped")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
