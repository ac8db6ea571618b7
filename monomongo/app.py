"""Command line entry point: connect and hold the connection open."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from pymongo.errors import PyMongoError

from .config import ConfigError, Settings, config_path, load_config
from .connections import MongoConnectionError, connect_database
from .termination import TerminationHook

LOG = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


async def run(settings: Settings) -> None:
    """Connect with ``settings`` and block until the connection ends."""

    handle = await connect_database(settings)
    try:
        with TerminationHook(handle):
            await handle.wait()
    finally:
        handle.close()


def main(path: Path | None = None) -> None:
    """Run the connection until interrupted; exit non-zero on failure."""

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    try:
        settings = load_config(path or config_path())
    except ConfigError as exc:
        LOG.error("%s", exc)
        raise SystemExit(1) from exc
    try:
        asyncio.run(run(settings))
    except (MongoConnectionError, PyMongoError) as exc:
        LOG.error("Stopping after fatal MongoDB error: %s", exc)
        raise SystemExit(1) from exc
