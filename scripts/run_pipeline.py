"""
Register the remote Takeout folder's archives and run the pipeline.

Usage:
    python scripts/run_pipeline.py            # tick until interrupted
    python scripts/run_pipeline.py --drain    # stop once nothing is left to do
    python scripts/run_pipeline.py --no-sync  # skip the remote listing
"""

import argparse
import asyncio
import signal
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import build_engine, build_session_maker
from core.exceptions import TransportError
from core.logging import setup_logging
from models import Base
from pipeline.factory import build_pipeline
from pipeline.remote import register_remote_archives

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run the Takeout processing pipeline")
    parser.add_argument("--folder-id", default=settings.TAKEOUT_FOLDER_ID, help="Remote folder holding the archives")
    parser.add_argument("--no-sync", action="store_true", help="Do not list the remote folder first")
    parser.add_argument("--drain", action="store_true", help="Exit once no work is left")
    return parser.parse_args(argv)


async def run_pipeline(args) -> int:
    engine = build_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    scheduler = build_pipeline(build_session_maker(engine))

    try:
        if not args.no_sync:
            if not args.folder_id:
                logger.error("No remote folder configured (TAKEOUT_FOLDER_ID or --folder-id)")
                return 1
            try:
                await register_remote_archives(scheduler.processors.remote, scheduler.repository, args.folder_id)
            except TransportError as e:
                logger.error(f"Remote sync failed: {e}")
                return 1

        if args.drain:
            await scheduler.repository.recover_interrupted()
            ticks = await scheduler.drain()
            logger.info(f"Pipeline idle after {ticks} ticks")
            return 0

        stopped = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stopped.set)

        await scheduler.start()
        await stopped.wait()

        logger.info("Stopping pipeline, waiting for units in flight")
        scheduler.stop()
        await scheduler.wait_idle()
        return 0
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(run_pipeline(parse_args())))
