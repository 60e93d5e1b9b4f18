#!/usr/bin/env python3
"""
Live Score Sync Service - Main Entry Point

Polls the score provider on a fixed cadence, keeps live_scores current and
fans out match notifications. Each cycle takes the shared run lock, so this
service and the HTTP trigger can run side by side.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

# Load .env from backend directory before Config() is used
from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from config import Config
from live_sync.orchestrator import LiveSyncOrchestrator, build_context
from utils.logger import setup_logging

logger = logging.getLogger(__name__)


class LiveSyncService:
    """Main service class for live score sync."""

    def __init__(self, config: Config = None):
        self.config = config or Config()
        self.context = None
        self.orchestrator = None
        self.running = False
        self._stop = asyncio.Event()

    async def start(self, once: bool = False):
        """Start the sync loop (or a single cycle)."""
        logger.info("Starting Live Score Sync Service", extra={
            "version": "1.0.0",
            "environment": self.config.environment,
            "poll_interval_seconds": self.config.poll_interval_seconds,
        })

        self.context = build_context(self.config)
        self.orchestrator = LiveSyncOrchestrator(self.context)

        try:
            if once:
                report = await self.orchestrator.run_cycle()
                logger.info("Single cycle finished", extra=report.to_dict())
                return

            # Set up signal handlers for graceful shutdown
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self._handle_shutdown, sig)

            self.running = True
            await self.run()
        finally:
            await self.context.close()
            logger.info("Live Score Sync Service stopped")

    async def run(self):
        """Run a cycle, then wait poll_interval_seconds (or until shutdown)."""
        while self.running:
            try:
                report = await self.orchestrator.run_cycle()
                if report.skipped:
                    logger.info("Cycle skipped", extra={"reason": report.message})
            except Exception as e:
                logger.error("Live sync cycle failed", extra={
                    "error": str(e),
                    "error_type": type(e).__name__
                }, exc_info=True)

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.config.poll_interval_seconds)
            except asyncio.TimeoutError:
                pass

    def _handle_shutdown(self, signum):
        """Handle shutdown signals gracefully."""
        logger.info("Received shutdown signal", extra={"signal": signum})
        self.running = False
        self._stop.set()


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Live score sync service")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    args = parser.parse_args()

    config = Config()
    setup_logging(config)

    service = LiveSyncService(config)
    try:
        await service.start(once=args.once)
    except KeyboardInterrupt:
        logger.info("Service interrupted by user")
    except Exception as e:
        logger.error("Service crashed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
