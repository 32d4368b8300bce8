"""Acquisition Worker - runs the periodic sync cycle.

Hey future me - this worker is DUMB on purpose. All decisions live in
AcquisitionService.run_cycle(); we only call it every ``sync_interval`` seconds
and keep some stats for the status view.

stop() cancels the acquisition service FIRST so in-flight indexer searches are
abandoned instead of waiting out their timeouts.
"""

import asyncio
import contextlib
import logging
from datetime import UTC, datetime
from typing import Any

from grabarr.application.services.acquisition_service import AcquisitionService

logger = logging.getLogger(__name__)


class AcquisitionWorker:
    """Background worker that triggers acquisition cycles."""

    def __init__(
        self,
        acquisition: AcquisitionService,
        sync_interval: int = 900,
    ) -> None:
        """Initialize the worker.

        Args:
            acquisition: Service that runs one cycle
            sync_interval: Seconds between cycles (default: 15 minutes)
        """
        self._acquisition = acquisition
        self._sync_interval = sync_interval
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._stats: dict[str, Any] = {
            "cycles_completed": 0,
            "releases_grabbed": 0,
            "releases_deferred": 0,
            "last_cycle_at": None,
            "last_error": None,
        }

    async def start(self) -> None:
        """Start the background loop. Calling it twice is a no-op."""
        if self._running:
            logger.warning("Acquisition worker is already running")
            return
        self._acquisition.resume()
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Acquisition worker started (interval=%ds)", self._sync_interval)

    async def stop(self) -> None:
        self._running = False
        self._acquisition.cancel()
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Acquisition worker stopped")

    async def run_once(self) -> None:
        """Run one cycle and update stats."""
        report = await self._acquisition.run_cycle()
        self._stats["cycles_completed"] += 1
        self._stats["releases_grabbed"] += report.grabbed
        self._stats["releases_deferred"] += report.deferred
        self._stats["last_cycle_at"] = datetime.now(UTC).isoformat()
        self._stats["last_error"] = None

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Log but don't crash - next cycle tries again
                logger.exception("Acquisition cycle failed: %s", e)
                self._stats["last_error"] = str(e)

            await asyncio.sleep(self._sync_interval)

    def get_stats(self) -> dict[str, Any]:
        return {
            **self._stats,
            "running": self._running,
            "sync_interval": self._sync_interval,
        }


def create_acquisition_worker(
    acquisition: AcquisitionService, sync_interval: int = 900
) -> AcquisitionWorker:
    """Create an AcquisitionWorker with the given configuration."""
    return AcquisitionWorker(acquisition=acquisition, sync_interval=sync_interval)
