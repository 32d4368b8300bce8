"""Pending Release Worker - ticks the pending release scheduler.

Hey future me - overlapping ticks are SAFE: promotion claims each row with a
single-row DELETE, so even if two ticks (or two processes) race, a release is
grabbed at most once. We still never overlap ticks from THIS worker because
the loop awaits each tick before sleeping.
"""

import asyncio
import contextlib
import logging
from datetime import UTC, datetime
from typing import Any

from grabarr.application.services.pending_release_service import PendingReleaseService

logger = logging.getLogger(__name__)


class PendingReleaseWorker:
    """Background worker that promotes due pending releases."""

    def __init__(
        self,
        scheduler: PendingReleaseService,
        check_interval: int = 60,
    ) -> None:
        self._scheduler = scheduler
        self._check_interval = check_interval
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._stats: dict[str, Any] = {
            "ticks_completed": 0,
            "releases_promoted": 0,
            "releases_discarded": 0,
            "last_tick_at": None,
            "last_error": None,
        }

    async def start(self) -> None:
        if self._running:
            logger.warning("Pending release worker is already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Pending release worker started (interval=%ds)", self._check_interval)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Pending release worker stopped")

    async def run_once(self) -> None:
        report = await self._scheduler.tick()
        self._stats["ticks_completed"] += 1
        self._stats["releases_promoted"] += len(report.promoted)
        self._stats["releases_discarded"] += report.discarded
        self._stats["last_tick_at"] = datetime.now(UTC).isoformat()
        self._stats["last_error"] = None

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("Pending release tick failed: %s", e)
                self._stats["last_error"] = str(e)

            await asyncio.sleep(self._check_interval)

    def get_stats(self) -> dict[str, Any]:
        return {
            **self._stats,
            "running": self._running,
            "check_interval": self._check_interval,
        }


def create_pending_release_worker(
    scheduler: PendingReleaseService, check_interval: int = 60
) -> PendingReleaseWorker:
    """Create a PendingReleaseWorker with the given configuration."""
    return PendingReleaseWorker(scheduler=scheduler, check_interval=check_interval)
