"""Integration Health Tracker - persistent circuit breaker per indexer / download client.

Hey future me - failures ESCALATE, a single success RESETS:

    record_failure("indexer:3", "timeout")   # level 1 → disabled for 5 min
    record_failure("indexer:3", "timeout")   # level 2 → disabled for 10 min
    record_success("indexer:3")              # level 0, usable again

Mutations of one key are serialised by a KeyedLock AND written with a single-row
upsert, so concurrent searches reporting failures for the same indexer can't lose
an escalation step. The clock is injected so tests can freeze time.
"""

import logging

from grabarr.application.keyed_lock import KeyedLock
from grabarr.config import HealthSettings
from grabarr.domain.entities import IntegrationStatus
from grabarr.domain.ports import IClock
from grabarr.domain.value_objects import IntegrationKey
from grabarr.infrastructure.persistence import Database, IntegrationStatusRepository

logger = logging.getLogger(__name__)


class IntegrationHealthTracker:
    """Records integration failures/successes and answers "may I call it?"."""

    def __init__(
        self,
        database: Database,
        clock: IClock,
        settings: HealthSettings | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self._database = database
        self._clock = clock
        self._settings = settings or HealthSettings()
        self._locks = locks or KeyedLock()

    async def record_failure(self, key: IntegrationKey | str, error: str) -> IntegrationStatus:
        """Escalate the integration's backoff. Returns the new status."""
        key_str = str(key)
        async with self._locks.acquire(f"integration:{key_str}"):
            async with self._database.session_scope() as session:
                repo = IntegrationStatusRepository(session)
                status = await repo.get(key_str) or IntegrationStatus(key_str)
                status.record_failure(
                    self._clock.now(),
                    error,
                    base=self._settings.base_backoff_minutes,
                    maximum=self._settings.max_backoff_minutes,
                    max_level=self._settings.max_escalation_level,
                )
                await repo.save(status)

        logger.warning(
            "Integration %s failed (level %d, disabled until %s): %s",
            key_str,
            status.escalation_level,
            status.disabled_till.isoformat() if status.disabled_till else "-",
            error,
        )
        return status

    async def record_success(self, key: IntegrationKey | str) -> None:
        """Reset the integration to healthy. No write when it already is."""
        key_str = str(key)
        async with self._locks.acquire(f"integration:{key_str}"):
            async with self._database.session_scope() as session:
                repo = IntegrationStatusRepository(session)
                status = await repo.get(key_str)
                if status is None or status.is_healthy:
                    return
                previous_level = status.escalation_level
                status.record_success()
                await repo.save(status)

        logger.info("Integration %s recovered (was level %d)", key_str, previous_level)

    async def get_status(self, key: IntegrationKey | str) -> IntegrationStatus:
        async with self._database.session_scope() as session:
            status = await IntegrationStatusRepository(session).get(str(key))
        return status or IntegrationStatus(str(key))

    async def is_usable(self, key: IntegrationKey | str) -> bool:
        """True unless the integration is inside its backoff window (half-open at expiry)."""
        status = await self.get_status(key)
        return status.is_usable(self._clock.now())

    async def usable_keys(self, keys: list[IntegrationKey]) -> set[IntegrationKey]:
        """Filter keys down to usable ones with a single query."""
        async with self._database.session_scope() as session:
            statuses = {
                s.integration_key: s
                for s in await IntegrationStatusRepository(session).list_all()
            }
        now = self._clock.now()
        return {
            key
            for key in keys
            if str(key) not in statuses or statuses[str(key)].is_usable(now)
        }

    async def list_statuses(self) -> list[IntegrationStatus]:
        async with self._database.session_scope() as session:
            return await IntegrationStatusRepository(session).list_all()
