"""Runtime lifecycle - wires the acquisition core and runs its workers.

Hey future me - AcquisitionRuntime is the ONLY place that knows how the pieces
fit together. The host application supplies the collaborators we don't own
(release parser, wanted media source, import handler) plus the configured
indexers and download clients; we build everything else:

    Database → health tracker, blocklist, profiles
             → grab → delay policy → acquisition
             → queue (re-search wired back into acquisition)
             → pending scheduler
             → workers

ONE KeyedLock instance is shared by every service so "pending:<m>:<e>",
"queue:<id>" and "integration:<key>" mean the same lock everywhere. Build two
and you lose mutual exclusion silently!

Use it as an async context manager:

    async with AcquisitionRuntime(parser, wanted, settings=settings) as runtime:
        await runtime.acquisition.search_now(42)
"""

import logging
from collections.abc import Iterable
from pathlib import Path
from types import TracebackType
from typing import Any

from sqlalchemy.engine import make_url

from grabarr.application.keyed_lock import KeyedLock
from grabarr.application.services import (
    AcquisitionService,
    BlocklistService,
    DelayPolicyService,
    GrabService,
    IntegrationHealthTracker,
    IntegrationRegistry,
    PendingReleaseService,
    ProfileService,
    QueueService,
    ReleaseEvaluationService,
)
from grabarr.application.workers import (
    create_acquisition_worker,
    create_download_monitor_worker,
    create_pending_release_worker,
)
from grabarr.config import Settings, get_settings
from grabarr.domain.exceptions import ConfigurationError
from grabarr.domain.ports import (
    IClock,
    IDownloadClient,
    IImportHandler,
    IReleaseParser,
    ISearchIndexer,
    IWantedMediaSource,
)
from grabarr.infrastructure.clock import SystemClock
from grabarr.infrastructure.observability import configure_logging
from grabarr.infrastructure.persistence import Database

logger = logging.getLogger(__name__)


# Hey future me, this validates SQLite paths BEFORE we create the engine! SQLite needs to create
# -journal/-wal files next to the .db file, so a missing or read-only directory fails much later
# with a cryptic "unable to open database file". Only runs for file-based SQLite URLs.
def validate_sqlite_path(url: str) -> None:
    """Ensure the directory of a SQLite database exists and is writable.

    Raises:
        ConfigurationError: If the directory can't be created or written
    """
    parsed = make_url(url)
    if not parsed.drivername.startswith("sqlite") or not parsed.database:
        return
    if parsed.database == ":memory:":
        return

    db_path = Path(parsed.database)
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to create SQLite database directory '{db_path.parent}': {exc}. "
            "Update DATABASE__URL or adjust directory permissions."
        ) from exc

    test_file = db_path.parent / f".{db_path.stem}_write_test"
    try:
        test_file.write_bytes(b"test")
        test_file.unlink()
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to write files in database directory '{db_path.parent}': {exc}. "
            "SQLite requires write permissions to create database and journal files."
        ) from exc


class AcquisitionRuntime:
    """Builds the service graph and owns the worker lifecycle."""

    def __init__(
        self,
        parser: IReleaseParser,
        wanted_source: IWantedMediaSource,
        settings: Settings | None = None,
        import_handler: IImportHandler | None = None,
        indexers: Iterable[ISearchIndexer] = (),
        download_clients: Iterable[IDownloadClient] = (),
        clock: IClock | None = None,
        create_tables: bool = False,
    ) -> None:
        """Wire the acquisition core.

        Args:
            parser: Release title parser
            wanted_source: Library view of what is wanted
            settings: Settings, defaults to get_settings()
            import_handler: Import collaborator for completed downloads
            indexers: Configured search integrations
            download_clients: Configured download clients
            clock: Clock, defaults to the system clock
            create_tables: Create tables on start (tests / first run without alembic)
        """
        self.settings = settings or get_settings()
        self._create_tables = create_tables
        self._started = False

        self.clock = clock or SystemClock()
        self.locks = KeyedLock()
        self.database = Database(self.settings.database)
        self.registry = IntegrationRegistry(list(indexers), list(download_clients))

        self.health = IntegrationHealthTracker(
            self.database, self.clock, self.settings.health, self.locks
        )
        self.blocklist = BlocklistService(self.database, self.clock)
        self.profiles = ProfileService(self.database)
        self.evaluation = ReleaseEvaluationService(parser, self.blocklist)
        self.grab = GrabService(self.database, self.registry, self.health, self.clock)
        self.policy = DelayPolicyService(self.database, self.grab, self.clock, self.locks)
        self.acquisition = AcquisitionService(
            self.database,
            self.registry,
            self.health,
            self.evaluation,
            self.policy,
            wanted_source,
            self.settings.search,
        )
        self.queue = QueueService(
            self.database,
            self.registry,
            self.health,
            self.blocklist,
            self.clock,
            self.locks,
            max_research_retries=self.settings.search.max_research_retries,
        )
        self.queue.set_research_handler(self._research)
        self.pending = PendingReleaseService(
            self.database, self.grab, wanted_source, self.clock, self.locks
        )

        scheduler = self.settings.scheduler
        self.acquisition_worker = create_acquisition_worker(
            self.acquisition, scheduler.sync_interval_seconds
        )
        self.pending_worker = create_pending_release_worker(
            self.pending, scheduler.pending_check_interval_seconds
        )
        self.monitor_worker = create_download_monitor_worker(
            self.queue,
            self.registry,
            self.health,
            import_handler,
            scheduler.status_poll_interval_seconds,
        )

    async def _research(self, media_id: int, episode_id: int | None) -> None:
        await self.acquisition.search_now(media_id, episode_id, direct=False)

    async def start(self) -> None:
        """Configure logging, prepare the database and start every worker."""
        if self._started:
            return

        configure_logging(
            log_level=self.settings.observability.log_level,
            json_format=self.settings.observability.log_json_format,
            app_name=self.settings.app_name,
        )
        logger.info("Starting %s", self.settings.app_name)

        validate_sqlite_path(self.settings.database.url)
        if self._create_tables:
            await self.database.create_tables()

        created = await self.profiles.ensure_defaults()
        if created:
            logger.info("Created %d default quality profile(s)", created)

        # Monitor first: it finishes interrupted failure pipelines before new grabs
        await self.monitor_worker.start()
        await self.pending_worker.start()
        await self.acquisition_worker.start()
        self._started = True
        logger.info(
            "%s started (%d indexer(s), %d download client(s))",
            self.settings.app_name,
            len(self.registry.indexers()),
            len(self.registry.download_clients()),
        )

    async def stop(self) -> None:
        """Stop workers in reverse order and release resources."""
        if not self._started:
            await self.database.close()
            return

        await self.acquisition_worker.stop()
        await self.pending_worker.stop()
        await self.monitor_worker.stop()

        for integration in [*self.registry.indexers(), *self.registry.download_clients()]:
            close = getattr(integration, "close", None)
            if close is not None:
                await close()

        await self.database.close()
        self._started = False
        logger.info("%s stopped", self.settings.app_name)

    def get_status(self) -> dict[str, Any]:
        return {
            "running": self._started,
            "workers": {
                "acquisition": self.acquisition_worker.get_stats(),
                "pending": self.pending_worker.get_stats(),
                "monitor": self.monitor_worker.get_stats(),
            },
        }

    async def __aenter__(self) -> "AcquisitionRuntime":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()
