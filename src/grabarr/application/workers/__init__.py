"""Worker system - background loops of the acquisition core."""

from grabarr.application.workers.acquisition_worker import (
    AcquisitionWorker,
    create_acquisition_worker,
)
from grabarr.application.workers.download_monitor_worker import (
    DownloadMonitorWorker,
    create_download_monitor_worker,
)
from grabarr.application.workers.pending_release_worker import (
    PendingReleaseWorker,
    create_pending_release_worker,
)

__all__ = [
    "AcquisitionWorker",
    "DownloadMonitorWorker",
    "PendingReleaseWorker",
    "create_acquisition_worker",
    "create_download_monitor_worker",
    "create_pending_release_worker",
]
