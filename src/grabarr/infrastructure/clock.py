"""Wall clock adapter."""

from datetime import UTC, datetime

from grabarr.domain.ports import IClock


class SystemClock(IClock):
    """Timezone-aware UTC wall clock."""

    def now(self) -> datetime:
        return datetime.now(UTC)
