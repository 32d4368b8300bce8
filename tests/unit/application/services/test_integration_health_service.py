"""Tests for the persistent integration circuit breaker."""

import asyncio
from datetime import timedelta

from grabarr.application.services import IntegrationHealthTracker
from grabarr.config import HealthSettings
from grabarr.domain.value_objects import IntegrationKey

IDX1 = IntegrationKey.indexer(1)


async def test_three_failures_escalate_to_level_three(database, clock) -> None:
    tracker = IntegrationHealthTracker(database, clock, HealthSettings(base_backoff_minutes=5))
    for _ in range(3):
        status = await tracker.record_failure(IDX1, "timeout")
        clock.advance(seconds=1)

    assert status.escalation_level == 3
    assert status.disabled_till == status.most_recent_failure_at + timedelta(minutes=20)
    assert not await tracker.is_usable(IDX1)


async def test_usable_again_when_window_expires(database, clock) -> None:
    tracker = IntegrationHealthTracker(database, clock)
    await tracker.record_failure(IDX1, "timeout")

    clock.advance(minutes=4)
    assert not await tracker.is_usable(IDX1)
    clock.advance(minutes=1)
    assert await tracker.is_usable(IDX1)


async def test_success_resets(database, clock) -> None:
    tracker = IntegrationHealthTracker(database, clock)
    await tracker.record_failure(IDX1, "timeout")
    await tracker.record_failure(IDX1, "timeout")

    await tracker.record_success(IDX1)

    status = await tracker.get_status(IDX1)
    assert status.escalation_level == 0
    assert status.disabled_till is None
    assert await tracker.is_usable(IDX1)


async def test_success_on_unknown_integration_writes_nothing(database, clock) -> None:
    tracker = IntegrationHealthTracker(database, clock)
    await tracker.record_success(IDX1)
    assert await tracker.list_statuses() == []


async def test_concurrent_failures_are_not_lost(database, clock) -> None:
    tracker = IntegrationHealthTracker(database, clock)
    await asyncio.gather(*(tracker.record_failure(IDX1, "boom") for _ in range(5)))
    assert (await tracker.get_status(IDX1)).escalation_level == 5


async def test_usable_keys_filters_in_one_pass(database, clock) -> None:
    tracker = IntegrationHealthTracker(database, clock)
    idx2 = IntegrationKey.indexer(2)
    await tracker.record_failure(IDX1, "boom")
    assert await tracker.usable_keys([IDX1, idx2]) == {idx2}


async def test_state_survives_restart(database, clock) -> None:
    await IntegrationHealthTracker(database, clock).record_failure(IDX1, "boom")
    fresh = IntegrationHealthTracker(database, clock)
    status = await fresh.get_status(IDX1)
    assert status.escalation_level == 1
    assert status.last_error == "boom"
