from __future__ import annotations

import asyncio

from produce_sync.application.background_sync import BackgroundSyncService
from produce_sync.application.retry_policy import RetryPolicy
from produce_sync.domain.sync_models import SyncStatus, SyncTask


def _counting_task(calls: list[str], task_id: str = "orders", *, fail: bool = False, priority: int = 1) -> SyncTask:
    async def _action() -> None:
        calls.append(task_id)
        if fail:
            raise RuntimeError(f"{task_id} failed")

    return SyncTask(id=task_id, name=task_id.title(), action=_action, priority=priority)


def test_reconnect_runs_an_automatic_cycle(notifier) -> None:
    service = BackgroundSyncService(notifier=notifier, initially_online=False, settle_delay_seconds=0.01)
    calls: list[str] = []
    service.register(_counting_task(calls))

    async def scenario():
        service.set_online(True)
        await asyncio.sleep(0.05)

    asyncio.run(scenario())

    assert calls == ["orders"]
    assert service.status.is_syncing is False
    assert service.status.last_sync_at is not None
    assert notifier.titles == ["Conexão restaurada", "Sincronização completa"]


def test_flapping_connection_starts_no_cycle(notifier) -> None:
    service = BackgroundSyncService(notifier=notifier, initially_online=False, settle_delay_seconds=0.03)
    calls: list[str] = []
    service.register(_counting_task(calls))

    async def scenario():
        service.set_online(True)
        await asyncio.sleep(0.005)
        service.set_online(False)
        await asyncio.sleep(0.06)

    asyncio.run(scenario())

    assert calls == []
    assert service.is_online is False


def test_automatic_cycle_respects_backoff_but_manual_sync_does_not(notifier, frozen_clock) -> None:
    service = BackgroundSyncService(
        notifier=notifier,
        initially_online=True,
        settle_delay_seconds=0,
        retry_policy=RetryPolicy(initial_backoff_seconds=60),
        clock=frozen_clock,
    )
    calls: list[str] = []
    service.register(_counting_task(calls, fail=True))

    async def scenario():
        await service.sync_now()
        service.set_online(False)
        service.set_online(True)
        await asyncio.sleep(0.02)
        after_reconnect = list(calls)
        await service.sync_now()
        return after_reconnect

    after_reconnect = asyncio.run(scenario())

    assert after_reconnect == ["orders"]
    assert calls == ["orders", "orders"]


def test_sync_now_returns_cycle_result(notifier) -> None:
    service = BackgroundSyncService(notifier=notifier)
    calls: list[str] = []
    service.register(_counting_task(calls, "a", priority=2))
    service.register(_counting_task(calls, "b", priority=1))

    result = asyncio.run(service.sync_now())

    assert calls == ["b", "a"]
    assert result.total == 2
    assert result.completed == 2
    assert result.cycle_id.startswith("cyc-")


def test_trigger_sync_returns_scheduled_cycle(notifier) -> None:
    service = BackgroundSyncService(notifier=notifier)
    calls: list[str] = []
    service.register(_counting_task(calls))

    async def scenario():
        cycle = service.trigger_sync()
        return await cycle

    result = asyncio.run(scenario())

    assert result.completed == 1


def test_mounted_task_only_runs_while_mounted(notifier) -> None:
    service = BackgroundSyncService(notifier=notifier)
    calls: list[str] = []

    with service.mounted(_counting_task(calls, "screen")):
        asyncio.run(service.sync_now())
    asyncio.run(service.sync_now())

    assert calls == ["screen"]


def test_subscribers_see_status_changes(notifier) -> None:
    service = BackgroundSyncService(notifier=notifier)
    seen: list[SyncStatus] = []
    unsubscribe = service.subscribe(seen.append)

    service.set_online(False)
    unsubscribe()
    service.set_online(True)

    assert [status.is_online for status in seen] == [False]


def test_shutdown_stops_triggers_and_releases_listeners(notifier) -> None:
    service = BackgroundSyncService(notifier=notifier)
    calls: list[str] = []
    service.register(_counting_task(calls))
    service.subscribe(lambda status: None)

    service.shutdown()
    service.shutdown()

    async def scenario():
        return service.trigger_sync(), await service.sync_now()

    triggered, result = asyncio.run(scenario())

    assert triggered is None
    assert result is None
    assert calls == []
    assert len(service.registry) == 0
    assert service.status_bus.listener_count == 0
