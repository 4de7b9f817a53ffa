from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

import pytest

from twinsync.config import SyncConfig
from twinsync.ingestion.poller import AssetPoller, PollerState, capture_snapshot
from twinsync.ingestion.scheduler import TickCallback
from twinsync.models.asset import Asset, AssetPopulation
from twinsync.models.change import ChangeKind


def _dt() -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC)


def _population(lightlevel: int = 9344, *, extra_light: bool = False) -> AssetPopulation:
    lights = [Asset(id="1", name="Hall", type="Extended color light", state={"on": True})]
    if extra_light:
        lights.append(Asset(id="2", name="Desk", type="Dimmable light", state={"on": False}))
    return AssetPopulation(
        lights=lights,
        sensors=[Asset(id="26", name="Level", type="ZLLLightLevel", state={"lightlevel": lightlevel})],
    )


class _FakeCall:
    def __init__(self, scheduler: _FakeScheduler, delay: float, callback: TickCallback) -> None:
        self.scheduler = scheduler
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class _FakeScheduler:
    def __init__(self) -> None:
        self.calls: list[_FakeCall] = []

    def schedule(self, delay: float, callback: TickCallback) -> _FakeCall:
        call = _FakeCall(self, delay, callback)
        self.calls.append(call)
        return call

    @property
    def pending(self) -> list[_FakeCall]:
        return [call for call in self.calls if not call.cancelled]

    async def fire(self) -> None:
        call = self.pending[-1]
        self.calls.remove(call)
        await call.callback()


class _Gateway:
    def __init__(self, *populations: AssetPopulation | Exception) -> None:
        self._queue = list(populations)
        self.observed = 0

    async def observe(self) -> AssetPopulation:
        self.observed += 1
        item = self._queue.pop(0) if len(self._queue) > 1 else self._queue[0]
        if isinstance(item, Exception):
            raise item
        return item


class _MemoryStore:
    def __init__(self, population: AssetPopulation | None = None, *, fail_save: bool = False) -> None:
        self.population = population
        self.saves = 0
        self._fail_save = fail_save

    async def load(self) -> AssetPopulation | None:
        return self.population

    async def save(self, population: AssetPopulation) -> None:
        self.saves += 1
        if self._fail_save:
            raise OSError("read-only file system")
        self.population = population


class _Outbox:
    def __init__(self, fail: bool = False) -> None:
        self.messages: list[dict[str, Any]] = []
        self._fail = fail

    async def __call__(self, payload: dict[str, Any]) -> None:
        if self._fail:
            raise ConnectionError("channel closed")
        self.messages.append(payload)


def _poller(gateway: _Gateway, store: _MemoryStore, outbox: _Outbox, scheduler: _FakeScheduler) -> AssetPoller:
    return AssetPoller(gateway.observe, outbox, store, poll_interval=10.0, scheduler=scheduler, clock=_dt)


@pytest.mark.asyncio
async def test_start_establishes_baseline_and_schedules_first_tick() -> None:
    gateway, store, outbox, scheduler = _Gateway(_population()), _MemoryStore(), _Outbox(), _FakeScheduler()
    poller = _poller(gateway, store, outbox, scheduler)

    assert await poller.start() is True

    assert poller.state == PollerState.RUNNING
    assert store.population == _population()
    assert outbox.messages == []
    assert [call.delay for call in scheduler.pending] == [10.0]


@pytest.mark.asyncio
async def test_start_uses_persisted_baseline_without_observing() -> None:
    gateway, store = _Gateway(_population()), _MemoryStore(_population(100))
    poller = _poller(gateway, store, _Outbox(), _FakeScheduler())

    await poller.start()

    assert gateway.observed == 0
    assert poller.previous == _population(100)


@pytest.mark.asyncio
async def test_start_twice_keeps_single_timer() -> None:
    scheduler = _FakeScheduler()
    poller = _poller(_Gateway(_population()), _MemoryStore(), _Outbox(), scheduler)

    assert await poller.start() is True
    assert await poller.start() is True

    assert len(scheduler.pending) == 1


@pytest.mark.asyncio
async def test_baseline_failure_leaves_poller_stopped() -> None:
    scheduler = _FakeScheduler()
    poller = _poller(_Gateway(ConnectionError("bridge offline")), _MemoryStore(), _Outbox(), scheduler)

    assert await poller.start() is False

    assert not poller.is_running
    assert scheduler.pending == []


@pytest.mark.asyncio
async def test_tick_publishes_changes_and_persists() -> None:
    gateway = _Gateway(_population(9344), _population(8485))
    store, outbox, scheduler = _MemoryStore(), _Outbox(), _FakeScheduler()
    poller = _poller(gateway, store, outbox, scheduler)
    await poller.start()

    await scheduler.fire()

    assert outbox.messages == [
        {
            "timestamp": "2026-01-01T00:00:00Z",
            "changes": [
                {
                    "type": "sensor",
                    "id": "26",
                    "name": "Level",
                    "change": "updated",
                    "assetType": "ZLLLightLevel",
                    "state": None,
                    "properties": [{"property": "lightlevel", "oldValue": 9344, "newValue": 8485}],
                }
            ],
        }
    ]
    assert store.population == _population(8485)
    assert poller.previous == _population(8485)
    assert len(scheduler.pending) == 1


@pytest.mark.asyncio
async def test_quiet_tick_publishes_nothing() -> None:
    outbox, scheduler = _Outbox(), _FakeScheduler()
    poller = _poller(_Gateway(_population()), _MemoryStore(), outbox, scheduler)
    await poller.start()

    assert await poller.tick() == []
    assert outbox.messages == []


@pytest.mark.asyncio
async def test_observe_failure_keeps_held_state() -> None:
    gateway = _Gateway(_population(), ConnectionError("timeout"), _population(extra_light=True))
    outbox, scheduler = _Outbox(), _FakeScheduler()
    poller = _poller(gateway, _MemoryStore(), outbox, scheduler)
    await poller.start()

    await scheduler.fire()
    assert outbox.messages == []
    assert poller.previous == _population()
    assert len(scheduler.pending) == 1

    await scheduler.fire()
    [message] = outbox.messages
    assert [(c["id"], c["change"]) for c in message["changes"]] == [("2", ChangeKind.ADDED.value)]


@pytest.mark.asyncio
async def test_publish_failure_keeps_held_state() -> None:
    store = _MemoryStore()
    poller = _poller(_Gateway(_population(1), _population(2)), store, _Outbox(fail=True), _FakeScheduler())
    await poller.start()
    saves = store.saves

    assert await poller.tick() == []

    assert poller.previous == _population(1)
    assert store.saves == saves


@pytest.mark.asyncio
async def test_persist_failure_is_logged_and_state_advances() -> None:
    store = _MemoryStore(_population(1), fail_save=True)
    outbox = _Outbox()
    poller = _poller(_Gateway(_population(2)), store, outbox, _FakeScheduler())
    await poller.start()

    changes = await poller.tick()

    assert len(changes) == 1
    assert poller.previous == _population(2)


@pytest.mark.asyncio
async def test_pause_resume_and_stop() -> None:
    scheduler = _FakeScheduler()
    poller = _poller(_Gateway(_population()), _MemoryStore(), _Outbox(), scheduler)

    assert poller.pause() is False
    await poller.start()

    assert poller.pause() is True
    assert poller.pause() is False
    assert poller.is_running and poller.is_paused
    assert scheduler.pending == []

    poller.resume()
    assert not poller.is_paused
    assert len(scheduler.pending) == 1

    poller.resume()
    assert len(scheduler.pending) == 1

    poller.stop()
    poller.stop()
    assert poller.state == PollerState.STOPPED
    assert scheduler.pending == []

    poller.resume()
    assert scheduler.pending == []


@pytest.mark.asyncio
async def test_snapshot_leaves_diff_state_untouched() -> None:
    gateway = _Gateway(_population(1), _population(2))
    poller = _poller(gateway, _MemoryStore(), _Outbox(), _FakeScheduler())
    await poller.start()

    snapshot = await poller.snapshot()

    assert snapshot.timestamp == _dt()
    assert snapshot.population() == _population(2)
    assert poller.previous == _population(1)


@pytest.mark.asyncio
async def test_snapshot_failure_is_raised() -> None:
    poller = _poller(_Gateway(ConnectionError("offline")), _MemoryStore(_population()), _Outbox(), _FakeScheduler())

    with pytest.raises(ConnectionError):
        await poller.snapshot()


@pytest.mark.asyncio
async def test_capture_snapshot_publishes_marked_payload_and_resumes() -> None:
    scheduler, outbox = _FakeScheduler(), _Outbox()
    poller = _poller(_Gateway(_population()), _MemoryStore(), _Outbox(), scheduler)
    await poller.start()

    snapshot = await capture_snapshot(poller, outbox)

    [payload] = outbox.messages
    assert payload["snapshot"] is True
    assert payload["timestamp"] == "2026-01-01T00:00:00Z"
    assert [light["id"] for light in payload["lights"]] == ["1"]
    assert snapshot.population() == _population()
    assert not poller.is_paused
    assert len(scheduler.pending) == 1


@pytest.mark.asyncio
async def test_capture_snapshot_resumes_after_failure() -> None:
    gateway = _Gateway(_population(), ConnectionError("offline"))
    scheduler = _FakeScheduler()
    poller = _poller(gateway, _MemoryStore(), _Outbox(), scheduler)
    await poller.start()

    with pytest.raises(ConnectionError):
        await capture_snapshot(poller, _Outbox())

    assert not poller.is_paused
    assert len(scheduler.pending) == 1


class _BlockingGateway:
    """Returns the baseline at once, then blocks every later observation until released."""

    def __init__(self, baseline: AssetPopulation, later: AssetPopulation) -> None:
        self._baseline = baseline
        self._later = later
        self.observed = 0
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def observe(self) -> AssetPopulation:
        self.observed += 1
        if self.observed == 1:
            return self._baseline
        self.entered.set()
        await self.release.wait()
        return self._later


@pytest.mark.asyncio
async def test_ticks_never_overlap() -> None:
    gateway = _BlockingGateway(_population(1), _population(2))
    scheduler, outbox = _FakeScheduler(), _Outbox()
    poller = AssetPoller(gateway.observe, outbox, _MemoryStore(), scheduler=scheduler, clock=_dt)
    await poller.start()

    in_flight = asyncio.create_task(scheduler.fire())
    await gateway.entered.wait()

    assert await poller.tick() == []
    assert gateway.observed == 2
    assert poller.pause() is True
    poller.resume()
    assert scheduler.pending == []

    gateway.release.set()
    await in_flight

    assert gateway.observed == 2
    assert len(outbox.messages) == 1
    assert len(scheduler.pending) == 1


@pytest.mark.asyncio
async def test_unexpected_tick_error_keeps_polling() -> None:
    class _BrokenStore(_MemoryStore):
        async def save(self, population: AssetPopulation) -> None:
            if self.population is not None:
                raise RuntimeError("store backend gone")
            await super().save(population)

    scheduler = _FakeScheduler()
    poller = _poller(_Gateway(_population(1), _population(2)), _BrokenStore(), _Outbox(), scheduler)
    await poller.start()

    await scheduler.fire()

    assert poller.is_running
    assert len(scheduler.pending) == 1


@pytest.mark.asyncio
async def test_from_config_uses_interval_and_channel(caplog: pytest.LogCaptureFixture) -> None:
    scheduler = _FakeScheduler()
    config = SyncConfig(poll_interval_ms=2500, event_channel="assetEvents")
    gateway = _Gateway(_population(1), _population(2))
    poller = AssetPoller.from_config(config, gateway.observe, _Outbox(), _MemoryStore(), scheduler=scheduler)
    await poller.start()

    with caplog.at_level(logging.INFO):
        await poller.tick()

    assert [call.delay for call in scheduler.pending] == [2.5]
    assert "published to assetEvents" in caplog.text
