"""Timed polling of the device gateway.

The poller owns the "observe -> diff -> publish -> persist" cycle.  It is
an explicit state machine (``STOPPED``/``RUNNING`` plus a ``paused``
flag) driven by a :class:`~twinsync.ingestion.scheduler.Scheduler`, with
at most one pending timer and never two ticks in flight.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import StrEnum
from typing import Any, Protocol

from twinsync._constants import DEFAULT_EVENT_CHANNEL
from twinsync.config import SyncConfig
from twinsync.exceptions import BaselineError
from twinsync.ingestion.diff import diff_populations
from twinsync.ingestion.scheduler import LoopScheduler, ScheduledCall, Scheduler
from twinsync.models._base import utcnow
from twinsync.models.asset import AssetPopulation, AssetSnapshot
from twinsync.models.change import AssetChange, AssetChangeEvent

_logger = logging.getLogger(__name__)

ObserveFn = Callable[[], Awaitable[AssetPopulation]]
PublishFn = Callable[[dict[str, Any]], Awaitable[None]]


class PopulationStore(Protocol):
    async def load(self) -> AssetPopulation | None: ...

    async def save(self, population: AssetPopulation) -> None: ...


class PollerState(StrEnum):
    STOPPED = "stopped"
    RUNNING = "running"


class AssetPoller:
    """Poll the gateway on a fixed interval and publish detected changes.

    Parameters
    ----------
    observe
        Coroutine function returning the current device population.
    publish
        Coroutine function sending one event payload to the output channel.
    store
        Persistence for the held previous population.
    poll_interval
        Seconds between the end of one tick and the start of the next.
    scheduler
        Timer source; defaults to the running asyncio loop.
    clock
        Timestamp source for emitted events.
    channel
        Name of the output channel, used in log messages.
    """

    def __init__(
        self,
        observe: ObserveFn,
        publish: PublishFn,
        store: PopulationStore,
        *,
        poll_interval: float = 10.0,
        scheduler: Scheduler | None = None,
        clock: Callable[[], datetime] = utcnow,
        channel: str = DEFAULT_EVENT_CHANNEL,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {poll_interval}")
        self._observe = observe
        self._publish = publish
        self._store = store
        self._poll_interval = poll_interval
        self._scheduler: Scheduler = scheduler if scheduler is not None else LoopScheduler()
        self._clock = clock
        self._channel = channel

        self._state = PollerState.STOPPED
        self._paused = False
        self._pending: ScheduledCall | None = None
        self._ticking = False
        self._previous: AssetPopulation | None = None

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        observe: ObserveFn,
        publish: PublishFn,
        store: PopulationStore,
        *,
        scheduler: Scheduler | None = None,
    ) -> AssetPoller:
        return cls(
            observe,
            publish,
            store,
            poll_interval=config.poll_interval,
            scheduler=scheduler,
            channel=config.event_channel,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == PollerState.RUNNING

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_scheduled(self) -> bool:
        return self._pending is not None

    @property
    def previous(self) -> AssetPopulation | None:
        """The population the next tick diffs against."""
        return self._previous

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Load or establish the baseline and begin ticking.

        Returns ``False`` (and stays stopped) when no baseline could be
        established; the caller is expected to retry later.
        """
        if self.is_running:
            _logger.warning("Asset poller already running")
            return True

        try:
            self._previous = await self._load_or_establish_baseline()
        except BaselineError as exc:
            _logger.error("Asset poller failed to establish baseline: %s", exc)
            return False

        self._state = PollerState.RUNNING
        self._paused = False
        self._schedule_next()
        _logger.info("Asset poller started: polling every %.1fs", self._poll_interval)
        return True

    def stop(self) -> None:
        """Cancel the pending tick. A tick already in flight completes."""
        self._cancel_pending()
        was_running = self.is_running
        self._state = PollerState.STOPPED
        self._paused = False
        if was_running:
            _logger.info("Asset poller stopped")

    def pause(self) -> bool:
        """Suspend ticking while staying logically running.

        Returns ``True`` when a running, unpaused poller was suspended.
        """
        if not self.is_running or self._paused:
            return False
        self._paused = True
        self._cancel_pending()
        _logger.info("Asset poller paused")
        return True

    def resume(self) -> None:
        """Reschedule ticking after :meth:`pause`."""
        if not self.is_running or self._pending is not None:
            return
        was_paused = self._paused
        self._paused = False
        if not self._ticking:
            self._schedule_next()
        if was_paused:
            _logger.info("Asset poller resumed")

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    async def snapshot(self) -> AssetSnapshot:
        """Observe the full population now, leaving diff state untouched."""
        try:
            population = await self._observe()
        except Exception as exc:
            _logger.error("Asset poller failed to capture snapshot: %s", exc)
            raise
        return AssetSnapshot.from_population(population, self._clock())

    async def tick(self) -> list[AssetChange]:
        """Run one poll cycle and return the changes it published.

        Failures are logged and leave the held previous population as it
        was, so the same changes are detected again on the next tick.
        """
        if self._ticking:
            _logger.debug("Poll still in progress; skipping tick")
            return []
        self._ticking = True
        try:
            return await self._poll()
        finally:
            self._ticking = False

    async def _poll(self) -> list[AssetChange]:
        try:
            current = await self._observe()
        except Exception as exc:
            _logger.error("Asset poll failed: %s", exc)
            return []

        changes: list[AssetChange] = []
        if self._previous is not None:
            changes = diff_populations(self._previous, current)

        if changes:
            event = AssetChangeEvent(timestamp=self._clock(), changes=changes)
            try:
                await self._publish(event.to_payload())
            except Exception as exc:
                _logger.error("Failed to publish %d change(s) to %s: %s", len(changes), self._channel, exc)
                return []
            _logger.info("Detected %d change(s), published to %s", len(changes), self._channel)

        self._previous = current
        try:
            await self._store.save(current)
        except OSError as exc:
            _logger.error("Failed to persist snapshot: %s", exc)
        return changes

    async def _load_or_establish_baseline(self) -> AssetPopulation:
        baseline = await self._store.load()
        if baseline is not None:
            _logger.debug("Loaded baseline from store")
            return baseline

        try:
            baseline = await self._observe()
        except Exception as exc:
            raise BaselineError(f"initial observation failed: {exc}") from exc
        try:
            await self._store.save(baseline)
        except OSError as exc:
            raise BaselineError(f"could not persist baseline: {exc}") from exc
        _logger.info("Initial baseline established")
        return baseline

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _schedule_next(self) -> None:
        if not self.is_running or self._paused or self._pending is not None:
            return
        self._pending = self._scheduler.schedule(self._poll_interval, self._on_timer)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    async def _on_timer(self) -> None:
        self._pending = None
        if not self.is_running or self._paused:
            return
        try:
            await self.tick()
        except Exception:
            _logger.exception("Asset poll tick failed")
        finally:
            self._schedule_next()


async def capture_snapshot(poller: AssetPoller, publish: PublishFn) -> AssetSnapshot:
    """Publish a full snapshot while regular ticking is suspended.

    Used to answer an external resync request: the published payload is
    marked with ``"snapshot": true`` so the processing side maps it as a
    full snapshot rather than a delta.
    """
    paused = poller.pause()
    try:
        snapshot = await poller.snapshot()
        payload = snapshot.to_payload()
        payload["snapshot"] = True
        await publish(payload)
        _logger.info(
            "Published snapshot of %d light(s), %d sensor(s)",
            len(snapshot.lights),
            len(snapshot.sensors),
        )
        return snapshot
    finally:
        if paused:
            poller.resume()
