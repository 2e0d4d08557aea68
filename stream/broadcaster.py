"""
Fan-out of one logical sample stream to many independent subscribers.

Every subscriber owns a bounded queue and a delivery task. Producers never
await a subscriber: ``publish_real`` and the synthetic tick only enqueue, and
a full queue sheds its oldest data event (status events are kept). A callback
that raises is removed on its own; the rest keep receiving.

Which producer is live is decided by ``ModeStateMachine.transition``. The
synthetic loop re-checks the mode and enqueues without awaiting in between,
so once a real sample has been published no synthetic tick can follow it.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Union

from protocol.errors import SubscriberDeliveryError
from protocol.types import Sample, StreamEvent, StreamMode
from stream.mode_state_machine import ModeStateMachine
from stream.stream_metrics import (
    active_subscribers,
    subscriber_dropped_events,
    subscriber_failures,
    synthetic_samples_total,
)
from stream.synthetic_generator import SyntheticGenerator

DEFAULT_QUEUE_SIZE = 100

Callback = Callable[[StreamEvent], Union[None, Awaitable[None]]]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubscriptionHandle:
    id: int


@dataclass
class _Subscription:
    handle: SubscriptionHandle
    callback: Callback
    queue_size: int
    pending: Deque[StreamEvent] = field(default_factory=deque)
    ready: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None
    delivered: int = 0
    dropped: int = 0


class Broadcaster:
    def __init__(
        self,
        *,
        generator: Optional[SyntheticGenerator] = None,
        state_machine: Optional[ModeStateMachine] = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        self.generator = generator or SyntheticGenerator()
        self.state_machine = state_machine or ModeStateMachine()
        self.state_machine.on_transition(self._on_mode_change)
        self.queue_size = queue_size
        self.samples_published = 0
        self.synthetic_published = 0
        self._subscriptions: Dict[int, _Subscription] = {}
        self._ids = itertools.count(1)
        self._synthetic_task: Optional[asyncio.Task] = None
        self._wrist_angle: Optional[float] = None
        self._running = False
        self._last_warn = datetime.min.replace(tzinfo=timezone.utc)

    # ─────────── lifecycle ───────────

    @property
    def mode(self) -> StreamMode:
        return self.state_machine.mode

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Begin producing; synthetic data flows until the first real sample."""
        self._running = True
        if not self.state_machine.is_real:
            self._start_synthetic()
        logger.info("Broadcaster started in %s mode", self.mode.value)

    async def stop(self) -> None:
        """Stop the generator and tear down every subscriber's delivery task."""
        self._running = False
        tasks = []
        if self._synthetic_task is not None:
            self._synthetic_task.cancel()
            tasks.append(self._synthetic_task)
            self._synthetic_task = None
        for sub in self._subscriptions.values():
            if sub.task is not None:
                sub.task.cancel()
                tasks.append(sub.task)
        self._subscriptions.clear()
        active_subscribers.set(0)
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Broadcaster stopped")

    # ─────────── subscriptions ───────────

    def subscribe(self, callback: Callback, queue_size: Optional[int] = None) -> SubscriptionHandle:
        """Register a delivery target; must be called from within the event loop.

        The current connection status is queued ahead of any data.
        """
        size = self.queue_size if queue_size is None else queue_size
        if size < 1:
            raise ValueError("queue_size must be >= 1")
        handle = SubscriptionHandle(next(self._ids))
        sub = _Subscription(handle=handle, callback=callback, queue_size=size)
        self._subscriptions[handle.id] = sub
        self._enqueue(sub, StreamEvent.status(self.state_machine.status()))
        sub.task = asyncio.get_running_loop().create_task(
            self._deliver(sub), name=f"subscriber-{handle.id}"
        )
        active_subscribers.set(len(self._subscriptions))
        logger.info("Subscriber %s registered (%s active)", handle.id, len(self._subscriptions))
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        sub = self._subscriptions.pop(handle.id, None)
        if sub is None:
            return False
        if sub.task is not None and sub.task is not asyncio.current_task():
            sub.task.cancel()
        active_subscribers.set(len(self._subscriptions))
        logger.info("Subscriber %s removed (%s active)", handle.id, len(self._subscriptions))
        return True

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    # ─────────── producers ───────────

    def publish_real(self, sample: Sample) -> None:
        """Deliver one hardware sample; the first one switches to real mode."""
        self.state_machine.hardware_connected()
        self._broadcast(StreamEvent.sample(self._merge_wrist_angle(sample)))

    def hardware_lost(self) -> None:
        """Fall back to synthetic data after the hardware link went away."""
        self.state_machine.hardware_lost()

    def set_wrist_angle(self, angle: Optional[float]) -> None:
        """Latest perception estimate, merged into samples that carry none."""
        self._wrist_angle = None if angle is None else float(angle)

    def diagnostics(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "hardwareConnected": self.state_machine.is_real,
            "activeSubscribers": len(self._subscriptions),
            "samplesPublished": self.samples_published,
            "syntheticPublished": self.synthetic_published,
            "droppedEvents": sum(s.dropped for s in self._subscriptions.values()),
        }

    # ─────────── internals ───────────

    def _on_mode_change(self, old: StreamMode, new: StreamMode) -> None:
        if new is StreamMode.REAL:
            self._stop_synthetic()
        self._broadcast(StreamEvent.status(self.state_machine.status()))
        if new is StreamMode.SYNTHETIC and self._running:
            self._start_synthetic()

    def _start_synthetic(self) -> None:
        if self._synthetic_task is None or self._synthetic_task.done():
            self._synthetic_task = asyncio.get_running_loop().create_task(
                self._synthetic_loop(), name="synthetic-generator"
            )

    def _stop_synthetic(self) -> None:
        if self._synthetic_task is not None:
            self._synthetic_task.cancel()
            self._synthetic_task = None

    async def _synthetic_loop(self) -> None:
        while True:
            if self.state_machine.is_real:
                return
            sample = self._merge_wrist_angle(self.generator.sample())
            self.synthetic_published += 1
            synthetic_samples_total.inc()
            self._broadcast(StreamEvent.sample(sample))
            await asyncio.sleep(self.generator.dt)

    def _merge_wrist_angle(self, sample: Sample) -> Sample:
        if sample.wrist_angle is None and self._wrist_angle is not None:
            return sample.model_copy(update={"wrist_angle": self._wrist_angle})
        return sample

    def _broadcast(self, event: StreamEvent) -> None:
        if not event.is_status:
            self.samples_published += 1
        for sub in list(self._subscriptions.values()):
            self._enqueue(sub, event)

    def _enqueue(self, sub: _Subscription, event: StreamEvent) -> None:
        if len(sub.pending) >= sub.queue_size:
            self._drop_oldest(sub)
        sub.pending.append(event)
        sub.ready.set()

    def _drop_oldest(self, sub: _Subscription) -> None:
        for i, queued in enumerate(sub.pending):
            if not queued.is_status:
                del sub.pending[i]
                break
        else:
            sub.pending.popleft()
        sub.dropped += 1
        subscriber_dropped_events.inc()
        self._warn_drop(f"Subscriber {sub.handle.id} is falling behind; dropping oldest events")

    async def _deliver(self, sub: _Subscription) -> None:
        while True:
            if not sub.pending:
                sub.ready.clear()
                await sub.ready.wait()
                continue
            event = sub.pending.popleft()
            try:
                if asyncio.iscoroutinefunction(sub.callback):
                    await sub.callback(event)
                else:
                    sub.callback(event)
            except Exception as exc:
                error = SubscriberDeliveryError(sub.handle.id, exc)
                logger.error("%s", error)
                subscriber_failures.inc()
                self.unsubscribe(sub.handle)
                return
            sub.delivered += 1

    def _warn_drop(self, msg: str) -> None:
        now = datetime.now(timezone.utc)
        if now - self._last_warn > timedelta(seconds=5):
            logger.warning(msg)
            self._last_warn = now
