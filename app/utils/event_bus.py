"""
Lightweight EventBus used between the ingestor, the actuation engine and the
notification side effects.

Key invariants (enforced by call sites + tests):
  - Event topics come from enums in app.enums.events (EventType).
  - Payloads are Pydantic models in app.schemas.events.
  - Subscribers always receive a plain dict payload.
  - Callbacks run on the worker pool, never on the publisher's thread, so a
    slow subscriber cannot hold up an MQTT callback or a scheduler tick.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from dataclasses import asdict, is_dataclass
from enum import Enum
from queue import Empty, Full, Queue
from typing import Any, Callable, Dict, Hashable, Iterable

from pydantic import BaseModel

from app.enums.events import EventType

logger = logging.getLogger(__name__)

_DROP_WARNING_THRESHOLD = 10  # Log summary every N drops
_DROP_WARNING_INTERVAL_SECONDS = 60  # Minimum seconds between drop summaries
_STOP = object()


class EventBus:
    """Bounded queue plus a small worker pool fanning events out to subscribers."""

    def __init__(self, queue_size: int = 1024, worker_count: int = 2) -> None:
        self.subscribers: Dict[Hashable, list[Callable[[Any], None]]] = defaultdict(list)
        self.lock = threading.Lock()
        self._queue_size = queue_size
        self._queue: Queue = Queue(maxsize=queue_size)
        self._worker_pool_size = max(1, worker_count)
        self._workers: list[threading.Thread] = []
        self._workers_started = False
        self._dropped_events = 0
        self._drops_by_event: Dict[str, int] = defaultdict(int)
        self._drops_since_last_warning = 0
        self._last_drop_warning_time = 0.0

    def _start_workers(self) -> None:
        with self.lock:
            if self._workers_started:
                return
            for index in range(self._worker_pool_size):
                worker = threading.Thread(
                    target=self._worker_loop,
                    name=f"EventBusWorker-{index}",
                    daemon=True,
                )
                worker.start()
                self._workers.append(worker)
            self._workers_started = True
            logger.info(
                "EventBus workers started (pool=%s queue=%s)",
                self._worker_pool_size,
                self._queue_size,
            )

    def subscribe(self, event_name: EventType | str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """
        Subscribes a callback function to an event.

        Args:
            event_name: The enum topic (preferred) or raw string.
            callback: Function to call when the event occurs.

        Returns:
            A function that removes the subscription.
        """
        name = event_name.value if isinstance(event_name, Enum) else event_name
        with self.lock:
            self.subscribers[name].append(callback)
        self._start_workers()

        def unsubscribe() -> None:
            with self.lock:
                callbacks = self.subscribers.get(name, [])
                try:
                    callbacks.remove(callback)
                except ValueError:
                    return

        return unsubscribe

    def _worker_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                event_name, callback, payload = item
                try:
                    callback(payload)
                except Exception:
                    logger.exception("Error in callback for event %s", event_name)
            finally:
                self._queue.task_done()

    def publish(self, event_name: EventType | str, data: Any | None = None) -> None:
        """
        Queue an event for every subscriber.

        Args:
            event_name: The enum topic (preferred) or raw string.
            data: Payload object (Pydantic model, dataclass, or dict/primitive).
        """
        name = event_name.value if isinstance(event_name, Enum) else event_name

        if isinstance(data, BaseModel):
            payload: Any = data.model_dump(mode="json")
        elif is_dataclass(data):
            payload = asdict(data)
        else:
            payload = data

        with self.lock:
            callbacks: Iterable[Callable[[Any], None]] = list(self.subscribers.get(name, []))
        for callback in callbacks:
            try:
                self._queue.put_nowait((name, callback, payload))
            except Full:
                self._record_drop(name)
                break

    def _record_drop(self, event_name: str) -> None:
        self._dropped_events += 1
        self._drops_by_event[event_name] += 1
        self._drops_since_last_warning += 1

        now = time.time()
        should_warn = (
            self._drops_since_last_warning >= _DROP_WARNING_THRESHOLD
            and (now - self._last_drop_warning_time) >= _DROP_WARNING_INTERVAL_SECONDS
        )
        if should_warn:
            top_drops = sorted(self._drops_by_event.items(), key=lambda x: x[1], reverse=True)[:5]
            logger.warning(
                "EventBus dropping events! queue_size=%d, total_dropped=%d, recent_drops=%d, "
                "top_dropped_events=[%s]. Consider increasing WATERKONTROL_EVENTBUS_QUEUE_SIZE.",
                self._queue_size,
                self._dropped_events,
                self._drops_since_last_warning,
                ", ".join(f"{k}:{v}" for k, v in top_drops),
            )
            self._drops_since_last_warning = 0
            self._last_drop_warning_time = now

    def listener(self, event_name: EventType | str) -> Callable[[Callable[[Any], None]], Callable[[Any], None]]:
        """Decorator for subscribing a function to an event at definition time."""

        def decorator(func: Callable[[Any], None]) -> Callable[[Any], None]:
            self.subscribe(event_name, func)
            return func

        return decorator

    def wait_until_idle(self, timeout: float = 5.0) -> bool:
        """Block until every queued callback ran. Returns False on timeout."""
        deadline = time.monotonic() + timeout
        while self._queue.unfinished_tasks:
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.01)
        return True

    def shutdown(self, timeout: float = 2.0) -> None:
        """Stop the worker pool after the queue drains."""
        with self.lock:
            workers = list(self._workers)
            self._workers = []
            self._workers_started = False
        for _ in workers:
            try:
                self._queue.put(_STOP, timeout=timeout)
            except Full:
                break
        for worker in workers:
            worker.join(timeout=timeout)
        # Discard whatever is left so a restarted pool starts clean
        while True:
            try:
                self._queue.get_nowait()
            except Empty:
                break
            self._queue.task_done()

    def get_metrics(self) -> Dict[str, Any]:
        """Return lightweight metrics for logging."""
        top_dropped = dict(sorted(self._drops_by_event.items(), key=lambda x: x[1], reverse=True)[:5])
        return {
            "queue_depth": self._queue.qsize(),
            "queue_size": self._queue_size,
            "dropped_events": self._dropped_events,
            "drops_by_event_top5": top_dropped,
            "subscribers": sum(len(values) for values in self.subscribers.values()),
            "is_dropping": self._drops_since_last_warning > 0,
        }

