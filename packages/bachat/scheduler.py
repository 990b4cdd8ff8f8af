"""Debounced, coalescing upload scheduler.

At most one upload is outstanding at a time. ``schedule()`` while an upload
is pending (waiting on its timer or running) is absorbed: it neither queues a
second upload nor extends the timer. A change made while an upload runs is
therefore only picked up by the next schedule after it finishes.

Each :class:`~bachat.sync.SyncCoordinator` owns one scheduler; there is no
process-wide state.
"""

from __future__ import annotations

import functools
import threading
from collections.abc import Callable
from typing import Any, Protocol

from .logging_setup import get_logger

_logger = get_logger("bachat.scheduler")


class TimerLike(Protocol):
    daemon: bool

    def start(self) -> None: ...

    def cancel(self) -> None: ...


type TimerFactory = Callable[[float, Callable[[], Any]], TimerLike]


class UploadScheduler:
    def __init__(
        self,
        action: Callable[[], Any],
        delay: float = 3.0,
        *,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        if delay < 0:
            raise ValueError("delay must be non-negative")
        self._action = action
        self.delay = delay
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: TimerLike | None = None
        self._pending = False
        self._running = False
        # Bumped on cancel/flush so a stale timer callback becomes a no-op.
        self._generation = 0

    @property
    def pending(self) -> bool:
        """True from ``schedule()`` until the upload has finished (or was cancelled)."""

        with self._lock:
            return self._pending

    def schedule(self, delay: float | None = None) -> bool:
        """Arrange one upload after ``delay`` seconds; ``False`` when absorbed."""

        with self._lock:
            if self._pending:
                return False
            self._pending = True
            self._generation += 1
            timer = self._timer_factory(
                self.delay if delay is None else delay,
                functools.partial(self._fire, self._generation),
            )
            timer.daemon = True
            self._timer = timer
        timer.start()
        return True

    def cancel(self) -> bool:
        """Drop a pending upload that has not started yet."""

        with self._lock:
            if not self._pending or self._running:
                return False
            timer, self._timer = self._timer, None
            self._pending = False
            self._generation += 1
        if timer is not None:
            timer.cancel()
        return True

    def flush(self) -> bool:
        """Run a pending upload now, on the calling thread."""

        with self._lock:
            if not self._pending or self._running:
                return False
            timer, self._timer = self._timer, None
            self._running = True
            self._generation += 1
        if timer is not None:
            timer.cancel()
        self._run()
        return True

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or not self._pending or self._running:
                return
            self._timer = None
            self._running = True
        self._run()

    def _run(self) -> None:
        try:
            self._action()
        except Exception:  # noqa: BLE001 - debounced uploads are best-effort
            _logger.warning("Debounced upload failed; not retrying", exc_info=True)
        finally:
            with self._lock:
                self._running = False
                self._pending = False


__all__ = [
    "TimerFactory",
    "UploadScheduler",
]
