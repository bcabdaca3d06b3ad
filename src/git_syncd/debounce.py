import logging
import threading
from collections.abc import Callable
from typing import Any, Protocol

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class TimerHandle(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], Any]], TimerHandle]


class Debouncer:
    """Coalesces bursts of activity into a single settle callback.

    Every `trigger()` cancels the pending countdown and starts a new one, so
    the callback runs once, `delay` seconds after the last trigger. Callbacks
    of cancelled countdowns never run, even if their timer thread already
    woke up.

    Attributes:
        delay (float): Quiet period in seconds.
        name (str): Label used in log messages.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], None],
        name: str = "",
        timer_factory: TimerFactory = threading.Timer,
    ):
        self.delay = delay
        self.name = name
        self._callback = callback
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: TimerHandle | None = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        """True while a countdown is running."""
        with self._lock:
            return self._timer is not None

    def trigger(self) -> None:
        """Records activity and (re)arms the countdown."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            timer = self._timer_factory(self.delay, lambda: self._fire(generation))
            if isinstance(timer, threading.Timer):
                timer.daemon = True
            self._timer = timer
            timer.start()
        logger.debug(f"BUFFER {self.name}: Waiting for more changes...")

    def cancel(self) -> None:
        """Disarms the countdown without firing."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        logger.debug(f"BUFFER {self.name}: Done waiting.")
        self._callback()
