"""
Fixed-Period Control Clocks

Two clocks share one interface:

- RealTimeClock: blocks on the wall clock until the control period has
  elapsed, by spin-polling a high-resolution timer. OS sleep granularity is
  coarser than sub-millisecond control periods, so sleeping would miss the
  deadline. The spin checks an optional cancel event so a shutdown request
  is never stuck behind a tick.
- SimulatedClock: advances exactly one period per tick without waiting.
  Used for deterministic tests and offline runs.

Both report the elapsed time since start and the delta since the previous
tick. For the real-time clock the delta is the measured one, not the
nominal period, so scheduling jitter flows into the plant integration.
"""

from abc import ABC, abstractmethod
import threading
import time
from typing import Callable, Optional


class Clock(ABC):
    """Abstract fixed-period control clock."""

    def __init__(self, frequency: float):
        """
        Parameters
        ----------
        frequency : float
            Tick frequency [Hz]. Must be positive.
        """
        assert frequency > 0, f"frequency must be positive, got {frequency}"
        self.frequency = frequency
        self.period = 1.0 / frequency
        self._elapsed: float = 0.0
        self._delta: float = 0.0

    @abstractmethod
    def tick(self) -> bool:
        """
        Wait for the next tick and record its timing.

        Returns
        -------
        bool
            True if a tick was recorded, False if the wait was cancelled
        """
        pass

    @abstractmethod
    def restart(self) -> None:
        """Re-zero the start instant."""
        pass

    def time_since_start(self) -> float:
        """Elapsed time at the last tick [s]."""
        return self._elapsed

    def delta(self) -> float:
        """Time between the last two ticks [s]."""
        return self._delta


class RealTimeClock(Clock):
    """
    Busy-wait wall-clock scheduler.

    Usage:
    ------
    >>> clock = RealTimeClock(frequency=1000.0)
    >>> clock.tick()
    True
    >>> clock.delta() >= 0.001
    True
    """

    def __init__(
        self,
        frequency: float,
        cancel_event: Optional[threading.Event] = None,
        time_source: Callable[[], float] = time.perf_counter
    ):
        """
        Parameters
        ----------
        frequency : float
            Tick frequency [Hz]
        cancel_event : threading.Event, optional
            When set, a pending ``tick`` returns False without recording
        time_source : Callable[[], float]
            Monotonic time source [s]
        """
        super().__init__(frequency)
        self._cancel = cancel_event
        self._time_source = time_source
        self.restart()

    def restart(self) -> None:
        now = self._time_source()
        self._start = now
        self._previous = now
        self._elapsed = 0.0
        self._delta = 0.0

    def tick(self) -> bool:
        while True:
            now = self._time_source()
            if now - self._previous >= self.period:
                break
            if self._cancel is not None and self._cancel.is_set():
                return False

        self._delta = now - self._previous
        self._previous = now
        self._elapsed = now - self._start
        return True


class SimulatedClock(Clock):
    """Fixed-step clock that never waits."""

    def __init__(self, frequency: float):
        super().__init__(frequency)
        self.restart()

    def restart(self) -> None:
        self._ticks = 0
        self._elapsed = 0.0
        self._delta = 0.0

    def tick(self) -> bool:
        self._ticks += 1
        # Multiply rather than accumulate to keep elapsed time exact
        self._elapsed = self._ticks * self.period
        self._delta = self.period
        return True
