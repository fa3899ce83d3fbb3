"""
Shared Telemetry Window and Live Target

The control loop and the external observer share exactly two mutable
objects, both defined here and both guarded by their own lock:

- TelemetryWindow: four parallel [time, value] series (position, velocity,
  voltage, torque). The control loop is the only writer; the observer
  reads copies.
- LiveTarget: the desired rotor position written by the observer and read
  by the control loop once per tick.

Locks are held only for the duration of a single append, clear or copy.
"""

from collections import deque
from dataclasses import dataclass
import threading
from typing import Deque, Dict, List

import numpy as np


SERIES = ('position', 'velocity', 'voltage', 'torque')


@dataclass(frozen=True)
class TelemetrySample:
    """One control tick worth of recorded signals."""
    time: float          # Time since run start [s]
    position: float      # Rotor position [deg]
    velocity: float      # Rotor velocity [RPM]
    voltage: float       # Drive voltage [V]
    torque: float        # Motor torque [N·m]


class TelemetryWindow:
    """
    Sliding window of recorded samples.

    Once the sample time exceeds ``duration``, the oldest sample of every
    series is evicted before the new one is appended, so the window keeps a
    fixed span instead of growing without bound.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._series: Dict[str, Deque[List[float]]] = {name: deque() for name in SERIES}

    def append(self, sample: TelemetrySample, duration: float) -> None:
        """
        Record a sample, evicting the oldest one past ``duration``.

        Parameters
        ----------
        sample : TelemetrySample
            Signals recorded this tick
        duration : float
            Window span [s]
        """
        with self._lock:
            for name, series in self._series.items():
                if sample.time > duration and series:
                    series.popleft()
                series.append([sample.time, getattr(sample, name)])

    def clear(self) -> None:
        """Drop all samples."""
        with self._lock:
            for series in self._series.values():
                series.clear()

    def _copy(self, name: str) -> List[List[float]]:
        with self._lock:
            return [list(point) for point in self._series[name]]

    def positions(self) -> List[List[float]]:
        """Copy of the [time, position deg] series."""
        return self._copy('position')

    def velocities(self) -> List[List[float]]:
        """Copy of the [time, velocity RPM] series."""
        return self._copy('velocity')

    def voltages(self) -> List[List[float]]:
        """Copy of the [time, voltage V] series."""
        return self._copy('voltage')

    def torques(self) -> List[List[float]]:
        """Copy of the [time, torque N·m] series."""
        return self._copy('torque')

    def snapshot(self) -> Dict[str, np.ndarray]:
        """
        Consistent copy of all four series.

        Returns
        -------
        Dict[str, np.ndarray]
            Series name -> (N, 2) array of [time, value] rows
        """
        with self._lock:
            return {
                name: np.array(series, dtype=float).reshape(-1, 2)
                for name, series in self._series.items()
            }

    def span(self) -> float:
        """Time between the oldest and newest sample [s]."""
        with self._lock:
            series = self._series['position']
            if len(series) < 2:
                return 0.0
            return series[-1][0] - series[0][0]

    def __len__(self) -> int:
        with self._lock:
            return len(self._series['position'])


class LiveTarget:
    """Lock-guarded desired rotor position [deg] in [0, 360)."""

    def __init__(self, value: float = 0.0):
        self._lock = threading.Lock()
        self._value = 0.0
        self.set(value)

    def set(self, value: float) -> None:
        wrapped = float(value) % 360.0
        if wrapped >= 360.0:
            wrapped = 0.0
        with self._lock:
            self._value = wrapped

    def get(self) -> float:
        with self._lock:
            return self._value
