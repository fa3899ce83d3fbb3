"""
Control-Loop Task

Runs the cascade controller on a dedicated thread and services the
configuration channel between ticks.

Cycle:
-----
1. Poll the config channel (non-blocking); on the first cycle fall back
   to the initial snapshot. A pending snapshot triggers a full controller
   reset, then its lifecycle flags are applied:
   ``end`` shuts the loop down, ``start`` starts a run.
2. Exit if shutdown was requested or the observer closed the channel.
3. Running: one ``calculate_point`` (busy-wait tick, control, advance,
   record). Not running: coarse sleep on the end event.

A tick is never interrupted part-way; the end event is checked once per
cycle and inside the real-time clock's wait.
"""

import threading
from typing import Optional
import warnings

from dc_motor_twin.core.controllers.cascade_controller import CascadeController
from dc_motor_twin.core.simulation.config import Config, ConfigChannel
from dc_motor_twin.core.simulation.telemetry import LiveTarget, TelemetryWindow


class ControlLoop:
    """
    Background thread driving a ``CascadeController``.

    Usage:
    ------
    >>> telemetry, target, channel = TelemetryWindow(), LiveTarget(), ConfigChannel()
    >>> loop = ControlLoop.create(create_default_config(), telemetry, target, channel)
    >>> loop.start()
    >>> target.set(90.0)
    >>> channel.send(create_default_config().with_controller(start=True))
    >>> ...
    >>> loop.shutdown()
    """

    def __init__(
        self,
        controller: CascadeController,
        channel: ConfigChannel,
        end_event: threading.Event,
        idle_interval: float = 0.01,
        initial_config: Optional[Config] = None
    ):
        """
        Parameters
        ----------
        controller : CascadeController
            Controller to drive; built with ``end_event`` as its cancel event
        channel : ConfigChannel
            Incoming configuration snapshots
        end_event : threading.Event
            Shutdown request flag
        idle_interval : float
            Sleep between cycles while not running [s]
        initial_config : Config, optional
            Applied on the first cycle unless the channel already holds a
            newer snapshot
        """
        self.controller = controller
        self.channel = channel
        self.idle_interval = idle_interval
        self._end = end_event
        self._pending = initial_config
        self._thread: Optional[threading.Thread] = None
        self.ticks: int = 0

    @classmethod
    def create(
        cls,
        config: Config,
        telemetry: TelemetryWindow,
        target: LiveTarget,
        channel: ConfigChannel,
        idle_interval: float = 0.01
    ) -> 'ControlLoop':
        """
        Factory wiring a new controller to a shared end event.

        Parameters
        ----------
        config : Config
            Initial snapshot
        telemetry : TelemetryWindow
            Shared sample window
        target : LiveTarget
            Shared desired position
        channel : ConfigChannel
            Incoming configuration snapshots
        idle_interval : float
            Sleep between cycles while not running [s]
        """
        end_event = threading.Event()
        controller = CascadeController(config, telemetry, target, cancel_event=end_event)
        return cls(controller, channel, end_event, idle_interval, initial_config=config)

    def apply(self, config: Config) -> None:
        """Reset with a new snapshot and act on its lifecycle flags."""
        self.controller.reset(config)
        print(f"INFO: Configuration applied ({self.controller.mode.value})")
        if config.controller.end:
            self._end.set()
        elif config.controller.start:
            self.controller.start()

    def run_cycle(self) -> bool:
        """
        Execute one loop cycle.

        Returns
        -------
        bool
            False once the loop should terminate
        """
        config = self.channel.poll()
        if self._pending is not None:
            if config is None:
                config = self._pending
            self._pending = None
        if config is not None:
            self.apply(config)

        if self._end.is_set() or self.channel.closed:
            return False

        if self.controller.is_running:
            if self.controller.calculate_point() is not None:
                self.ticks += 1
        else:
            self._end.wait(self.idle_interval)
        return True

    def run(self) -> None:
        """Loop until shutdown or channel closure."""
        while self.run_cycle():
            pass
        self.controller.stop()
        print(f"INFO: Control loop terminated after {self.ticks} recorded ticks")

    def start(self) -> None:
        """Launch the loop on a daemon thread."""
        if self.is_alive():
            raise RuntimeError("control loop already running")
        self._thread = threading.Thread(target=self.run, name='control-loop', daemon=True)
        self._thread.start()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def request_shutdown(self) -> None:
        """Ask the loop to exit at the next cycle boundary."""
        self._end.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the loop thread to exit.

        Returns
        -------
        bool
            True if the thread has exited
        """
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def shutdown(self, timeout: float = 1.0) -> bool:
        """Request shutdown and wait for the thread to exit."""
        self.request_shutdown()
        exited = self.join(timeout)
        if not exited:
            warnings.warn(f"Control loop did not exit within {timeout:.1f}s")
        return exited
