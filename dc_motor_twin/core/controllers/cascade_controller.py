"""
Cascade Position/Velocity/Torque Controller

This module composes three PID stages around the DC motor plant and runs
one control tick at a time.

Control Architecture:
--------------------
    [Live target / fixed reference]
                |
                v
       [Position PID] --(velocity target, RPM)--+
                                                |
                                                v
                                       [Velocity PID] --(torque target, N·m)--+
                                                                              |
                                                                              v
                                                                     [Torque PID]
                                                                              |
                                                                       (voltage, V)
                                                                              v
                                                                      [DC Motor]

Control Modes:
-------------
The mode is resolved once per reset from the controller config:

- POS_DIRECT: live target -> position PID -> voltage
- CASCADE_DIRECT: live target -> position -> velocity -> torque -> voltage
- CALIBRATE_POSITION: 180 deg -> position -> velocity -> torque -> voltage
- CALIBRATE_VELOCITY: velocity_bound/2 -> velocity -> torque -> voltage
- CALIBRATE_TORQUE: torque_bound/2 -> torque -> voltage

Calibration isolates one stage (with the stages inside it) against a fixed
reference and records only for ``duration`` seconds, then stops.

Lifecycle:
---------
    IDLE --start()--> RUNNING_DIRECT | RUNNING_CALIBRATION
    RUNNING_* --stop()--> STOPPED
    RUNNING_CALIBRATION --duration exceeded--> STOPPED
    any --reset(config)--> IDLE
"""

from enum import Enum
import threading
from typing import Dict, Optional

from dc_motor_twin.core.actuators.motor_models import DCMotorModel
from dc_motor_twin.core.controllers.control_laws import PidController, PidStage
from dc_motor_twin.core.simulation.clock import Clock, RealTimeClock, SimulatedClock
from dc_motor_twin.core.simulation.config import Config, ControlOption
from dc_motor_twin.core.simulation.telemetry import LiveTarget, TelemetrySample, TelemetryWindow


CALIBRATION_POSITION_REFERENCE = 180.0  # deg


class ControlMode(Enum):
    """Every reachable combination of control option and calibration option."""
    POS_DIRECT = 'pos_direct'
    CASCADE_DIRECT = 'cascade_direct'
    CALIBRATE_POSITION = 'calibrate_position'
    CALIBRATE_VELOCITY = 'calibrate_velocity'
    CALIBRATE_TORQUE = 'calibrate_torque'

    @property
    def is_calibration(self) -> bool:
        return self in (
            ControlMode.CALIBRATE_POSITION,
            ControlMode.CALIBRATE_VELOCITY,
            ControlMode.CALIBRATE_TORQUE,
        )


class ControllerStatus(Enum):
    IDLE = 'idle'
    RUNNING_DIRECT = 'running_direct'
    RUNNING_CALIBRATION = 'running_calibration'
    STOPPED = 'stopped'


def resolve_control_mode(
    control_option: ControlOption,
    calib_option: Optional[PidStage]
) -> ControlMode:
    """
    Collapse the two operator flags into a single control mode.

    A calibration stage, when set, takes precedence over the control option.
    """
    if calib_option is PidStage.POSITION:
        return ControlMode.CALIBRATE_POSITION
    if calib_option is PidStage.VELOCITY:
        return ControlMode.CALIBRATE_VELOCITY
    if calib_option is PidStage.TORQUE:
        return ControlMode.CALIBRATE_TORQUE
    if control_option is ControlOption.POS_VEL_TRQ:
        return ControlMode.CASCADE_DIRECT
    return ControlMode.POS_DIRECT


class CascadeController:
    """
    Owner of the motor plant, the three PID stages and the control clock.

    The telemetry window and the live target are shared with the observer
    and are passed in; everything else is private to the control loop.

    Usage:
    ------
    >>> telemetry, target = TelemetryWindow(), LiveTarget(90.0)
    >>> config = create_default_config().with_controller(real_time=False)
    >>> controller = CascadeController(config, telemetry, target)
    >>> controller.start()
    >>> for _ in range(500):
    ...     controller.calculate_point()
    >>> print(f"Position: {controller.motor.position:.1f} deg")
    """

    def __init__(
        self,
        config: Config,
        telemetry: TelemetryWindow,
        target: LiveTarget,
        cancel_event: Optional[threading.Event] = None
    ):
        """
        Initialize the controller in the IDLE state.

        Parameters
        ----------
        config : Config
            Complete configuration snapshot
        telemetry : TelemetryWindow
            Shared sample window (written here, read by the observer)
        target : LiveTarget
            Shared desired position (written by the observer)
        cancel_event : threading.Event, optional
            Interrupts a pending real-time tick when set
        """
        self.telemetry = telemetry
        self.target = target
        self._cancel_event = cancel_event

        self.config = config
        self.motor = DCMotorModel(config.motor)
        self.position_pid = PidController(config.position_pid)
        self.velocity_pid = PidController(config.velocity_pid)
        self.torque_pid = PidController(config.torque_pid)

        self.mode = resolve_control_mode(
            config.controller.control_option, config.controller.calib_option
        )
        self.clock = self._build_clock()
        self.status = ControllerStatus.IDLE
        self.voltage: float = 0.0

    def _build_clock(self) -> Clock:
        settings = self.config.controller
        if settings.real_time:
            return RealTimeClock(settings.frequency, cancel_event=self._cancel_event)
        return SimulatedClock(settings.frequency)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self.status in (
            ControllerStatus.RUNNING_DIRECT,
            ControllerStatus.RUNNING_CALIBRATION,
        )

    def reset(self, config: Optional[Config] = None) -> None:
        """
        Return to IDLE, reapplying all sub-component configs.

        Clears plant state, PID memory and the telemetry window, and
        rebuilds the clock.

        Parameters
        ----------
        config : Config, optional
            Replacement snapshot. If None, the current one is reapplied.
        """
        if config is not None:
            self.config = config

        self.motor.reset(self.config.motor)
        self.position_pid.reset(self.config.position_pid)
        self.velocity_pid.reset(self.config.velocity_pid)
        self.torque_pid.reset(self.config.torque_pid)

        self.mode = resolve_control_mode(
            self.config.controller.control_option, self.config.controller.calib_option
        )
        self.clock = self._build_clock()
        self.telemetry.clear()
        self.voltage = 0.0
        self.status = ControllerStatus.IDLE

    def start(self) -> None:
        """Begin running in the resolved mode, timing from now."""
        if self.mode.is_calibration:
            self.status = ControllerStatus.RUNNING_CALIBRATION
        else:
            self.status = ControllerStatus.RUNNING_DIRECT
        self.clock.restart()
        print(f"INFO: Controller started ({self.mode.value}, {self.config.controller.frequency:.0f} Hz)")

    def stop(self) -> None:
        """Stop the current run; samples stay in the window until reset."""
        if self.status is not ControllerStatus.STOPPED:
            self.status = ControllerStatus.STOPPED
            print(f"INFO: Controller stopped at t={self.clock.time_since_start():.3f}s")

    # ------------------------------------------------------------------
    # Per-tick computation
    # ------------------------------------------------------------------

    def reference(self) -> float:
        """
        Reference tracked by the outermost active stage.

        Returns
        -------
        float
            Position [deg], velocity [RPM] or torque [N·m] depending on mode
        """
        settings = self.config.controller
        if self.mode is ControlMode.CALIBRATE_POSITION:
            return CALIBRATION_POSITION_REFERENCE
        if self.mode is ControlMode.CALIBRATE_VELOCITY:
            return settings.velocity_bound / 2.0
        if self.mode is ControlMode.CALIBRATE_TORQUE:
            return settings.torque_bound / 2.0
        return self.target.get()

    def _position_stage(self, target: float, delta: float, bound: float) -> float:
        return self.position_pid.generate_control(self.motor.position, target, delta, bound)

    def _velocity_stage(self, target: float, delta: float) -> float:
        return self.velocity_pid.generate_control(
            self.motor.velocity, target, delta, self.config.controller.torque_bound
        )

    def _torque_stage(self, target: float, delta: float) -> float:
        return self.torque_pid.generate_control(
            self.motor.torque, target, delta, self.config.controller.voltage_bound
        )

    def generate_control(self, delta: float) -> float:
        """
        Compute the drive voltage for this tick.

        Parameters
        ----------
        delta : float
            Tick delta [s]

        Returns
        -------
        float
            Drive voltage [V], within the voltage bound
        """
        settings = self.config.controller
        reference = self.reference()

        if self.mode is ControlMode.POS_DIRECT:
            return self._position_stage(reference, delta, settings.voltage_bound)

        if self.mode is ControlMode.CALIBRATE_TORQUE:
            return self._torque_stage(reference, delta)

        if self.mode is ControlMode.CALIBRATE_VELOCITY:
            velocity_target = reference
        else:
            velocity_target = self._position_stage(reference, delta, settings.velocity_bound)

        torque_target = self._velocity_stage(velocity_target, delta)
        return self._torque_stage(torque_target, delta)

    def _admit(self, time_from_start: float) -> bool:
        """Calibration records only within the run duration."""
        if not self.mode.is_calibration:
            return True
        return time_from_start <= self.config.controller.duration

    def calculate_point(self) -> Optional[TelemetrySample]:
        """
        Run one control tick: wait, control, advance, record.

        Returns
        -------
        TelemetrySample or None
            The recorded sample, or None if the tick was cancelled or the
            calibration run has just completed
        """
        if not self.is_running:
            raise RuntimeError(f"calculate_point called while {self.status.value}")

        if not self.clock.tick():
            return None
        delta = self.clock.delta()
        time_from_start = self.clock.time_since_start()

        self.voltage = self.generate_control(delta)
        self.motor.advance(delta, self.voltage)

        if not self._admit(time_from_start):
            print(f"INFO: Calibration of {self.config.controller.calib_option.value} stage complete")
            self.stop()
            return None

        sample = TelemetrySample(
            time=time_from_start,
            position=self.motor.position,
            velocity=self.motor.velocity,
            voltage=self.voltage,
            torque=float(self.motor.torque)
        )
        self.telemetry.append(sample, self.config.controller.duration)
        return sample

    def get_state(self) -> Dict:
        """
        Get controller state for logging/debugging.

        Returns
        -------
        Dict
            Status, mode, timing, voltage, motor and PID states
        """
        return {
            'status': self.status.value,
            'mode': self.mode.value,
            'time': self.clock.time_since_start(),
            'delta': self.clock.delta(),
            'reference': self.reference(),
            'voltage': self.voltage,
            'motor': self.motor.get_state(),
            'position_pid': self.position_pid.get_state(),
            'velocity_pid': self.velocity_pid.get_state(),
            'torque_pid': self.torque_pid.get_state()
        }
