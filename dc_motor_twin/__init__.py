"""
DC Motor Cascade-Control Digital Twin

Simulates a brushed DC motor with an exact state-space model and drives it
with a position/velocity/torque PID cascade at a fixed control frequency.
Live samples are exposed to an external observer through a shared
telemetry window; the observer reconfigures the loop by sending complete
configuration snapshots.

Key Components:
- DCMotorModel: 2-state plant advanced by zero-order-hold discretization
- PidController: saturated PID law shared by all cascade stages
- CascadeController: mode resolution, lifecycle and per-tick control
- ControlLoop: background thread servicing the config channel
- TelemetryWindow / LiveTarget: lock-guarded state shared with the observer
"""

from .core.actuators.motor_models import DCMotorModel, MotorConfig
from .core.controllers.control_laws import PidController, PidConfig, PidStage
from .core.controllers.cascade_controller import (
    CascadeController,
    ControlMode,
    ControllerStatus,
    resolve_control_mode,
)
from .core.simulation.clock import RealTimeClock, SimulatedClock
from .core.simulation.config import (
    Config,
    ConfigChannel,
    ControlOption,
    ControllerConfig,
    create_default_config,
    load_config,
)
from .core.simulation.control_loop import ControlLoop
from .core.simulation.performance_analyzer import StepResponseMetrics, compute_step_metrics
from .core.simulation.telemetry import LiveTarget, TelemetrySample, TelemetryWindow

__version__ = "1.0.0"
__all__ = [
    "DCMotorModel",
    "MotorConfig",
    "PidController",
    "PidConfig",
    "PidStage",
    "CascadeController",
    "ControlMode",
    "ControllerStatus",
    "resolve_control_mode",
    "RealTimeClock",
    "SimulatedClock",
    "Config",
    "ConfigChannel",
    "ControlOption",
    "ControllerConfig",
    "create_default_config",
    "load_config",
    "ControlLoop",
    "StepResponseMetrics",
    "compute_step_metrics",
    "LiveTarget",
    "TelemetrySample",
    "TelemetryWindow",
]
