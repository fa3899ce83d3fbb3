"""
Configuration Snapshot and Hot-Reload Channel

The observer reconfigures the core by sending a complete ``Config``
snapshot: motor parameters, the three PID stages and the controller
settings. The control loop never patches a running configuration; every
received snapshot triggers a full reset before the next tick.

Configuration Sources:
---------------------
- Dataclass defaults (stock motor and tuning)
- Plain dictionaries via ``Config.from_dict`` (JSON-compatible shape)
- JSON files via ``load_config``

Example JSON:
------------
{
    "motor": {"j": 0.00065, "b": 0.000024, "l": 0.00073, "r": 0.7, "k": 0.057},
    "position_pid": {"kp": 0.1, "ki": 0.0, "kd": 0.008},
    "velocity_pid": {"kp": 0.005, "ki": 0.05, "kd": 0.0},
    "torque_pid": {"kp": 10.0, "ki": 200.0, "kd": 0.0},
    "controller": {"voltage_bound": 12.0, "control_option": "pos", "calib_option": null}
}
"""

from dataclasses import dataclass, field, fields, asdict, replace
from enum import Enum
import json
from pathlib import Path
import queue
import threading
from typing import Dict, Optional, Union
import warnings

import numpy as np

from dc_motor_twin.core.actuators.motor_models import MotorConfig
from dc_motor_twin.core.controllers.control_laws import PidConfig, PidStage


class ControlOption(Enum):
    """Normal-operation cascade depth."""
    POS = 'pos'                  # Position stage drives the voltage directly
    POS_VEL_TRQ = 'pos_vel_trq'  # Position -> velocity -> torque -> voltage


@dataclass(frozen=True)
class ControllerConfig:
    """
    Cascade controller settings.

    Attributes
    ----------
    voltage_bound : float
        Drive voltage limit [V]
    velocity_bound : float
        Velocity target limit [RPM]
    torque_bound : float
        Torque target limit [N·m]
    duration : float
        Telemetry window span, and run length in calibration mode [s]
    frequency : float
        Control tick frequency [Hz]
    calib_option : PidStage, optional
        Stage to calibrate; overrides ``control_option`` when set
    control_option : ControlOption
        Cascade depth for direct-target operation
    start : bool
        Run requested
    end : bool
        Shutdown requested
    real_time : bool
        True: pace ticks on the wall clock. False: fixed-step, fast as possible.
    """
    voltage_bound: float = 12.0
    velocity_bound: float = 1000.0
    torque_bound: float = 0.5
    duration: float = 5.0
    frequency: float = 1000.0
    calib_option: Optional[PidStage] = None
    control_option: ControlOption = ControlOption.POS
    start: bool = False
    end: bool = False
    real_time: bool = True

    def __post_init__(self):
        for name in ('voltage_bound', 'velocity_bound', 'torque_bound'):
            value = getattr(self, name)
            if not np.isfinite(value) or value < 0:
                raise ValueError(f"'{name}' must be finite and non-negative, got {value}")
        for name in ('duration', 'frequency'):
            value = getattr(self, name)
            if not np.isfinite(value) or value <= 0:
                raise ValueError(f"'{name}' must be finite and strictly positive, got {value}")

    @classmethod
    def from_dict(cls, config: Dict) -> 'ControllerConfig':
        """Build from a plain dictionary; enums are given by value."""
        unknown = set(config) - {f.name for f in fields(cls)}
        if unknown:
            raise ValueError(f"Unknown controller settings: {sorted(unknown)}")
        kwargs = dict(config)
        if kwargs.get('calib_option') is not None:
            kwargs['calib_option'] = PidStage(kwargs['calib_option'])
        if 'control_option' in kwargs:
            kwargs['control_option'] = ControlOption(kwargs['control_option'])
        return cls(**kwargs)

    def to_dict(self) -> Dict:
        """Convert to dictionary format."""
        data = asdict(self)
        data['calib_option'] = self.calib_option.value if self.calib_option else None
        data['control_option'] = self.control_option.value
        return data


@dataclass(frozen=True)
class Config:
    """Complete snapshot of everything the operator can change."""
    motor: MotorConfig = field(default_factory=MotorConfig)
    position_pid: PidConfig = field(
        default_factory=lambda: PidConfig(kp=0.1, ki=0.0, kd=0.008, stage=PidStage.POSITION)
    )
    velocity_pid: PidConfig = field(
        default_factory=lambda: PidConfig(kp=0.005, ki=0.05, kd=0.0, stage=PidStage.VELOCITY)
    )
    torque_pid: PidConfig = field(
        default_factory=lambda: PidConfig(kp=10.0, ki=200.0, kd=0.0, stage=PidStage.TORQUE)
    )
    controller: ControllerConfig = field(default_factory=ControllerConfig)

    def __post_init__(self):
        slots = (
            ('position_pid', PidStage.POSITION),
            ('velocity_pid', PidStage.VELOCITY),
            ('torque_pid', PidStage.TORQUE),
        )
        for name, stage in slots:
            pid = getattr(self, name)
            if pid.stage is not stage:
                raise ValueError(f"'{name}' must be tagged {stage.value}, got {pid.stage.value}")

    @classmethod
    def from_dict(cls, config: Dict) -> 'Config':
        """
        Build from a plain dictionary.

        Missing sections fall back to the defaults. PID sections do not need
        a 'stage' key; the slot determines it.
        """
        default = cls()
        return cls(
            motor=MotorConfig.from_dict(config.get('motor', {})),
            position_pid=PidConfig.from_dict(
                config.get('position_pid', default.position_pid.to_dict()), PidStage.POSITION
            ),
            velocity_pid=PidConfig.from_dict(
                config.get('velocity_pid', default.velocity_pid.to_dict()), PidStage.VELOCITY
            ),
            torque_pid=PidConfig.from_dict(
                config.get('torque_pid', default.torque_pid.to_dict()), PidStage.TORQUE
            ),
            controller=ControllerConfig.from_dict(config.get('controller', {}))
        )

    def to_dict(self) -> Dict:
        """Convert to dictionary format (JSON-compatible)."""
        return {
            'motor': self.motor.to_dict(),
            'position_pid': self.position_pid.to_dict(),
            'velocity_pid': self.velocity_pid.to_dict(),
            'torque_pid': self.torque_pid.to_dict(),
            'controller': self.controller.to_dict()
        }

    def with_controller(self, **changes) -> 'Config':
        """Copy with selected controller fields replaced."""
        return replace(self, controller=replace(self.controller, **changes))


def create_default_config() -> Config:
    """
    Factory function for the stock motor and tuning.

    Returns
    -------
    Config
        Default snapshot (position-only control, idle)
    """
    return Config()


def load_config(path: Union[str, Path]) -> Config:
    """
    Load a configuration snapshot from a JSON file.

    Parameters
    ----------
    path : str or Path
        JSON file in the ``Config.to_dict`` shape

    Returns
    -------
    Config
        Validated snapshot
    """
    config_path = Path(path)
    with open(config_path, 'r') as f:
        data = json.load(f)
    return Config.from_dict(data)


class ConfigChannel:
    """
    Single-producer / single-consumer configuration channel.

    The observer sends full snapshots; the control loop polls without
    blocking. Only the newest pending snapshot is applied since each one
    fully replaces the last. Closing the channel tells the control loop the
    observer is gone.
    """

    def __init__(self):
        self._queue: queue.Queue = queue.Queue()
        self._closed = threading.Event()

    def send(self, config: Config) -> None:
        """Queue a snapshot for the control loop."""
        if self._closed.is_set():
            raise RuntimeError("config channel is closed")
        self._queue.put(config)

    def poll(self) -> Optional[Config]:
        """
        Take the newest pending snapshot without blocking.

        Returns
        -------
        Config or None
            Newest snapshot, or None when nothing is pending
        """
        latest = None
        dropped = 0
        while True:
            try:
                config = self._queue.get_nowait()
            except queue.Empty:
                break
            if latest is not None:
                dropped += 1
            latest = config
        if dropped:
            warnings.warn(f"Dropped {dropped} stale config snapshot(s)")
        return latest

    def close(self) -> None:
        """Mark the producer side as gone."""
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()
