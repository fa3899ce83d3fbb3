"""
PID Control Law

This module implements the generic proportional-integral-derivative law
used by every stage of the motor cascade.

Control Law:
-----------
e[k] = r[k] - y[k]

u[k] = sat( K_p * e[k] + K_i * I[k] + K_d * D[k] , bound )

I[k] = I[k-1] + e[k] * dt[k]            (explicit Euler)
D[k] = (e[k] - e[k-1]) / dt[k]          (backward difference on error)

sat(u, b) = min(max(u, -b), b)

Saturation Behaviour:
--------------------
The output is hard-clamped to a symmetric bound. There is no anti-windup:
the integral keeps accumulating while the output is saturated, so long
saturated stretches are followed by overshoot. Gain tuning in calibration
mode is done against this exact behaviour.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, Optional

import numpy as np

from dc_motor_twin.core.dynamics.numeric_primitives import Integrator, Derivative


class PidStage(Enum):
    """Cascade stage a PID instance belongs to (outer to inner)."""
    POSITION = 'position'
    VELOCITY = 'velocity'
    TORQUE = 'torque'


@dataclass(frozen=True)
class PidConfig:
    """
    PID gains for one cascade stage.

    Attributes
    ----------
    kp : float
        Proportional gain
    ki : float
        Integral gain [1/s]
    kd : float
        Derivative gain [s]
    stage : PidStage
        Stage the gains are tuned for
    """
    kp: float = 0.0
    ki: float = 0.0
    kd: float = 0.0
    stage: PidStage = PidStage.POSITION

    def __post_init__(self):
        for name in ('kp', 'ki', 'kd'):
            value = getattr(self, name)
            if not np.isfinite(value):
                raise ValueError(f"PID gain '{name}' must be finite, got {value}")

    @classmethod
    def from_dict(cls, config: Dict, stage: Optional[PidStage] = None) -> 'PidConfig':
        """
        Build from a plain dictionary.

        Parameters
        ----------
        config : Dict
            Keys 'kp', 'ki', 'kd' and optionally 'stage' (string value)
        stage : PidStage, optional
            Stage to use when the dictionary does not name one
        """
        unknown = set(config) - {'kp', 'ki', 'kd', 'stage'}
        if unknown:
            raise ValueError(f"Unknown PID parameters: {sorted(unknown)}")
        if 'stage' in config:
            stage = PidStage(config['stage'])
        return cls(
            kp=float(config.get('kp', 0.0)),
            ki=float(config.get('ki', 0.0)),
            kd=float(config.get('kd', 0.0)),
            stage=stage if stage is not None else PidStage.POSITION
        )

    def to_dict(self) -> Dict:
        """Convert to dictionary format."""
        data = asdict(self)
        data['stage'] = self.stage.value
        return data


class PidController:
    """
    Single-input PID controller with symmetric output saturation.

    Gains can be changed between ticks with ``set_gains`` without disturbing
    the accumulated state; ``reset`` replaces the configuration and clears
    the integral and derivative memory.
    """

    def __init__(self, config: PidConfig):
        """
        Initialize the controller.

        Parameters
        ----------
        config : PidConfig
            Gains and stage tag
        """
        self._integral = Integrator()
        self._derivative = Derivative()
        self.reset(config)

    @property
    def stage(self) -> PidStage:
        return self.config.stage

    def reset(self, config: Optional[PidConfig] = None) -> None:
        """
        Clear integral and derivative memory, optionally replacing gains.

        Parameters
        ----------
        config : PidConfig, optional
            Replacement configuration. If None, the current one is kept.
        """
        if config is not None:
            self.config = config
        self.kp: float = self.config.kp
        self.ki: float = self.config.ki
        self.kd: float = self.config.kd

        self._integral.reset()
        self._derivative.reset()
        self.last_output: float = 0.0
        self.saturated: bool = False

    def set_gains(
        self,
        kp: Optional[float] = None,
        ki: Optional[float] = None,
        kd: Optional[float] = None
    ) -> None:
        """Update gains in place, keeping the accumulated state."""
        if kp is not None:
            self.kp = float(kp)
        if ki is not None:
            self.ki = float(ki)
        if kd is not None:
            self.kd = float(kd)

    def generate_control(
        self,
        measured: float,
        target: float,
        delta: float,
        bound: float
    ) -> float:
        """
        Compute the saturated control output for one tick.

        Parameters
        ----------
        measured : float
            Measured process value
        target : float
            Desired process value
        delta : float
            Tick delta [s]. Must be non-zero.
        bound : float
            Symmetric output limit. Must be non-negative.

        Returns
        -------
        float
            Control output clamped to [-bound, bound]
        """
        assert bound >= 0, f"bound must be non-negative, got {bound}"

        error = target - measured
        self._derivative.derivate(delta, error)
        self._integral.integrate(delta, error)

        output = (
            self.kp * error
            + self.kd * self._derivative.state()
            + self.ki * self._integral.state()
        )

        clamped = float(np.clip(output, -bound, bound))
        self.saturated = clamped != output
        self.last_output = clamped
        return clamped

    def get_state(self) -> Dict:
        """
        Get current controller state for logging/debugging.

        Returns
        -------
        Dict
            Gains, integral, derivative, last output and saturation flag
        """
        return {
            'stage': self.stage.value,
            'kp': self.kp,
            'ki': self.ki,
            'kd': self.kd,
            'integral': self._integral.state(),
            'derivative': self._derivative.state(),
            'last_output': self.last_output,
            'saturated': self.saturated
        }
