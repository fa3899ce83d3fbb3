"""
Brushed DC Motor Plant Model

This module implements a 2-state linear state-space model of a brushed DC
motor coupling the armature electrical circuit to the rotor mechanics.

State-Space Representation:
--------------------------
dx/dt = A*x + B*u

where:
    x = [omega, i]  Angular velocity [rad/s] and coil current [A]
    u = V           Drive voltage [V]

    A = [[-b/j,  k/j],
         [-k/l, -r/l]]
    B = [0, 1/l]

Discretization:
--------------
Each tick the model is advanced by an exact zero-order-hold (ZOH)
discretization over the measured tick delta:

    A_d = exp(A*delta)
    B_d = A^-1 (A_d - I) B
    x[k+1] = A_d x[k] + B_d u[k]

The electrical time constant l/r of a small motor is around one millisecond,
which is the same order as the control period. Forward Euler at that step
size is badly damped or unstable; the ZOH form is exact for a held input
regardless of step size.

Derived Observables:
-------------------
- Position: Euler integral of velocity, reported in degrees wrapped to [0, 360)
- Velocity: reported in RPM
- Acceleration: finite-difference derivative of velocity [rad/s^2]
- Torque: k * i [N·m]
"""

from dataclasses import dataclass, asdict
from typing import Dict, Optional

import numpy as np
from scipy import linalg

from dc_motor_twin.core.dynamics.numeric_primitives import (
    Integrator,
    Derivative,
    rad_to_deg,
    rads_to_rpm,
)


@dataclass(frozen=True)
class MotorConfig:
    """
    Physical parameters of the DC motor.

    Attributes
    ----------
    j : float
        Rotor inertia [kg·m^2]
    b : float
        Viscous damping [N·m·s/rad]
    l : float
        Coil inductance [H]
    r : float
        Coil resistance [Ohm]
    k : float
        Torque / back-EMF constant [N·m/A] == [V·s/rad]
    """
    j: float = 0.00065
    b: float = 0.000024
    l: float = 0.00073
    r: float = 0.7
    k: float = 0.057

    def __post_init__(self):
        for name in ('j', 'b', 'l', 'r', 'k'):
            value = getattr(self, name)
            if not np.isfinite(value) or value <= 0:
                raise ValueError(
                    f"Motor parameter '{name}' must be finite and strictly positive, got {value}"
                )
    @classmethod
    def from_dict(cls, config: Dict) -> 'MotorConfig':
        """Build from a plain dictionary, using defaults for missing keys."""
        defaults = asdict(cls())
        unknown = set(config) - set(defaults)
        if unknown:
            raise ValueError(f"Unknown motor parameters: {sorted(unknown)}")
        defaults.update({key: float(value) for key, value in config.items()})
        return cls(**defaults)

    def to_dict(self) -> Dict[str, float]:
        """Convert to dictionary format."""
        return asdict(self)


def state_matrix(config: MotorConfig) -> np.ndarray:
    """Continuous-time state matrix A for the given parameters."""
    return np.array([
        [-config.b / config.j, config.k / config.j],
        [-config.k / config.l, -config.r / config.l]
    ])


def input_vector(config: MotorConfig) -> np.ndarray:
    """Continuous-time input vector B for the given parameters."""
    return np.array([0.0, 1.0 / config.l])


class DCMotorModel:
    """
    State-space DC motor driven by a held drive voltage.

    Attributes
    ----------
    config : MotorConfig
        Physical parameters the matrices were built from
    A : np.ndarray
        Continuous state matrix (2x2)
    B : np.ndarray
        Continuous input vector (2,)
    x : np.ndarray
        State vector (2,) - [omega, i]

    Usage:
    ------
    >>> motor = DCMotorModel(MotorConfig())
    >>> for _ in range(100):
    ...     motor.advance(0.001, 12.0)
    >>> print(f"Speed: {motor.velocity:.0f} RPM")
    """

    def __init__(self, config: Optional[MotorConfig] = None):
        """
        Initialize the motor model.

        Parameters
        ----------
        config : MotorConfig, optional
            Physical parameters. If None, uses the default motor.
        """
        self._position = Integrator()
        self._acceleration = Derivative()
        self.reset(config if config is not None else MotorConfig())

    def reset(self, config: Optional[MotorConfig] = None) -> None:
        """
        Reset the motor to rest, optionally applying new parameters.

        Parameters
        ----------
        config : MotorConfig, optional
            Replacement parameters. If None, the current ones are kept.
        """
        if config is not None:
            self.config = config

        self.A = state_matrix(self.config)
        self.B = input_vector(self.config)
        self.x = np.zeros(2)
        self.torque: float = 0.0

        self._position.reset()
        self._acceleration.reset()

        # Discretization cache, keyed on delta
        self._cached_delta: Optional[float] = None
        self._A_d: Optional[np.ndarray] = None
        self._B_d: Optional[np.ndarray] = None

    def discretize(self, delta: float):
        """
        Zero-order-hold discretization of (A, B) over ``delta``.

        Parameters
        ----------
        delta : float
            Hold interval [s]. Must be positive.

        Returns
        -------
        Tuple[np.ndarray, np.ndarray]
            (A_d, B_d)
        """
        assert delta > 0, f"delta must be positive, got {delta}"

        if delta != self._cached_delta:
            A_d = linalg.expm(delta * self.A)
            # A^-1 (A_d - I) B, solved rather than inverted
            B_d = np.linalg.solve(self.A, (A_d - np.eye(2)) @ self.B)
            self._cached_delta = delta
            self._A_d = A_d
            self._B_d = B_d

        return self._A_d, self._B_d

    def advance(self, delta: float, voltage: float) -> None:
        """
        Propagate the motor one tick with the voltage held constant.

        Parameters
        ----------
        delta : float
            Measured tick delta [s]
        voltage : float
            Drive voltage held over the tick [V]
        """
        A_d, B_d = self.discretize(delta)
        self.x = A_d @ self.x + B_d * voltage

        omega = self.x[0]
        self._position.integrate(delta, omega)
        self._acceleration.derivate(delta, omega)
        self.torque = self.config.k * self.x[1]

    @property
    def position(self) -> float:
        """Rotor position [deg], wrapped to [0, 360)."""
        return float(rad_to_deg(self._position.state()))

    @property
    def position_rad(self) -> float:
        """Accumulated (unwrapped) rotor position [rad]."""
        return float(self._position.state())

    @property
    def velocity(self) -> float:
        """Rotor velocity [RPM]."""
        return float(rads_to_rpm(self.x[0]))

    @property
    def velocity_rad(self) -> float:
        """Rotor velocity [rad/s]."""
        return float(self.x[0])

    @property
    def current(self) -> float:
        """Coil current [A]."""
        return float(self.x[1])

    @property
    def acceleration(self) -> float:
        """Finite-difference rotor acceleration [rad/s^2]."""
        return float(self._acceleration.state())

    def get_state_vector(self) -> np.ndarray:
        """Copy of the state vector [omega, i]."""
        return self.x.copy()

    def get_state(self) -> Dict[str, float]:
        """
        Get the current observables of the motor.

        Returns
        -------
        Dict[str, float]
            Position [deg], velocity [RPM], acceleration [rad/s^2],
            current [A] and torque [N·m]
        """
        return {
            'position': self.position,
            'velocity': self.velocity,
            'acceleration': self.acceleration,
            'current': self.current,
            'torque': float(self.torque)
        }

    def get_eigenvalues(self) -> np.ndarray:
        """
        Eigenvalues of the continuous state matrix.

        For physical parameters both are real and negative: a slow mechanical
        pole and a fast electrical pole.
        """
        return np.linalg.eigvals(self.A)
