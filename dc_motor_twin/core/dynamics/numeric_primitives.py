"""
Numeric Primitives for Discrete-Time Plant Observables

This module provides the two running estimators used to derive motor
observables from the state-space velocity, plus the unit conversions used
for reporting.

- Integrator: explicit Euler accumulation of a signal (velocity -> position)
- Derivative: backward finite difference of a signal (velocity -> acceleration)

Both estimators are updated exactly once per control tick with the measured
tick delta, not the nominal period, so jitter in the scheduler is carried
into the integration instead of being hidden.
"""

import numpy as np


class Integrator:
    """
    Running integral of a sampled signal.

    Update rule (explicit Euler):
        S[k] = S[k-1] + delta[k] * value[k]
    """

    def __init__(self):
        self._integral: float = 0.0

    def integrate(self, delta: float, value: float) -> None:
        """
        Accumulate ``value * delta`` into the running sum.

        Parameters
        ----------
        delta : float
            Elapsed time since the previous sample [s]. Must be non-zero.
        value : float
            Signal value held over the interval
        """
        assert delta != 0, "delta must be non-zero"
        self._integral += delta * value

    def state(self) -> float:
        """Current value of the running sum."""
        return self._integral

    def reset(self) -> None:
        """Zero the running sum."""
        self._integral = 0.0


class Derivative:
    """
    Backward finite-difference rate estimator.

    Update rule:
        D[k] = (value[k] - value[k-1]) / delta[k]

    After a reset the previous-value memory is zero, so the first estimate
    following a reset reflects the full jump from zero to the first sample.
    """

    def __init__(self):
        self._previous: float = 0.0
        self._derivative: float = 0.0

    def derivate(self, delta: float, value: float) -> None:
        """
        Update the rate estimate with a new sample.

        Parameters
        ----------
        delta : float
            Elapsed time since the previous sample [s]. Must be non-zero.
        value : float
            New signal sample
        """
        assert delta != 0, "delta must be non-zero"
        self._derivative = (value - self._previous) / delta
        self._previous = value

    def state(self) -> float:
        """Latest rate estimate."""
        return self._derivative

    def reset(self) -> None:
        """Zero the previous-value memory and the estimate."""
        self._previous = 0.0
        self._derivative = 0.0


def rad_to_deg(rad: float) -> float:
    """
    Convert an angle to degrees wrapped into [0, 360).

    Parameters
    ----------
    rad : float
        Angle [rad], any sign and magnitude

    Returns
    -------
    float
        Wrapped angle [deg]
    """
    wrapped = float(np.rad2deg(rad)) % 360.0
    # Tiny negative inputs round up to exactly 360.0
    if wrapped >= 360.0:
        wrapped = 0.0
    return wrapped


def rads_to_rpm(rads: float) -> float:
    """Convert angular velocity from rad/s to rev/min."""
    return rads * 60.0 / (2.0 * np.pi)
