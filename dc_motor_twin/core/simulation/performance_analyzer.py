"""
Step-Response Metrics for Calibration Runs

A calibration run drives one cascade stage toward a fixed reference for a
fixed duration. The metrics below summarise the recorded response so the
operator can compare gain sets.

Metrics Computed
----------------
- Rise time (10% -> 90% of the reference step)
- Overshoot [% of reference]
- Settling time (2% band, last entry into the band)
- Steady-state error (mean of the final 20% of the run)
- Peak value
"""

from dataclasses import dataclass, asdict
from typing import Dict, Sequence

import numpy as np


@dataclass
class StepResponseMetrics:
    """
    Container for step-response metrics.

    Times are in seconds; values are in the units of the recorded series.
    ``rise_time`` and ``settling_time`` are NaN when the response never
    reaches the corresponding threshold.
    """
    rise_time: float
    overshoot_percent: float
    settling_time: float
    steady_state_error: float
    peak_value: float

    def to_dict(self) -> Dict[str, float]:
        """Convert to dictionary format."""
        return asdict(self)


def compute_step_metrics(
    samples: Sequence[Sequence[float]],
    reference: float,
    settling_band: float = 0.02,
    steady_state_fraction: float = 0.2
) -> StepResponseMetrics:
    """
    Compute step-response metrics from a recorded series.

    The response is assumed to start from zero, as every run does after a
    reset.

    Parameters
    ----------
    samples : Sequence[Sequence[float]]
        [time, value] rows, as returned by the telemetry window accessors
    reference : float
        Step reference the stage was tracking. Must be non-zero.
    settling_band : float
        Settling tolerance as a fraction of the reference (default: 2%)
    steady_state_fraction : float
        Trailing fraction of the run used for steady-state error

    Returns
    -------
    StepResponseMetrics
        Computed metrics
    """
    data = np.asarray(samples, dtype=float).reshape(-1, 2)
    if data.shape[0] < 2:
        raise ValueError(f"Need at least 2 samples, got {data.shape[0]}")
    if reference == 0:
        raise ValueError("Step reference must be non-zero")

    time = data[:, 0]
    # Normalise so the step always goes from 0 to +1
    response = data[:, 1] / reference

    def first_crossing(level: float) -> float:
        indices = np.nonzero(response >= level)[0]
        return time[indices[0]] if indices.size else np.nan

    rise_time = first_crossing(0.9) - first_crossing(0.1)

    overshoot_percent = max(0.0, (np.max(response) - 1.0) * 100.0)

    outside = np.nonzero(np.abs(response - 1.0) > settling_band)[0]
    if outside.size == 0:
        settling_time = time[0]
    elif outside[-1] == len(time) - 1:
        settling_time = np.nan
    else:
        settling_time = time[outside[-1] + 1]

    n_tail = max(1, int(len(time) * steady_state_fraction))
    steady_state_error = reference - np.mean(data[-n_tail:, 1])

    peak_index = np.argmax(response)
    return StepResponseMetrics(
        rise_time=float(rise_time),
        overshoot_percent=float(overshoot_percent),
        settling_time=float(settling_time),
        steady_state_error=float(steady_state_error),
        peak_value=float(data[peak_index, 1])
    )
