"""
Demo: Headless Observer Session

This script plays the part of the operator front-end: it starts the control
loop, calibrates each cascade stage in turn, then tracks a few live
position targets, printing step-response metrics from the shared
telemetry window.
"""

import time

import numpy as np

from dc_motor_twin.core.controllers.control_laws import PidStage
from dc_motor_twin.core.simulation.config import ConfigChannel, ControlOption, create_default_config
from dc_motor_twin.core.simulation.control_loop import ControlLoop
from dc_motor_twin.core.simulation.performance_analyzer import compute_step_metrics
from dc_motor_twin.core.simulation.telemetry import LiveTarget, TelemetryWindow


def wait_until_stopped(loop: ControlLoop, timeout: float) -> None:
    deadline = time.monotonic() + timeout
    while loop.controller.is_running and time.monotonic() < deadline:
        time.sleep(0.01)


def demo_calibration(loop, telemetry, channel, base_config):
    """Run each single-stage calibration and report its metrics."""
    print("=" * 70)
    print("DEMO 1: Single-Stage Calibration")
    print("=" * 70)

    series_for_stage = {
        PidStage.TORQUE: telemetry.torques,
        PidStage.VELOCITY: telemetry.velocities,
        PidStage.POSITION: telemetry.positions,
    }

    for stage, read_series in series_for_stage.items():
        channel.send(base_config.with_controller(start=True, calib_option=stage, duration=1.0))
        time.sleep(0.05)
        wait_until_stopped(loop, timeout=5.0)

        metrics = compute_step_metrics(read_series(), loop.controller.reference())
        print(f"\n{stage.value.upper()} stage (reference {loop.controller.reference():.2f}):")
        print(f"  Rise time:      {metrics.rise_time * 1e3:8.2f} ms")
        print(f"  Overshoot:      {metrics.overshoot_percent:8.2f} %")
        print(f"  Settling time:  {metrics.settling_time * 1e3:8.2f} ms")
        print(f"  SS error:       {metrics.steady_state_error:8.4f}")


def demo_live_target(telemetry, target, channel, base_config):
    """Track a sequence of live targets in position-only mode."""
    print("\n" + "=" * 70)
    print("DEMO 2: Live Target Tracking")
    print("=" * 70)

    channel.send(base_config.with_controller(start=True, control_option=ControlOption.POS))
    for setpoint in (90.0, 270.0, 45.0):
        target.set(setpoint)
        time.sleep(1.0)
        positions = np.array(telemetry.positions())
        print(f"  Target {setpoint:6.1f} deg -> position {positions[-1, 1]:6.1f} deg "
              f"({len(positions)} samples in window)")


if __name__ == "__main__":
    telemetry = TelemetryWindow()
    target = LiveTarget()
    channel = ConfigChannel()
    base_config = create_default_config()

    loop = ControlLoop.create(base_config, telemetry, target, channel)
    loop.start()
    try:
        demo_calibration(loop, telemetry, channel, base_config)
        demo_live_target(telemetry, target, channel, base_config)
    finally:
        channel.close()
        loop.join(timeout=2.0)

    print("\n" + "=" * 70)
    print(" DEMO COMPLETE ")
    print("=" * 70)
