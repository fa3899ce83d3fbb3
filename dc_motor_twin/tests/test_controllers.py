"""
Unit tests for control systems.

This module contains pytest-based unit tests for the PID control law and
the position/velocity/torque cascade controller. Tests verify saturation,
the absence of anti-windup, mode resolution, lifecycle transitions,
calibration admission, the telemetry sliding window and reset semantics.
"""

import numpy as np
import pytest

from dc_motor_twin.core.controllers.control_laws import PidController, PidConfig, PidStage
from dc_motor_twin.core.controllers.cascade_controller import (
    CascadeController,
    ControlMode,
    ControllerStatus,
    resolve_control_mode,
)
from dc_motor_twin.core.simulation.config import Config, ControlOption, create_default_config
from dc_motor_twin.core.simulation.telemetry import LiveTarget, TelemetryWindow


class TestPidController:
    """Test suite for PidController."""

    @pytest.fixture
    def pid_config(self):
        return PidConfig(kp=2.0, ki=0.5, kd=0.1, stage=PidStage.VELOCITY)

    def test_initialization(self, pid_config):
        pid = PidController(pid_config)
        state = pid.get_state()

        assert pid.stage is PidStage.VELOCITY
        assert state['kp'] == 2.0
        assert state['integral'] == 0.0
        assert state['derivative'] == 0.0

    def test_proportional_response(self):
        """Pure P law returns kp * error."""
        pid = PidController(PidConfig(kp=3.0))
        output = pid.generate_control(measured=1.0, target=4.0, delta=0.01, bound=100.0)

        assert output == pytest.approx(9.0)

    def test_integral_accumulation(self):
        """Constant error integrates to error * elapsed time."""
        pid = PidController(PidConfig(ki=2.0))
        dt = 0.01
        for _ in range(10):
            output = pid.generate_control(measured=0.0, target=1.0, delta=dt, bound=100.0)

        assert pid.get_state()['integral'] == pytest.approx(0.1)
        assert output == pytest.approx(0.2)

    def test_derivative_on_error(self):
        """Derivative term follows the rate of change of the error."""
        pid = PidController(PidConfig(kd=1.0))
        dt = 0.01
        pid.generate_control(measured=0.0, target=1.0, delta=dt, bound=1e6)
        output = pid.generate_control(measured=0.5, target=1.0, delta=dt, bound=1e6)

        # Error went from 1.0 to 0.5 in 10 ms
        assert output == pytest.approx(-50.0)

    def test_output_never_exceeds_bound(self):
        """|output| <= bound for arbitrary finite gains, errors and bounds."""
        rng = np.random.default_rng(42)

        for _ in range(200):
            kp, ki, kd = rng.uniform(-100.0, 100.0, size=3)
            bound = rng.uniform(0.0, 50.0)
            pid = PidController(PidConfig(kp=kp, ki=ki, kd=kd))

            for _ in range(20):
                measured, target = rng.uniform(-1e3, 1e3, size=2)
                delta = rng.uniform(1e-4, 1e-2)
                output = pid.generate_control(measured, target, delta, bound)
                assert abs(output) <= bound

    def test_zero_bound_forces_zero_output(self):
        pid = PidController(PidConfig(kp=10.0))

        assert pid.generate_control(0.0, 5.0, 0.001, 0.0) == 0.0
        assert pid.saturated

    def test_no_anti_windup(self):
        """The integral keeps growing while the output is clamped."""
        pid = PidController(PidConfig(kp=1.0, ki=1.0))
        dt = 0.01
        for _ in range(500):
            output = pid.generate_control(measured=0.0, target=10.0, delta=dt, bound=1.0)

        assert output == 1.0
        assert pid.saturated
        assert pid.get_state()['integral'] == pytest.approx(50.0)

    def test_set_gains_keeps_state(self, pid_config):
        pid = PidController(pid_config)
        for _ in range(5):
            pid.generate_control(0.0, 1.0, 0.01, 100.0)
        integral = pid.get_state()['integral']

        pid.set_gains(kp=7.0)

        state = pid.get_state()
        assert state['kp'] == 7.0
        assert state['ki'] == pid_config.ki
        assert state['integral'] == integral

    def test_reset_clears_state_and_applies_config(self, pid_config):
        pid = PidController(pid_config)
        pid.set_gains(kp=9.0)
        for _ in range(5):
            pid.generate_control(0.0, 1.0, 0.01, 100.0)

        new_config = PidConfig(kp=1.0, ki=0.0, kd=0.0, stage=PidStage.VELOCITY)
        pid.reset(new_config)

        assert pid.get_state() == PidController(new_config).get_state()

    def test_negative_bound_is_rejected(self):
        pid = PidController(PidConfig(kp=1.0))
        with pytest.raises(AssertionError):
            pid.generate_control(0.0, 1.0, 0.01, -1.0)

    def test_non_finite_gain_rejected(self):
        with pytest.raises(ValueError, match="kd"):
            PidConfig(kd=float('nan'))


class TestModeResolution:
    """Test suite for resolve_control_mode."""

    @pytest.mark.parametrize("control_option, calib_option, expected", [
        (ControlOption.POS, None, ControlMode.POS_DIRECT),
        (ControlOption.POS_VEL_TRQ, None, ControlMode.CASCADE_DIRECT),
        (ControlOption.POS, PidStage.POSITION, ControlMode.CALIBRATE_POSITION),
        (ControlOption.POS_VEL_TRQ, PidStage.VELOCITY, ControlMode.CALIBRATE_VELOCITY),
        (ControlOption.POS_VEL_TRQ, PidStage.TORQUE, ControlMode.CALIBRATE_TORQUE),
    ])
    def test_resolution(self, control_option, calib_option, expected):
        assert resolve_control_mode(control_option, calib_option) is expected

    def test_calibration_overrides_control_option(self):
        """Any calibration stage wins over either control option."""
        for option in ControlOption:
            for stage in PidStage:
                assert resolve_control_mode(option, stage).is_calibration


class TestCascadeController:
    """Test suite for CascadeController."""

    @pytest.fixture
    def telemetry(self):
        return TelemetryWindow()

    @pytest.fixture
    def target(self):
        return LiveTarget(180.0)

    def make_config(self, **controller_changes) -> Config:
        """Default snapshot with a fixed-step clock."""
        return create_default_config().with_controller(real_time=False, **controller_changes)

    def run_ticks(self, controller: CascadeController, n_ticks: int):
        samples = []
        for _ in range(n_ticks):
            sample = controller.calculate_point()
            if sample is None:
                break
            samples.append(sample)
        return samples

    def test_initial_state(self, telemetry, target):
        controller = CascadeController(self.make_config(), telemetry, target)

        assert controller.status is ControllerStatus.IDLE
        assert controller.mode is ControlMode.POS_DIRECT
        assert not controller.is_running
        assert len(telemetry) == 0

    def test_calculate_point_requires_running(self, telemetry, target):
        controller = CascadeController(self.make_config(), telemetry, target)

        with pytest.raises(RuntimeError, match="idle"):
            controller.calculate_point()

    def test_start_selects_running_state(self, telemetry, target):
        direct = CascadeController(self.make_config(), telemetry, target)
        direct.start()
        assert direct.status is ControllerStatus.RUNNING_DIRECT

        calibration = CascadeController(
            self.make_config(calib_option=PidStage.TORQUE), telemetry, target
        )
        calibration.start()
        assert calibration.status is ControllerStatus.RUNNING_CALIBRATION

    def test_stop(self, telemetry, target):
        controller = CascadeController(self.make_config(), telemetry, target)
        controller.start()
        self.run_ticks(controller, 10)
        controller.stop()

        assert controller.status is ControllerStatus.STOPPED
        assert not controller.is_running
        assert len(telemetry) == 10, "Stopping keeps the recorded samples"

    def test_position_control_converges_to_target(self, telemetry, target):
        """
        Position-only loop from 0 deg toward 180 deg within 1 s.

        The final recorded position lies between the start and the target
        plus a small overshoot margin.
        """
        config = self.make_config(duration=1.0, control_option=ControlOption.POS)
        controller = CascadeController(config, telemetry, target)
        controller.start()
        samples = self.run_ticks(controller, 1000)

        assert len(samples) == 1000
        final_position = telemetry.positions()[-1][1]
        assert 0.0 < final_position <= 180.0 + 5.0
        assert final_position > 170.0, f"Did not approach target: {final_position:.2f} deg"

        voltages = np.array(telemetry.voltages())[:, 1]
        assert np.all(np.abs(voltages) <= config.controller.voltage_bound)

    def test_cascade_control_converges_to_target(self, telemetry, target):
        """
        Full position -> velocity -> torque chain from 0 deg toward 180 deg.

        The cascade is slower than the position-only loop; after 10 s the
        final position sits within the same band around the target.
        """
        config = self.make_config(duration=10.0, control_option=ControlOption.POS_VEL_TRQ)
        controller = CascadeController(config, telemetry, target)
        controller.start()
        samples = self.run_ticks(controller, 10000)

        assert len(samples) == 10000
        final_position = telemetry.positions()[-1][1]
        assert 0.0 < final_position <= 180.0 + 5.0
        assert final_position > 170.0, f"Did not approach target: {final_position:.2f} deg"

    def test_position_control_follows_live_target(self, telemetry):
        target = LiveTarget(90.0)
        controller = CascadeController(self.make_config(), telemetry, target)
        controller.start()
        self.run_ticks(controller, 1000)
        assert controller.motor.position == pytest.approx(90.0, abs=2.0)

        target.set(45.0)
        self.run_ticks(controller, 1000)
        assert controller.motor.position == pytest.approx(45.0, abs=2.0)

    def test_cascade_respects_stage_bounds(self, telemetry, target):
        """Every stage output stays within its own bound."""
        config = self.make_config(control_option=ControlOption.POS_VEL_TRQ)
        controller = CascadeController(config, telemetry, target)
        controller.start()
        assert controller.mode is ControlMode.CASCADE_DIRECT

        settings = config.controller
        for _ in range(500):
            controller.calculate_point()
            assert abs(controller.position_pid.last_output) <= settings.velocity_bound
            assert abs(controller.velocity_pid.last_output) <= settings.torque_bound
            assert abs(controller.torque_pid.last_output) <= settings.voltage_bound
            assert controller.voltage == controller.torque_pid.last_output

        snapshot = telemetry.snapshot()
        for name, series in snapshot.items():
            assert np.all(np.isfinite(series)), f"{name} diverged"
        assert controller.motor.velocity > 0

    def test_pos_direct_uses_position_stage_only(self, telemetry, target):
        controller = CascadeController(self.make_config(), telemetry, target)
        controller.start()
        self.run_ticks(controller, 50)

        assert controller.velocity_pid.get_state()['integral'] == 0.0
        assert controller.torque_pid.get_state()['integral'] == 0.0
        assert controller.voltage == controller.position_pid.last_output

    @pytest.mark.parametrize("stage, expected_reference", [
        (PidStage.POSITION, 180.0),
        (PidStage.VELOCITY, 500.0),
        (PidStage.TORQUE, 0.25),
    ])
    def test_calibration_reference(self, telemetry, stage, expected_reference):
        """Calibration ignores the live target and tracks a fixed reference."""
        target = LiveTarget(42.0)
        config = self.make_config(
            calib_option=stage, velocity_bound=1000.0, torque_bound=0.5
        )
        controller = CascadeController(config, telemetry, target)

        assert controller.reference() == pytest.approx(expected_reference)

    def test_torque_calibration_skips_outer_stages(self, telemetry, target):
        config = self.make_config(calib_option=PidStage.TORQUE, duration=0.2)
        controller = CascadeController(config, telemetry, target)
        controller.start()
        self.run_ticks(controller, 100)

        assert controller.position_pid.get_state()['integral'] == 0.0
        assert controller.velocity_pid.get_state()['integral'] == 0.0
        assert controller.motor.torque > 0

    def test_velocity_calibration_drives_motor_forward(self, telemetry, target):
        config = self.make_config(calib_option=PidStage.VELOCITY, duration=0.2)
        controller = CascadeController(config, telemetry, target)
        controller.start()
        self.run_ticks(controller, 200)

        assert controller.position_pid.get_state()['integral'] == 0.0
        assert controller.motor.velocity > 0

    def test_calibration_stops_after_duration(self, telemetry, target):
        """Calibration records up to ``duration`` then stops itself."""
        config = self.make_config(calib_option=PidStage.TORQUE, duration=0.1)
        controller = CascadeController(config, telemetry, target)
        controller.start()

        samples = self.run_ticks(controller, 1000)

        assert controller.status is ControllerStatus.STOPPED
        assert abs(len(samples) - 100) <= 1
        assert all(sample.time <= 0.1 for sample in samples)
        assert len(telemetry) == len(samples)

    def test_direct_mode_keeps_running_past_duration(self, telemetry, target):
        config = self.make_config(duration=0.1)
        controller = CascadeController(config, telemetry, target)
        controller.start()

        samples = self.run_ticks(controller, 300)

        assert len(samples) == 300
        assert controller.status is ControllerStatus.RUNNING_DIRECT

    def test_telemetry_window_span_tracks_duration(self, telemetry, target):
        """After N ticks with N*delta > duration, the window spans ~duration."""
        duration = 0.5
        config = self.make_config(duration=duration, frequency=1000.0)
        controller = CascadeController(config, telemetry, target)
        controller.start()
        self.run_ticks(controller, 1500)

        assert telemetry.span() == pytest.approx(duration, abs=0.002)
        assert abs(len(telemetry) - 500) <= 1
        positions = telemetry.positions()
        assert positions[-1][0] == pytest.approx(1.5)

    def test_reset_matches_fresh_instance(self, telemetry, target):
        """Reset leaves no trace of the previous run."""
        config = self.make_config(control_option=ControlOption.POS_VEL_TRQ)
        controller = CascadeController(config, telemetry, target)
        controller.start()
        self.run_ticks(controller, 200)
        controller.velocity_pid.set_gains(kp=1.0)

        controller.reset()
        fresh = CascadeController(config, TelemetryWindow(), target)

        assert controller.status is ControllerStatus.IDLE
        assert telemetry.positions() == []
        assert telemetry.velocities() == []
        assert telemetry.voltages() == []
        assert telemetry.torques() == []
        np.testing.assert_array_equal(controller.motor.x, fresh.motor.x)
        assert controller.get_state() == fresh.get_state()

    def test_reset_applies_new_config(self, telemetry, target):
        controller = CascadeController(self.make_config(), telemetry, target)
        new_config = self.make_config(calib_option=PidStage.VELOCITY, frequency=500.0)

        controller.reset(new_config)

        assert controller.config is new_config
        assert controller.mode is ControlMode.CALIBRATE_VELOCITY
        assert controller.clock.period == pytest.approx(0.002)

    def test_get_state_keys(self, telemetry, target):
        state = CascadeController(self.make_config(), telemetry, target).get_state()

        for key in ('status', 'mode', 'time', 'voltage', 'motor',
                    'position_pid', 'velocity_pid', 'torque_pid'):
            assert key in state
