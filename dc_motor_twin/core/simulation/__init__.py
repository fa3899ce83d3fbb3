"""Clocks, shared telemetry, configuration and the control-loop task."""
