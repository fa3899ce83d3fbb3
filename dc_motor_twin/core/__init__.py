"""Simulation and control core."""
