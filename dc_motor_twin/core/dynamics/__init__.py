"""
Numeric primitives shared by the plant model and the PID law.
"""

from .numeric_primitives import Integrator, Derivative, rad_to_deg, rads_to_rpm

__all__ = [
    'Integrator',
    'Derivative',
    'rad_to_deg',
    'rads_to_rpm',
]
