"""PID control law and the position/velocity/torque cascade."""
