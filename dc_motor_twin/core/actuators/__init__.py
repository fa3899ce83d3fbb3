"""DC motor plant models."""
