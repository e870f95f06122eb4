"""Kelthuzad: kills a sick process and respawns a healthy one."""

__version__ = "0.1.0"
