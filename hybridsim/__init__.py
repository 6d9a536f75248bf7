"""Hybrid car simulation: shared state and command queues, an electric engine, a combustion engine, a management unit and a console driver."""

__version__ = "0.1.0"
__all__ = ["state", "ev", "iec", "vmu", "cli"]