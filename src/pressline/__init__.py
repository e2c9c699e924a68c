"""pressline: promotion and recovery for a multi-phase content pipeline."""

__version__ = "0.1.0"
