"""streamnotes - local-first note vault engine."""

__version__ = "0.1.0"
