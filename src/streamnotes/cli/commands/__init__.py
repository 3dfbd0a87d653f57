"""CLI commands for streamnotes."""

from . import assets, notes

__all__ = ["assets", "notes"]
