"""Command line interface for streamnotes."""
