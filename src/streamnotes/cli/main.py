"""Main CLI entry point for streamnotes."""  # pragma: no cover

from streamnotes.cli.app import app  # pragma: no cover

# Register commands
from streamnotes.cli.commands import (  # noqa: F401  # pragma: no cover
    assets,
    notes,
)

if __name__ == "__main__":  # pragma: no cover
    app()
