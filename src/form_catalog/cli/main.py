"""Main CLI entry point for form-catalog."""  # pragma: no cover

from form_catalog.cli.app import app  # pragma: no cover

# Register commands
from form_catalog.cli.commands import forms, sync  # pragma: no cover

__all__ = ["forms", "sync"]  # pragma: no cover

if __name__ == "__main__":  # pragma: no cover
    app()
