"""CLI commands for form-catalog."""

from . import forms, sync

__all__ = ["forms", "sync"]
