"""CLI interface for Folioscope."""

from folioscope.interfaces.cli.context import CLIContext, close_context, get_context
from folioscope.interfaces.cli.main import app

__all__ = [
    "app",
    "CLIContext",
    "get_context",
    "close_context",
]
