"""Command line interface."""

from .cli_common import ExitCode
from .main import cli, main

__all__ = ["ExitCode", "cli", "main"]
