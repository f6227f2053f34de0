"""trae-agent command line interface."""

from traeagent.cli.main import cli, main

__all__ = ["cli", "main"]
