"""Command-line interface for IPDashboard."""

from ipdashboard.cli.main import cli

__all__ = ["cli"]
