"""
CLI module for workspace-sandbox.

Provides a command-line interface to the workspace tools.
"""

from workspace_sandbox.cli.main import cli

__all__ = ["cli"]
