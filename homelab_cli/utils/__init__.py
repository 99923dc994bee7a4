"""Utility modules for the homelab CLI."""

from homelab_cli.utils.logging import configure_logging
from homelab_cli.utils.ssh import (
    CommandExecutionError,
    build_ssh_command,
    run_interactive,
)

__all__ = [
    "CommandExecutionError",
    "build_ssh_command",
    "configure_logging",
    "run_interactive",
]
