"""Interactive SSH sessions to Proxmox guests."""

from __future__ import annotations

import asyncio
import shlex
from collections.abc import Sequence

import structlog

logger = structlog.get_logger(__name__)


class CommandExecutionError(RuntimeError):
    """Raised when the SSH client cannot be launched."""


def build_ssh_command(address: str, user: str, key_path: str) -> list[str]:
    return ["ssh", "-i", key_path, f"{user}@{address}"]


async def run_interactive(command: Sequence[str]) -> int:
    """Run ``command`` attached to this terminal and return its exit code.

    Standard streams are inherited, nothing is captured.
    """
    logger.debug("ssh-exec", command=shlex.join(command))
    try:
        process = await asyncio.create_subprocess_exec(*command)
    except OSError as exc:
        raise CommandExecutionError(f"Failed to launch {command[0]}: {exc}") from exc
    return_code = await process.wait()
    logger.debug("ssh-exit", returncode=return_code)
    return return_code


__all__ = [
    "CommandExecutionError",
    "build_ssh_command",
    "run_interactive",
]
