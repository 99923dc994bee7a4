"""SSH target resolution with IP-then-FQDN fallback."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence

import structlog

from homelab_cli.core.exceptions import BothStrategiesFailedError, NotFoundError, UnavailableError
from homelab_cli.core.models import (
    DEFAULT_SSH_KEY_PATH,
    DEFAULT_SSH_USER,
    ConnectionTarget,
    ResourceKind,
)
from homelab_cli.core.resolver import AddressResolver
from homelab_cli.utils.ssh import build_ssh_command, run_interactive

logger = structlog.get_logger(__name__)

CommandExecutor = Callable[[Sequence[str]], Awaitable[int]]
FallbackHook = Callable[[UnavailableError], None]


class ConnectionOrchestrator:
    """Turns a VMID into an SSH target and hands it to the command executor."""

    def __init__(self, resolver: AddressResolver, *, executor: CommandExecutor = run_interactive) -> None:
        self._resolver = resolver
        self._executor = executor

    async def resolve_target(
        self,
        vmid: int,
        kind: ResourceKind,
        *,
        on_fallback: FallbackHook | None = None,
    ) -> ConnectionTarget:
        """Resolve the IP address, falling back to the FQDN when it is unavailable.

        Unknown VMIDs raise ``NotFoundError`` without a fallback attempt.
        """
        try:
            address = await self._resolver.resolve_ip(vmid, kind)
        except UnavailableError as exc:
            logger.info("ip-fallback-fqdn", kind=kind, vmid=vmid)
            if on_fallback is not None:
                on_fallback(exc)
        else:
            return ConnectionTarget(strategy="ip", address=address, vmid=vmid, kind=kind)

        try:
            fqdn = await self._resolver.resolve_fqdn(vmid, kind)
        except NotFoundError as exc:
            # The resource vanished between the two lookups.
            logger.error("fqdn-resolution-failed", kind=kind, vmid=vmid)
            raise BothStrategiesFailedError(kind, vmid) from exc
        return ConnectionTarget(strategy="fqdn", address=fqdn, vmid=vmid, kind=kind)

    async def connect(
        self,
        vmid: int,
        kind: ResourceKind,
        *,
        user: str = DEFAULT_SSH_USER,
        key_path: str = DEFAULT_SSH_KEY_PATH,
        on_fallback: FallbackHook | None = None,
    ) -> int:
        target = await self.resolve_target(vmid, kind, on_fallback=on_fallback)
        command = build_ssh_command(target.address, user, key_path)
        logger.info("ssh-connect", kind=kind, vmid=vmid, strategy=target.strategy, address=target.address)
        return await self._executor(command)


__all__ = ["CommandExecutor", "ConnectionOrchestrator", "FallbackHook"]
