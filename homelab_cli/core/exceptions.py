"""Centralized exception hierarchy for the homelab CLI."""

from __future__ import annotations

from homelab_cli.core.models import ResourceKind, kind_label


class ProxmoxError(Exception):
    """Base exception for all homelab CLI errors."""


class ConfigError(ProxmoxError):
    """Raised when the CLI configuration is missing or invalid."""


class TransportError(ProxmoxError):
    """Raised when the Proxmox API cannot be reached or rejects a request."""


class InvalidPayloadError(ProxmoxError):
    """Raised when a Proxmox API response does not match the expected schema."""


class ResourceSelectionError(ProxmoxError):
    """Raised when requested VMIDs reference unknown resources."""

    def __init__(self, missing: list[int], message: str) -> None:
        super().__init__(message)
        self.missing = missing


class ResourceError(ProxmoxError):
    """Base for errors about a single VM or container."""

    def __init__(self, kind: ResourceKind, vmid: int, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.vmid = vmid


class NotFoundError(ResourceError):
    """Raised when a VMID does not exist in the queried collection."""

    def __init__(self, kind: ResourceKind, vmid: int) -> None:
        super().__init__(kind, vmid, f"{kind_label(kind)} with VMID {vmid} not found")


class UnavailableError(ResourceError):
    """Raised when a resource exists but its IP address cannot be determined."""

    def __init__(self, kind: ResourceKind, vmid: int) -> None:
        label = kind_label(kind)
        super().__init__(
            kind,
            vmid,
            f"Cannot connect to {label} {vmid}: IP address not available. "
            f"Ensure the {label} is running and the guest agent is installed.",
        )


class BothStrategiesFailedError(ResourceError):
    """Raised when neither the IP address nor the FQDN could be resolved."""

    def __init__(self, kind: ResourceKind, vmid: int) -> None:
        label = kind_label(kind)
        super().__init__(
            kind,
            vmid,
            f"Cannot connect to {label} {vmid}: neither an IP address nor an FQDN could be resolved. "
            f"Check that the {label} is running, the guest agent is installed and DNS is configured.",
        )


class TaskError(ProxmoxError):
    """Base for errors raised while waiting on a Proxmox task."""

    def __init__(self, upid: str, message: str) -> None:
        super().__init__(message)
        self.upid = upid


class TaskFailedError(TaskError):
    """Raised when a task stops with an exit status other than OK."""

    def __init__(self, upid: str, exit_status: str | None) -> None:
        super().__init__(upid, f"Task failed: {exit_status or 'unknown error'}")
        self.exit_status = exit_status


class TaskTimeoutError(TaskError):
    """Raised when a task does not finish within its time budget."""

    def __init__(self, upid: str, timeout: float) -> None:
        super().__init__(upid, f"Task timed out after {timeout:g}s")
        self.timeout = timeout


__all__ = [
    "BothStrategiesFailedError",
    "ConfigError",
    "InvalidPayloadError",
    "NotFoundError",
    "ProxmoxError",
    "ResourceError",
    "ResourceSelectionError",
    "TaskError",
    "TaskFailedError",
    "TaskTimeoutError",
    "TransportError",
    "UnavailableError",
]
