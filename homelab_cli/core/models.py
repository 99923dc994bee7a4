"""Unified Pydantic models for the homelab CLI."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ResourceKind = Literal["qemu", "lxc"]
ConnectionStrategy = Literal["ip", "fqdn"]

DEFAULT_SSH_USER = "admin"
DEFAULT_SSH_KEY_PATH = "~/.ssh/admin_id_ecdsa"
DEFAULT_DNS_SUFFIX = "home.sflab.io"


def kind_label(kind: ResourceKind) -> str:
    return "VM" if kind == "qemu" else "container"


def _expand_path(value: str | None) -> str | None:
    """Expand user paths like ~/."""
    if value is None:
        return None
    return str(Path(value).expanduser())


class _BaseModel(BaseModel):
    """Base model with common configuration."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)


# Cluster Models


class Resource(_Record):
    """A VM, container or template known to the cluster."""

    vmid: int = Field(gt=0)
    name: str
    node: str
    kind: ResourceKind
    status: str
    ipv4_address: str | None = None
    is_template: bool = False


class Task(_Record):
    """Snapshot of an asynchronous Proxmox job."""

    upid: str
    node: str
    status: str = "running"
    exit_status: str | None = None

    @property
    def is_running(self) -> bool:
        return self.status == "running"

    @property
    def succeeded(self) -> bool:
        return not self.is_running and self.exit_status == "OK"


class ConnectionTarget(_Record):
    """Resolved SSH destination for a resource."""

    strategy: ConnectionStrategy
    address: str
    vmid: int
    kind: ResourceKind


class VMActionResult(_Record):
    """Outcome of starting or stopping a single VM within a batch."""

    vmid: int
    name: str
    node: str
    success: bool
    duration: float
    message: str | None = None


class CreatedVM(_Record):
    vmid: int
    name: str
    node: str
    template_id: int
    started: bool


# Configuration Models


class ProxmoxConfig(_BaseModel):
    """Connection settings for the Proxmox API."""

    host: str
    port: int = 8006
    realm: str = "pam"
    user: str
    token_key: str
    token_secret: str = Field(repr=False)
    verify_ssl: bool = False
    timeout: int = 30
    task_timeout: float = 300.0

    @field_validator("port")
    @classmethod
    def _validate_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError("port must be between 1 and 65535")
        return value

    @field_validator("timeout", "task_timeout")
    @classmethod
    def _validate_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be positive")
        return value

    @property
    def api_user(self) -> str:
        return f"{self.user}@{self.realm}"


class SSHDefaults(_BaseModel):
    """Defaults used when opening SSH sessions to guests."""

    user: str = DEFAULT_SSH_USER
    key_path: str = DEFAULT_SSH_KEY_PATH
    dns_suffix: str = DEFAULT_DNS_SUFFIX

    @field_validator("key_path", mode="before")
    @classmethod
    def _expand_key(cls, value: str) -> str | None:
        return _expand_path(value)

    @field_validator("dns_suffix")
    @classmethod
    def _strip_suffix(cls, value: str) -> str:
        suffix = value.strip().strip(".")
        if not suffix:
            raise ValueError("dns_suffix must not be empty")
        return suffix


class HomelabConfig(_BaseModel):
    proxmox: ProxmoxConfig
    ssh: SSHDefaults = Field(default_factory=SSHDefaults)


__all__ = [
    "DEFAULT_DNS_SUFFIX",
    "DEFAULT_SSH_KEY_PATH",
    "DEFAULT_SSH_USER",
    "ConnectionStrategy",
    "ConnectionTarget",
    "CreatedVM",
    "HomelabConfig",
    "ProxmoxConfig",
    "Resource",
    "ResourceKind",
    "SSHDefaults",
    "Task",
    "VMActionResult",
    "kind_label",
]
