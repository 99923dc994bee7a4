"""Core Proxmox orchestration logic."""

from homelab_cli.core.allocator import MIN_VMID, allocate_vmid
from homelab_cli.core.config import load_config
from homelab_cli.core.connection import ConnectionOrchestrator
from homelab_cli.core.exceptions import (
    BothStrategiesFailedError,
    ConfigError,
    InvalidPayloadError,
    NotFoundError,
    ProxmoxError,
    ResourceSelectionError,
    TaskFailedError,
    TaskTimeoutError,
    TransportError,
    UnavailableError,
)
from homelab_cli.core.gateway import ProxmoxGateway
from homelab_cli.core.models import (
    ConnectionTarget,
    HomelabConfig,
    ProxmoxConfig,
    Resource,
    SSHDefaults,
    Task,
)
from homelab_cli.core.resolver import AddressResolver
from homelab_cli.core.services import ProxmoxVMService
from homelab_cli.core.tasks import TaskPoller

__all__ = [
    "MIN_VMID",
    "AddressResolver",
    "BothStrategiesFailedError",
    "ConfigError",
    "ConnectionOrchestrator",
    "ConnectionTarget",
    "HomelabConfig",
    "InvalidPayloadError",
    "NotFoundError",
    "ProxmoxConfig",
    "ProxmoxError",
    "ProxmoxGateway",
    "ProxmoxVMService",
    "Resource",
    "ResourceSelectionError",
    "SSHDefaults",
    "Task",
    "TaskFailedError",
    "TaskPoller",
    "TaskTimeoutError",
    "TransportError",
    "UnavailableError",
    "allocate_vmid",
    "load_config",
]
