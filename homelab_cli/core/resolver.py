"""Network address resolution for VMs and containers."""

from __future__ import annotations

from typing import Protocol

import structlog

from homelab_cli.core.exceptions import NotFoundError, UnavailableError
from homelab_cli.core.models import DEFAULT_DNS_SUFFIX, Resource, ResourceKind

logger = structlog.get_logger(__name__)


class ResourceSource(Protocol):
    async def list_resources(self, kind: ResourceKind) -> list[Resource]: ...


class AddressResolver:
    """Looks up the IPv4 address or DNS name of a resource."""

    def __init__(self, source: ResourceSource, *, dns_suffix: str = DEFAULT_DNS_SUFFIX) -> None:
        self._source = source
        self.dns_suffix = dns_suffix

    async def find(self, vmid: int, kind: ResourceKind) -> Resource:
        resources = await self._source.list_resources(kind)
        for resource in resources:
            if resource.vmid == vmid:
                return resource
        raise NotFoundError(kind, vmid)

    async def resolve_ip(self, vmid: int, kind: ResourceKind) -> str:
        resource = await self.find(vmid, kind)
        if not resource.ipv4_address:
            logger.debug("ip-unavailable", kind=kind, vmid=vmid, status=resource.status)
            raise UnavailableError(kind, vmid)
        return resource.ipv4_address

    async def resolve_fqdn(self, vmid: int, kind: ResourceKind) -> str:
        resource = await self.find(vmid, kind)
        return self.fqdn_for(resource.name)

    def fqdn_for(self, name: str) -> str:
        return f"{name}.{self.dns_suffix}"


__all__ = ["AddressResolver", "ResourceSource"]
