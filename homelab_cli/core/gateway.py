"""Proxmox API gateway: typed access to cluster resources and tasks."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any, TypeVar, cast

import structlog
from proxmoxer import ProxmoxAPI, ResourceException
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from requests.exceptions import RequestException

from homelab_cli.core.allocator import allocate_vmid
from homelab_cli.core.exceptions import InvalidPayloadError, TransportError
from homelab_cli.core.models import ProxmoxConfig, Resource, ResourceKind, Task, kind_label

logger = structlog.get_logger(__name__)

T = TypeVar("T")

ConfigValue = bool | int | str


# API Records


class ClusterResourceRecord(BaseModel):
    vmid: int = Field(gt=0)
    node: str
    type: str
    name: str | None = None
    status: str | None = None
    template: int = 0
    model_config = ConfigDict(extra="ignore")


class TaskStatusRecord(BaseModel):
    status: str
    exitstatus: str | None = None
    model_config = ConfigDict(extra="ignore")


class GuestInterfaceAddress(BaseModel):
    ip_address: str = Field(alias="ip-address")
    ip_address_type: str = Field(alias="ip-address-type")
    model_config = ConfigDict(populate_by_name=True)


def _empty_address_list() -> list[GuestInterfaceAddress]:
    return []


class GuestInterface(BaseModel):
    name: str | None = None
    ip_addresses: list[GuestInterfaceAddress] = Field(
        default_factory=_empty_address_list,
        alias="ip-addresses",
    )
    model_config = ConfigDict(populate_by_name=True)


class ContainerInterface(BaseModel):
    name: str | None = None
    inet: str | None = None
    model_config = ConfigDict(extra="ignore")


CLUSTER_LIST_ADAPTER = TypeAdapter(list[ClusterResourceRecord])
INTERFACE_LIST_ADAPTER = TypeAdapter(list[GuestInterface])
CONTAINER_INTERFACE_LIST_ADAPTER = TypeAdapter(list[ContainerInterface])


def _is_loopback(name: str | None) -> bool:
    return bool(name) and "lo" in cast(str, name).lower()


def first_guest_ipv4(interfaces: list[GuestInterface]) -> str | None:
    """Return the first IPv4 address reported by the QEMU guest agent."""
    for iface in interfaces:
        if _is_loopback(iface.name):
            continue
        for address in iface.ip_addresses:
            if address.ip_address_type.lower() == "ipv4" and address.ip_address:
                return address.ip_address
    return None


def first_container_ipv4(interfaces: list[ContainerInterface]) -> str | None:
    """Return the first IPv4 address of a container, without its prefix length."""
    for iface in interfaces:
        if _is_loopback(iface.name) or not iface.inet:
            continue
        return iface.inet.split("/", 1)[0]
    return None


def build_api(config: ProxmoxConfig) -> ProxmoxAPI:
    """Create a token-authenticated proxmoxer client.

    TLS verification is configured on this client only.
    """
    return ProxmoxAPI(
        config.host,
        port=config.port,
        user=config.api_user,
        token_name=config.token_key,
        token_value=config.token_secret,
        verify_ssl=config.verify_ssl,
        timeout=config.timeout,
    )


class ProxmoxGateway:
    """Async facade over the Proxmox REST API.

    Every call re-queries the cluster; nothing is cached between calls.
    """

    def __init__(self, config: ProxmoxConfig, *, api: Any | None = None) -> None:
        self._config = config
        self._api = api if api is not None else build_api(config)

    # Listings

    async def list_resources(self, kind: ResourceKind, *, with_addresses: bool = True) -> list[Resource]:
        """List the non-template resources of one kind.

        With ``with_addresses`` each entry carries the IPv4 address reported by
        its guest, otherwise ``ipv4_address`` is left empty and no guest is
        queried.
        """
        records = await self._cluster_records()
        selected = [record for record in records if record.type == kind and record.template != 1]
        resources: list[Resource] = []
        # Guest agents are queried one at a time in listing order to avoid
        # flooding the API; do not parallelize.
        for record in selected:
            ipv4_address = None
            if with_addresses:
                ipv4_address = await self.fetch_ipv4_address(record.node, record.vmid, kind)
            resources.append(self._to_resource(record, kind, ipv4_address))
        logger.debug("resources-listed", kind=kind, count=len(resources))
        return resources

    async def list_templates(self) -> list[Resource]:
        records = await self._cluster_records()
        return [
            self._to_resource(record, "qemu", None)
            for record in records
            if record.type == "qemu" and record.template == 1
        ]

    async def list_vmids(self) -> set[int]:
        records = await self._cluster_records()
        return {record.vmid for record in records}

    async def next_vmid(self) -> int:
        vmid = allocate_vmid(await self.list_vmids())
        logger.debug("vmid-allocated", vmid=vmid)
        return vmid

    # Mutations

    async def clone_template(self, node: str, template_id: int, new_id: int, name: str) -> Task:
        upid = await self._call(
            f"Clone of template {template_id}",
            lambda: self._api.nodes(node).qemu(template_id).clone.post(newid=new_id, name=name, full=1),
        )
        return self._task(node, upid, label="clone")

    async def delete_resource(self, node: str, vmid: int, kind: ResourceKind = "qemu") -> Task:
        label = kind_label(kind)
        try:
            upid = await self._call(
                f"Delete of {label} {vmid}",
                lambda: self._resource_path(node, vmid, kind).delete(),
            )
        except TransportError as exc:
            cause = str(exc.__cause__ or exc)
            if "is running" in cause or "destroy failed" in cause:
                raise TransportError(
                    f"Delete failed: {label} {vmid} is running - Stop the {label} and rerun the delete command"
                ) from exc.__cause__
            raise
        return self._task(node, upid, label="delete")

    async def start_resource(self, node: str, vmid: int, kind: ResourceKind = "qemu") -> Task:
        upid = await self._call(
            f"Start of {kind_label(kind)} {vmid}",
            lambda: self._resource_path(node, vmid, kind).status.start.post(),
        )
        return self._task(node, upid, label="start")

    async def stop_resource(self, node: str, vmid: int, kind: ResourceKind = "qemu") -> Task:
        upid = await self._call(
            f"Stop of {kind_label(kind)} {vmid}",
            lambda: self._resource_path(node, vmid, kind).status.stop.post(),
        )
        return self._task(node, upid, label="stop")

    async def set_config(
        self,
        node: str,
        vmid: int,
        params: Mapping[str, ConfigValue],
        kind: ResourceKind = "qemu",
    ) -> None:
        await self._call(
            f"Configuration of {kind_label(kind)} {vmid}",
            lambda: self._resource_path(node, vmid, kind).config.put(**dict(params)),
        )
        logger.debug("config-written", vmid=vmid, keys=sorted(params))

    # Tasks

    async def poll_task_status(self, node: str, upid: str) -> Task | None:
        payload = await self._call(
            f"Status of task {upid}",
            lambda: self._api.nodes(node).tasks(upid).status.get(),
        )
        if not payload:
            return None
        try:
            record = TaskStatusRecord.model_validate(payload)
        except ValidationError as exc:
            raise InvalidPayloadError(f"Invalid task status payload: {exc}") from exc
        return Task(upid=upid, node=node, status=record.status, exit_status=record.exitstatus)

    # Guest networking

    async def fetch_ipv4_address(self, node: str, vmid: int, kind: ResourceKind) -> str | None:
        """Return the guest's first non-loopback IPv4 address, or None.

        Failures are logged and swallowed so one unreachable guest agent never
        fails a listing.
        """
        try:
            if kind == "qemu":
                payload = await self._call(
                    f"Guest agent query for VM {vmid}",
                    lambda: self._api.nodes(node).qemu(vmid).agent("network-get-interfaces").get(),
                )
                return first_guest_ipv4(INTERFACE_LIST_ADAPTER.validate_python(_agent_result(payload)))
            payload = await self._call(
                f"Interface query for container {vmid}",
                lambda: self._api.nodes(node).lxc(vmid).interfaces.get(),
            )
            return first_container_ipv4(CONTAINER_INTERFACE_LIST_ADAPTER.validate_python(payload or []))
        except (TransportError, ValidationError) as exc:
            logger.debug("guest-ip-unavailable", kind=kind, vmid=vmid, node=node, error=str(exc))
            return None

    # Helpers

    async def _cluster_records(self) -> list[ClusterResourceRecord]:
        payload = await self._call(
            "Cluster resource listing",
            lambda: self._api.cluster.resources.get(type="vm"),
        )
        if not isinstance(payload, list):
            raise InvalidPayloadError("Unexpected API response format for cluster resources")
        try:
            return CLUSTER_LIST_ADAPTER.validate_python(payload)
        except ValidationError as exc:
            raise InvalidPayloadError(f"Invalid cluster resource payload: {exc}") from exc

    async def _call(self, label: str, request: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(request)
        except (ResourceException, RequestException) as exc:
            logger.debug(
                "proxmox-api-error",
                operation=label,
                host=self._config.host,
                port=self._config.port,
                error=str(exc),
            )
            raise TransportError(f"{label} failed: {exc}") from exc

    def _resource_path(self, node: str, vmid: int, kind: ResourceKind) -> Any:
        return getattr(self._api.nodes(node), kind)(vmid)

    @staticmethod
    def _task(node: str, upid: Any, *, label: str) -> Task:
        if not upid or not isinstance(upid, str):
            raise InvalidPayloadError(f"Unexpected API response format from {label} operation")
        return Task(upid=upid, node=node)

    @staticmethod
    def _to_resource(record: ClusterResourceRecord, kind: ResourceKind, ipv4_address: str | None) -> Resource:
        return Resource(
            vmid=record.vmid,
            name=record.name or str(record.vmid),
            node=record.node,
            kind=kind,
            status=record.status or "unknown",
            ipv4_address=ipv4_address,
            is_template=record.template == 1,
        )


def _agent_result(payload: Any) -> Any:
    if isinstance(payload, Mapping):
        mapping = cast(Mapping[str, Any], payload)
        if "result" in mapping:
            return mapping["result"]
        if "data" in mapping:
            return mapping["data"]
    return payload


__all__ = [
    "ClusterResourceRecord",
    "ContainerInterface",
    "GuestInterface",
    "GuestInterfaceAddress",
    "ProxmoxGateway",
    "TaskStatusRecord",
    "build_api",
    "first_container_ipv4",
    "first_guest_ipv4",
]
