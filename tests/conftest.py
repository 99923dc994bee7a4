from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from typing import Any

import pytest

from homelab_cli.core.models import ProxmoxConfig, Resource, ResourceKind, Task

Handler = Callable[[dict[str, Any]], Any]


class FakeEndpoint:
    """Mimics proxmoxer's path building: attribute access and calls append segments."""

    def __init__(self, api: FakeProxmoxAPI, path: str) -> None:
        self._api = api
        self._path = path

    def __getattr__(self, name: str) -> FakeEndpoint:
        if name.startswith("__"):
            raise AttributeError(name)
        return self._child(name)

    def __call__(self, *segments: object) -> FakeEndpoint:
        endpoint = self
        for segment in segments:
            endpoint = endpoint._child(str(segment))
        return endpoint

    def _child(self, segment: str) -> FakeEndpoint:
        return FakeEndpoint(self._api, f"{self._path}/{segment}" if self._path else segment)

    def get(self, **params: Any) -> Any:
        return self._api.request("GET", self._path, params)

    def post(self, **params: Any) -> Any:
        return self._api.request("POST", self._path, params)

    def put(self, **params: Any) -> Any:
        return self._api.request("PUT", self._path, params)

    def delete(self, **params: Any) -> Any:
        return self._api.request("DELETE", self._path, params)


class FakeProxmoxAPI(FakeEndpoint):
    """In-memory stand-in for ``proxmoxer.ProxmoxAPI`` keyed by method and path."""

    def __init__(self) -> None:
        super().__init__(self, "")
        self.routes: dict[tuple[str, str], Any] = {}
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.events: list[str] = []

    def route(self, method: str, path: str, response: Any) -> None:
        self.routes[(method, path)] = response

    def request(self, method: str, path: str, params: dict[str, Any]) -> Any:
        self.calls.append((method, path, params))
        self.events.append(f"start {path}")
        try:
            response = self.routes.get((method, path))
            if isinstance(response, BaseException):
                raise response
            if callable(response):
                return response(params)
            return response
        finally:
            time.sleep(0.005)
            self.events.append(f"end {path}")

    def paths(self, method: str | None = None) -> list[str]:
        return [path for verb, path, _ in self.calls if method is None or verb == method]


class FakeGateway:
    """Gateway double backed by plain lists; records every call."""

    def __init__(
        self,
        resources: Mapping[ResourceKind, list[Resource]] | None = None,
        *,
        templates: list[Resource] | None = None,
        next_vmid: int = 100,
    ) -> None:
        self.resources: dict[ResourceKind, list[Resource]] = {"qemu": [], "lxc": []}
        self.resources.update(resources or {})
        self.templates = templates or []
        self._next_vmid = next_vmid
        self.calls: list[tuple[Any, ...]] = []
        self.task_statuses: list[Task | None | Exception] = []
        self.failing_vmids: set[int] = set()

    async def list_resources(self, kind: ResourceKind, *, with_addresses: bool = True) -> list[Resource]:
        self.calls.append(("list_resources", kind, with_addresses))
        resources = list(self.resources[kind])
        if not with_addresses:
            return [resource.model_copy(update={"ipv4_address": None}) for resource in resources]
        return resources

    async def list_templates(self) -> list[Resource]:
        self.calls.append(("list_templates",))
        return list(self.templates)

    async def next_vmid(self) -> int:
        self.calls.append(("next_vmid",))
        return self._next_vmid

    async def clone_template(self, node: str, template_id: int, new_id: int, name: str) -> Task:
        self.calls.append(("clone_template", node, template_id, new_id, name))
        return Task(upid=f"UPID:{node}:clone:{new_id}", node=node)

    async def delete_resource(self, node: str, vmid: int, kind: ResourceKind = "qemu") -> Task:
        self.calls.append(("delete_resource", node, vmid, kind))
        return Task(upid=f"UPID:{node}:delete:{vmid}", node=node)

    async def start_resource(self, node: str, vmid: int, kind: ResourceKind = "qemu") -> Task:
        self.calls.append(("start_resource", node, vmid, kind))
        return Task(upid=f"UPID:{node}:start:{vmid}", node=node)

    async def stop_resource(self, node: str, vmid: int, kind: ResourceKind = "qemu") -> Task:
        self.calls.append(("stop_resource", node, vmid, kind))
        return Task(upid=f"UPID:{node}:stop:{vmid}", node=node)

    async def set_config(
        self,
        node: str,
        vmid: int,
        params: Mapping[str, Any],
        kind: ResourceKind = "qemu",
    ) -> None:
        self.calls.append(("set_config", node, vmid, dict(params)))

    async def poll_task_status(self, node: str, upid: str) -> Task | None:
        self.calls.append(("poll_task_status", node, upid))
        vmid = int(upid.rsplit(":", 1)[-1]) if upid.rsplit(":", 1)[-1].isdigit() else None
        if vmid in self.failing_vmids:
            return Task(upid=upid, node=node, status="stopped", exit_status="command failed")
        if self.task_statuses:
            status = self.task_statuses.pop(0)
            if isinstance(status, Exception):
                raise status
            return status
        return Task(upid=upid, node=node, status="stopped", exit_status="OK")

    def called(self, name: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == name]


def make_resource(
    vmid: int,
    name: str,
    *,
    kind: ResourceKind = "qemu",
    node: str = "pve",
    status: str = "running",
    ipv4_address: str | None = None,
    is_template: bool = False,
) -> Resource:
    return Resource(
        vmid=vmid,
        name=name,
        node=node,
        kind=kind,
        status=status,
        ipv4_address=ipv4_address,
        is_template=is_template,
    )


@pytest.fixture
def proxmox_config() -> ProxmoxConfig:
    return ProxmoxConfig(
        host="pve.example.com",
        user="root",
        realm="pam",
        token_key="homelab",
        token_secret="secret",
    )


@pytest.fixture
def fake_api() -> FakeProxmoxAPI:
    return FakeProxmoxAPI()
