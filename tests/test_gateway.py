from __future__ import annotations

from typing import Any

import pytest
from _pytest.monkeypatch import MonkeyPatch
from conftest import FakeProxmoxAPI
from proxmoxer import ResourceException
from requests.exceptions import ConnectionError as RequestsConnectionError

from homelab_cli.core import gateway as gateway_module
from homelab_cli.core.exceptions import InvalidPayloadError, TransportError
from homelab_cli.core.gateway import ProxmoxGateway
from homelab_cli.core.models import ProxmoxConfig

CLUSTER = [
    {"vmid": 100, "name": "ubuntu-web", "node": "pve1", "type": "qemu", "status": "running", "template": 0},
    {"vmid": 101, "name": "db", "node": "pve1", "type": "qemu", "status": "stopped"},
    {"vmid": 102, "name": "nginx-proxy", "node": "pve2", "type": "qemu", "status": "running"},
    {"vmid": 9000, "name": "ubuntu-template", "node": "pve1", "type": "qemu", "status": "stopped", "template": 1},
    {"vmid": 200, "name": "pihole", "node": "pve2", "type": "lxc", "status": "running"},
]


def _agent_payload(*interfaces: dict[str, Any]) -> dict[str, Any]:
    return {"result": list(interfaces)}


def _iface(name: str, *addresses: tuple[str, str]) -> dict[str, Any]:
    return {
        "name": name,
        "ip-addresses": [{"ip-address": ip, "ip-address-type": kind, "prefix": 24} for ip, kind in addresses],
    }


@pytest.fixture
def gateway(proxmox_config: ProxmoxConfig, fake_api: FakeProxmoxAPI) -> ProxmoxGateway:
    fake_api.route("GET", "cluster/resources", CLUSTER)
    return ProxmoxGateway(proxmox_config, api=fake_api)


@pytest.mark.asyncio
async def test_list_resources_filters_kind_and_templates(gateway: ProxmoxGateway, fake_api: FakeProxmoxAPI) -> None:
    fake_api.route(
        "GET",
        "nodes/pve1/qemu/100/agent/network-get-interfaces",
        _agent_payload(_iface("lo", ("127.0.0.1", "ipv4")), _iface("eth0", ("10.0.0.10", "ipv4"))),
    )

    vms = await gateway.list_resources("qemu")

    assert [vm.vmid for vm in vms] == [100, 101, 102]
    assert all(not vm.is_template for vm in vms)
    assert vms[0].ipv4_address == "10.0.0.10"
    assert vms[0].node == "pve1"
    assert vms[0].kind == "qemu"
    assert ("GET", "cluster/resources", {"type": "vm"}) in fake_api.calls


@pytest.mark.asyncio
async def test_guest_ip_skips_loopback_and_ipv6(gateway: ProxmoxGateway, fake_api: FakeProxmoxAPI) -> None:
    fake_api.route(
        "GET",
        "nodes/pve1/qemu/100/agent/network-get-interfaces",
        _agent_payload(
            _iface("LO", ("127.0.0.1", "ipv4")),
            _iface("ens18", ("fe80::1", "ipv6"), ("192.168.1.50", "ipv4")),
        ),
    )

    address = await gateway.fetch_ipv4_address("pve1", 100, "qemu")

    assert address == "192.168.1.50"


@pytest.mark.asyncio
async def test_guest_agent_failure_does_not_fail_listing(gateway: ProxmoxGateway, fake_api: FakeProxmoxAPI) -> None:
    fake_api.route(
        "GET",
        "nodes/pve1/qemu/100/agent/network-get-interfaces",
        ResourceException(500, "Internal Server Error", "QEMU guest agent is not running"),
    )
    fake_api.route(
        "GET",
        "nodes/pve2/qemu/102/agent/network-get-interfaces",
        _agent_payload(_iface("eth0", ("10.0.0.12", "ipv4"))),
    )

    vms = await gateway.list_resources("qemu")

    addresses = {vm.vmid: vm.ipv4_address for vm in vms}
    assert addresses == {100: None, 101: None, 102: "10.0.0.12"}


@pytest.mark.asyncio
async def test_guest_queries_run_sequentially_in_listing_order(
    gateway: ProxmoxGateway, fake_api: FakeProxmoxAPI
) -> None:
    await gateway.list_resources("qemu")

    agent_events = [event for event in fake_api.events if "agent" in event]
    assert agent_events == [
        "start nodes/pve1/qemu/100/agent/network-get-interfaces",
        "end nodes/pve1/qemu/100/agent/network-get-interfaces",
        "start nodes/pve1/qemu/101/agent/network-get-interfaces",
        "end nodes/pve1/qemu/101/agent/network-get-interfaces",
        "start nodes/pve2/qemu/102/agent/network-get-interfaces",
        "end nodes/pve2/qemu/102/agent/network-get-interfaces",
    ]


@pytest.mark.asyncio
async def test_list_without_addresses_skips_guest_queries(gateway: ProxmoxGateway, fake_api: FakeProxmoxAPI) -> None:
    vms = await gateway.list_resources("qemu", with_addresses=False)

    assert len(vms) == 3
    assert fake_api.paths() == ["cluster/resources"]


@pytest.mark.asyncio
async def test_container_ip_uses_interface_listing(gateway: ProxmoxGateway, fake_api: FakeProxmoxAPI) -> None:
    fake_api.route(
        "GET",
        "nodes/pve2/lxc/200/interfaces",
        [
            {"name": "lo", "inet": "127.0.0.1/8"},
            {"name": "eth0", "inet": "10.0.0.20/24", "inet6": "fe80::2/64"},
        ],
    )

    containers = await gateway.list_resources("lxc")

    assert [(ct.vmid, ct.ipv4_address) for ct in containers] == [(200, "10.0.0.20")]


@pytest.mark.asyncio
async def test_container_templates_are_not_listed(proxmox_config: ProxmoxConfig, fake_api: FakeProxmoxAPI) -> None:
    fake_api.route(
        "GET",
        "cluster/resources",
        [
            {"vmid": 200, "name": "pihole", "node": "pve2", "type": "lxc", "status": "running"},
            {"vmid": 8000, "name": "debian-tpl", "node": "pve2", "type": "lxc", "status": "stopped", "template": 1},
        ],
    )
    gateway = ProxmoxGateway(proxmox_config, api=fake_api)

    containers = await gateway.list_resources("lxc")

    assert [(ct.vmid, ct.is_template) for ct in containers] == [(200, False)]
    assert "nodes/pve2/lxc/8000/interfaces" not in fake_api.paths()


@pytest.mark.asyncio
async def test_list_templates_only_returns_templates(gateway: ProxmoxGateway, fake_api: FakeProxmoxAPI) -> None:
    templates = await gateway.list_templates()

    assert [(tpl.vmid, tpl.name, tpl.is_template) for tpl in templates] == [(9000, "ubuntu-template", True)]
    assert fake_api.paths() == ["cluster/resources"]


@pytest.mark.asyncio
async def test_next_vmid_considers_every_kind(gateway: ProxmoxGateway) -> None:
    assert await gateway.list_vmids() == {100, 101, 102, 200, 9000}
    assert await gateway.next_vmid() == 103


@pytest.mark.asyncio
async def test_missing_vmid_is_a_validation_failure(proxmox_config: ProxmoxConfig, fake_api: FakeProxmoxAPI) -> None:
    fake_api.route("GET", "cluster/resources", [{"name": "broken", "node": "pve1", "type": "qemu"}])
    gateway = ProxmoxGateway(proxmox_config, api=fake_api)

    with pytest.raises(InvalidPayloadError):
        await gateway.list_resources("qemu")


@pytest.mark.asyncio
async def test_transport_errors_are_wrapped(proxmox_config: ProxmoxConfig, fake_api: FakeProxmoxAPI) -> None:
    cause = RequestsConnectionError("connection refused")
    fake_api.route("GET", "cluster/resources", cause)
    gateway = ProxmoxGateway(proxmox_config, api=fake_api)

    with pytest.raises(TransportError) as excinfo:
        await gateway.list_templates()

    assert excinfo.value.__cause__ is cause
    assert "connection refused" in str(excinfo.value)


@pytest.mark.asyncio
async def test_mutations_return_tasks(gateway: ProxmoxGateway, fake_api: FakeProxmoxAPI) -> None:
    fake_api.route("POST", "nodes/pve1/qemu/9000/clone", "UPID:pve1:clone")
    fake_api.route("POST", "nodes/pve1/qemu/103/status/start", "UPID:pve1:start")
    fake_api.route("POST", "nodes/pve2/lxc/200/status/stop", "UPID:pve2:stop")
    fake_api.route("PUT", "nodes/pve1/qemu/103/config", None)

    clone = await gateway.clone_template("pve1", 9000, 103, "web-2")
    start = await gateway.start_resource("pve1", 103)
    stop = await gateway.stop_resource("pve2", 200, "lxc")
    await gateway.set_config("pve1", 103, {"ciuser": "admin", "ipconfig0": "ip=dhcp"})

    assert (clone.upid, clone.node) == ("UPID:pve1:clone", "pve1")
    assert start.upid == "UPID:pve1:start"
    assert (stop.upid, stop.node) == ("UPID:pve2:stop", "pve2")
    assert ("POST", "nodes/pve1/qemu/9000/clone", {"newid": 103, "name": "web-2", "full": 1}) in fake_api.calls
    assert ("PUT", "nodes/pve1/qemu/103/config", {"ciuser": "admin", "ipconfig0": "ip=dhcp"}) in fake_api.calls


@pytest.mark.asyncio
async def test_mutation_without_upid_is_rejected(gateway: ProxmoxGateway, fake_api: FakeProxmoxAPI) -> None:
    fake_api.route("POST", "nodes/pve1/qemu/100/status/start", None)

    with pytest.raises(InvalidPayloadError, match="start operation"):
        await gateway.start_resource("pve1", 100)


@pytest.mark.asyncio
async def test_delete_of_running_vm_has_actionable_message(gateway: ProxmoxGateway, fake_api: FakeProxmoxAPI) -> None:
    fake_api.route(
        "DELETE",
        "nodes/pve1/qemu/100",
        ResourceException(500, "Internal Server Error", "VM 100 is running - destroy failed"),
    )

    with pytest.raises(TransportError, match="Stop the VM and rerun the delete command"):
        await gateway.delete_resource("pve1", 100)


@pytest.mark.asyncio
async def test_poll_task_status_parses_snapshot(gateway: ProxmoxGateway, fake_api: FakeProxmoxAPI) -> None:
    upid = "UPID:pve1:0001:start"
    fake_api.route("GET", f"nodes/pve1/tasks/{upid}/status", {"status": "stopped", "exitstatus": "OK", "pid": 1})

    task = await gateway.poll_task_status("pve1", upid)

    assert task is not None
    assert task.succeeded
    assert task.upid == upid


@pytest.mark.asyncio
async def test_poll_task_status_without_payload_returns_none(gateway: ProxmoxGateway) -> None:
    assert await gateway.poll_task_status("pve1", "UPID:pve1:missing") is None


def test_build_api_passes_tls_setting_per_client(proxmox_config: ProxmoxConfig, monkeypatch: MonkeyPatch) -> None:
    captured: dict[str, Any] = {}

    def fake_proxmox_api(host: str, **kwargs: Any) -> object:
        captured["host"] = host
        captured.update(kwargs)
        return object()

    monkeypatch.setattr(gateway_module, "ProxmoxAPI", fake_proxmox_api)

    ProxmoxGateway(proxmox_config)

    assert captured == {
        "host": "pve.example.com",
        "port": 8006,
        "user": "root@pam",
        "token_name": "homelab",
        "token_value": "secret",
        "verify_ssl": False,
        "timeout": 30,
    }
