"""VM lifecycle use cases built on the gateway and the task poller."""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from typing import Literal
from urllib.parse import quote

import structlog

from homelab_cli.core.exceptions import NotFoundError, ProxmoxError, ResourceSelectionError
from homelab_cli.core.gateway import ConfigValue, ProxmoxGateway
from homelab_cli.core.models import CreatedVM, Resource, ResourceKind, VMActionResult
from homelab_cli.core.tasks import DEFAULT_TASK_TIMEOUT, TaskPoller

logger = structlog.get_logger(__name__)

PowerAction = Literal["start", "stop"]


def build_cloud_init_config(
    *,
    user: str | None = None,
    ssh_public_key: str | None = None,
    ipconfig: str | None = None,
) -> dict[str, ConfigValue]:
    """Build cloud-init parameters for the VM config endpoint.

    Proxmox expects ``sshkeys`` URL-encoded.
    """
    params: dict[str, ConfigValue] = {}
    if user:
        params["ciuser"] = user
    if ssh_public_key:
        params["sshkeys"] = quote(ssh_public_key.strip() + "\n", safe="")
    if ipconfig:
        params["ipconfig0"] = ipconfig
    return params


class ProxmoxVMService:
    """Start, stop, create and delete VMs, waiting for every task to finish."""

    def __init__(
        self,
        gateway: ProxmoxGateway,
        poller: TaskPoller,
        *,
        task_timeout: float = DEFAULT_TASK_TIMEOUT,
    ) -> None:
        self._gateway = gateway
        self._poller = poller
        self._task_timeout = task_timeout

    async def list_vms(self, kind: ResourceKind = "qemu") -> list[Resource]:
        return await self._gateway.list_resources(kind)

    async def list_templates(self) -> list[Resource]:
        return await self._gateway.list_templates()

    async def find_vms(self, vmids: Sequence[int]) -> list[Resource]:
        """Look up VMs by VMID, keeping the requested order."""
        vms = await self._gateway.list_resources("qemu", with_addresses=False)
        index = {vm.vmid: vm for vm in vms}
        missing = [vmid for vmid in dict.fromkeys(vmids) if vmid not in index]
        if missing:
            plural = "s" if len(missing) > 1 else ""
            raise ResourceSelectionError(
                missing,
                f"VM{plural} {', '.join(str(vmid) for vmid in missing)} not found. "
                "Use 'homelab vm list' to see available VMs.",
            )
        return [index[vmid] for vmid in dict.fromkeys(vmids)]

    async def start_vms(self, vmids: Sequence[int]) -> list[VMActionResult]:
        return await self._run_batch(vmids, "start")

    async def stop_vms(self, vmids: Sequence[int]) -> list[VMActionResult]:
        return await self._run_batch(vmids, "stop")

    async def delete_vm(self, vmid: int) -> Resource:
        vms = await self._gateway.list_resources("qemu", with_addresses=False)
        candidates = [*vms, *await self._gateway.list_templates()]
        vm = next((candidate for candidate in candidates if candidate.vmid == vmid), None)
        if vm is None:
            raise NotFoundError("qemu", vmid)
        logger.info("vm-delete", vmid=vmid, node=vm.node)
        task = await self._gateway.delete_resource(vm.node, vm.vmid, vm.kind)
        await self._poller.wait(task, self._task_timeout)
        return vm

    async def create_vm(
        self,
        template_id: int,
        name: str,
        *,
        cloud_init: Mapping[str, ConfigValue] | None = None,
        start: bool = False,
    ) -> CreatedVM:
        """Full-clone a template into a new VM with the next free VMID."""
        templates = await self._gateway.list_templates()
        template = next((item for item in templates if item.vmid == template_id), None)
        if template is None:
            raise NotFoundError("qemu", template_id)

        vmid = await self._gateway.next_vmid()
        logger.info("vm-clone", template=template_id, vmid=vmid, name=name, node=template.node)
        task = await self._gateway.clone_template(template.node, template_id, vmid, name)
        await self._poller.wait(task, self._task_timeout)

        if cloud_init:
            await self._gateway.set_config(template.node, vmid, cloud_init)

        if start:
            task = await self._gateway.start_resource(template.node, vmid)
            await self._poller.wait(task, self._task_timeout)

        return CreatedVM(vmid=vmid, name=name, node=template.node, template_id=template_id, started=start)

    async def _apply(self, vm: Resource, action: PowerAction) -> None:
        logger.info(f"vm-{action}", vmid=vm.vmid, node=vm.node)
        if action == "start":
            task = await self._gateway.start_resource(vm.node, vm.vmid, vm.kind)
        else:
            task = await self._gateway.stop_resource(vm.node, vm.vmid, vm.kind)
        await self._poller.wait(task, self._task_timeout)

    async def _run_batch(self, vmids: Sequence[int], action: PowerAction) -> list[VMActionResult]:
        vms = await self.find_vms(vmids)
        results: list[VMActionResult] = []

        # One VM at a time: keeps the API load low and the progress readable.
        for vm in vms:
            start = time.monotonic()
            try:
                await self._apply(vm, action)
            except ProxmoxError as exc:
                success, message = False, str(exc)
            else:
                success, message = True, None

            duration = time.monotonic() - start
            results.append(
                VMActionResult(
                    vmid=vm.vmid,
                    name=vm.name,
                    node=vm.node,
                    success=success,
                    duration=duration,
                    message=message,
                )
            )
            if success:
                logger.info(f"vm-{action}-success", vmid=vm.vmid, duration_sec=duration)
            else:
                logger.error(f"vm-{action}-failed", vmid=vm.vmid, duration_sec=duration, details=message)

        return results


__all__ = ["PowerAction", "ProxmoxVMService", "build_cloud_init_config"]
