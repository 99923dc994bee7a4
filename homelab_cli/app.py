"""Typer CLI entrypoints for the homelab Proxmox toolkit."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, TypeVar

import structlog
import typer
from pydantic import ValidationError
from typer import Argument, Option

from homelab_cli.core.config import load_config
from homelab_cli.core.connection import ConnectionOrchestrator
from homelab_cli.core.exceptions import ProxmoxError, UnavailableError
from homelab_cli.core.gateway import ProxmoxGateway
from homelab_cli.core.models import (
    CreatedVM,
    HomelabConfig,
    Resource,
    ResourceKind,
    VMActionResult,
    kind_label,
)
from homelab_cli.core.resolver import AddressResolver
from homelab_cli.core.services import PowerAction, ProxmoxVMService
from homelab_cli.core.tasks import TaskPoller
from homelab_cli.models import ConnectOptions, CreateOptions, PowerOptions
from homelab_cli.utils import CommandExecutionError, configure_logging

logger = structlog.get_logger(__name__)

T = TypeVar("T")

app = typer.Typer(help="Homelab Proxmox toolkit", no_args_is_help=True)


@dataclass(frozen=True)
class CLIState:
    config_path: Path | None = None


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[bool, Option("--verbose", "-v", help="Enable verbose logging globally")] = False,
    config: Annotated[str | None, Option("--config", "-c", help="Config file path")] = None,
) -> None:
    configure_logging(verbose)
    ctx.obj = CLIState(config_path=Path(config).expanduser() if config else None)


# Wiring


def build_gateway(config: HomelabConfig) -> ProxmoxGateway:
    return ProxmoxGateway(config.proxmox)


def build_vm_service(config: HomelabConfig) -> ProxmoxVMService:
    gateway = build_gateway(config)
    return ProxmoxVMService(gateway, TaskPoller(gateway), task_timeout=config.proxmox.task_timeout)


def build_orchestrator(config: HomelabConfig) -> ConnectionOrchestrator:
    resolver = AddressResolver(build_gateway(config), dns_suffix=config.ssh.dns_suffix)
    return ConnectionOrchestrator(resolver)


def _state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    return state if isinstance(state, CLIState) else CLIState()


def _run(ctx: typer.Context, action: Callable[[HomelabConfig], Coroutine[Any, Any, T]]) -> T:
    """Load the config and run ``action``, turning domain errors into exit code 1."""
    try:
        config = load_config(_state(ctx).config_path)
        return asyncio.run(action(config))
    except (ProxmoxError, CommandExecutionError) as exc:
        logger.debug("command-failed", error=str(exc), exc_info=True)
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


def _options(factory: Callable[[], T]) -> T:
    try:
        return factory()
    except ValidationError as exc:
        messages = "; ".join(error["msg"] for error in exc.errors())
        raise typer.BadParameter(messages) from exc


def _echo_resources(resources: list[Resource], empty_message: str) -> None:
    if not resources:
        typer.echo(empty_message)
        return
    for resource in resources:
        typer.echo(
            f"{resource.vmid:>6}  {resource.name:<24} {resource.node:<12} "
            f"{resource.status:<10} {resource.ipv4_address or '-'}"
        )


def _connect(ctx: typer.Context, vmid: int, kind: ResourceKind, user: str | None, key: str | None) -> None:
    label = kind_label(kind)

    async def action(config: HomelabConfig) -> int:
        options = _options(
            lambda: ConnectOptions(
                vmid=vmid,
                kind=kind,
                user=user or config.ssh.user,
                key_path=key or config.ssh.key_path,
            )
        )

        def narrate_fallback(error: UnavailableError) -> None:
            typer.echo(f"IP address for {label} {vmid} unavailable, trying FQDN fallback...")

        typer.echo(f"Connecting to {label} {vmid} as {options.user}...")
        return await build_orchestrator(config).connect(
            options.vmid,
            options.kind,
            user=options.user,
            key_path=options.key_path,
            on_fallback=narrate_fallback,
        )

    return_code = _run(ctx, action)
    typer.echo("SSH session closed.")
    raise typer.Exit(code=return_code)


def _report_batch(results: list[VMActionResult], action: PowerAction) -> None:
    verb = "started" if action == "start" else "stopped"
    for result in results:
        if result.success:
            typer.echo(f"Successfully {verb} VM {result.vmid} '{result.name}' on node '{result.node}'")
        else:
            typer.secho(f"VM {result.vmid}: {result.message}", fg=typer.colors.RED, err=True)
    if len(results) > 1:
        succeeded = sum(1 for result in results if result.success)
        typer.echo(f"Summary: {succeeded} successful, {len(results) - succeeded} failed")
    if any(not result.success for result in results):
        raise typer.Exit(code=1)


def _power(ctx: typer.Context, vmids: list[int], action: PowerAction) -> None:
    options = _options(lambda: PowerOptions(vmids=tuple(vmids)))
    verb = "Starting" if action == "start" else "Stopping"
    count = len(options.vmids)
    typer.echo(f"{verb} {count} VMs..." if count > 1 else f"{verb} VM {options.vmids[0]}...")

    async def action_runner(config: HomelabConfig) -> list[VMActionResult]:
        service = build_vm_service(config)
        if action == "start":
            return await service.start_vms(options.vmids)
        return await service.stop_vms(options.vmids)

    _report_batch(_run(ctx, action_runner), action)


# VM commands


vm_app = typer.Typer(help="Virtual machine commands", no_args_is_help=True)
app.add_typer(vm_app, name="vm")


@vm_app.command("list", help="List VMs with their IP addresses")
def vm_list(ctx: typer.Context) -> None:
    async def action(config: HomelabConfig) -> list[Resource]:
        return await build_vm_service(config).list_vms("qemu")

    _echo_resources(_run(ctx, action), "No VMs found")


@vm_app.command("start", help="Start one or more stopped VMs")
def vm_start(
    ctx: typer.Context,
    vmids: Annotated[list[int], Argument(help="VMIDs to start")],
) -> None:
    _power(ctx, vmids, "start")


@vm_app.command("stop", help="Stop one or more running VMs")
def vm_stop(
    ctx: typer.Context,
    vmids: Annotated[list[int], Argument(help="VMIDs to stop")],
) -> None:
    _power(ctx, vmids, "stop")


@vm_app.command("connect", help="Open an SSH session to a VM")
def vm_connect(
    ctx: typer.Context,
    vmid: Annotated[int, Argument(help="VMID of the VM")],
    user: Annotated[str | None, Option("--user", "-u", help="SSH username")] = None,
    key: Annotated[str | None, Option("--key", "-k", help="Path to SSH private key")] = None,
) -> None:
    _connect(ctx, vmid, "qemu", user, key)


@vm_app.command("create", help="Create a VM by cloning a template")
def vm_create(
    ctx: typer.Context,
    template_id: Annotated[int, Argument(help="VMID of the template to clone")],
    name: Annotated[str, Argument(help="Name of the new VM")],
    start: Annotated[bool, Option("--start", help="Start the VM once created")] = False,
    ci_user: Annotated[str | None, Option("--ci-user", help="Cloud-init user")] = None,
    ssh_key_file: Annotated[
        str | None, Option("--ssh-key-file", help="Public key injected through cloud-init")
    ] = None,
    ipconfig: Annotated[
        str | None, Option("--ipconfig", help="Cloud-init ipconfig0, e.g. ip=dhcp")
    ] = None,
) -> None:
    options = _options(
        lambda: CreateOptions(
            template_id=template_id,
            name=name,
            start=start,
            ci_user=ci_user,
            ssh_key_file=ssh_key_file,
            ipconfig=ipconfig,
        )
    )
    try:
        cloud_init = options.cloud_init()
    except OSError as exc:
        raise typer.BadParameter(f"Cannot read SSH key file: {exc}") from exc

    typer.echo(f"Creating VM '{options.name}' from template {options.template_id}...")

    async def action(config: HomelabConfig) -> CreatedVM:
        return await build_vm_service(config).create_vm(
            options.template_id,
            options.name,
            cloud_init=cloud_init or None,
            start=options.start,
        )

    created = _run(ctx, action)
    state = "started" if created.started else "created"
    typer.echo(f"Successfully {state} VM {created.vmid} '{created.name}' on node '{created.node}'")


@vm_app.command("delete", help="Delete a stopped VM or template permanently")
def vm_delete(
    ctx: typer.Context,
    vmid: Annotated[int, Argument(help="VMID to delete")],
    yes: Annotated[bool, Option("--yes", "-y", help="Confirm the deletion")] = False,
) -> None:
    if not yes:
        typer.secho(f"Refusing to delete VM {vmid} without --yes", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    async def action(config: HomelabConfig) -> Resource:
        return await build_vm_service(config).delete_vm(vmid)

    deleted = _run(ctx, action)
    typer.echo(f"Deleted VM {deleted.vmid} '{deleted.name}' from node '{deleted.node}'")


# Container commands


container_app = typer.Typer(help="LXC container commands", no_args_is_help=True)
app.add_typer(container_app, name="container")


@container_app.command("list", help="List containers with their IP addresses")
def container_list(ctx: typer.Context) -> None:
    async def action(config: HomelabConfig) -> list[Resource]:
        return await build_vm_service(config).list_vms("lxc")

    _echo_resources(_run(ctx, action), "No containers found")


@container_app.command("connect", help="Open an SSH session to a container")
def container_connect(
    ctx: typer.Context,
    vmid: Annotated[int, Argument(help="VMID of the container")],
    user: Annotated[str | None, Option("--user", "-u", help="SSH username")] = None,
    key: Annotated[str | None, Option("--key", "-k", help="Path to SSH private key")] = None,
) -> None:
    _connect(ctx, vmid, "lxc", user, key)


# Template commands


template_app = typer.Typer(help="VM template commands", no_args_is_help=True)
app.add_typer(template_app, name="template")


@template_app.command("list", help="List VM templates")
def template_list(ctx: typer.Context) -> None:
    async def action(config: HomelabConfig) -> list[Resource]:
        return await build_vm_service(config).list_templates()

    _echo_resources(_run(ctx, action), "No templates found")
