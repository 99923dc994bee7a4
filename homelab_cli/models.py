"""Pydantic models for Typer CLI options."""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from homelab_cli.core.gateway import ConfigValue
from homelab_cli.core.models import ResourceKind
from homelab_cli.core.services import build_cloud_init_config

_VM_NAME_PATTERN = re.compile(r"^[A-Za-z0-9]([A-Za-z0-9-]*[A-Za-z0-9])?$")


class _BaseOptions(BaseModel):
    model_config = ConfigDict(frozen=True)


def _expand(value: str | Path) -> str:
    return str(Path(value).expanduser())


class ConnectOptions(_BaseOptions):
    vmid: int = Field(ge=1)
    kind: ResourceKind
    user: str = Field(min_length=1)
    key_path: str

    _validate_key = field_validator("key_path", mode="before")(_expand)


class PowerOptions(_BaseOptions):
    vmids: tuple[int, ...] = Field(min_length=1)

    @field_validator("vmids", mode="before")
    @classmethod
    def _coerce_vmids(cls, value: Iterable[int] | int | None) -> tuple[int, ...]:
        if value is None:
            return ()
        if isinstance(value, int):
            return (value,)
        return tuple(value)

    @field_validator("vmids")
    @classmethod
    def _validate_positive(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        if any(vmid <= 0 for vmid in value):
            raise ValueError("VMIDs must be positive")
        return value


class CreateOptions(_BaseOptions):
    template_id: int = Field(ge=1)
    name: str
    start: bool = False
    ci_user: str | None = None
    ssh_key_file: Path | None = None
    ipconfig: str | None = None

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        if not _VM_NAME_PATTERN.match(value):
            raise ValueError("VM name must be a valid DNS label (letters, digits and hyphens)")
        return value

    @field_validator("ssh_key_file", mode="before")
    @classmethod
    def _expand_key_file(cls, value: str | Path | None) -> Path | None:
        if value is None:
            return None
        return Path(value).expanduser()

    def cloud_init(self) -> dict[str, ConfigValue]:
        public_key = self.ssh_key_file.read_text(encoding="utf-8") if self.ssh_key_file else None
        return build_cloud_init_config(user=self.ci_user, ssh_public_key=public_key, ipconfig=self.ipconfig)


__all__ = ["ConnectOptions", "CreateOptions", "PowerOptions"]
