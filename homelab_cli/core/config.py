"""Loading of the homelab CLI configuration from TOML and the environment."""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, cast

import structlog
from pydantic import ValidationError

from homelab_cli.core.exceptions import ConfigError
from homelab_cli.core.models import HomelabConfig, ProxmoxConfig, SSHDefaults

logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/homelab/config.toml").expanduser()
CONFIG_PATH_ENV = "HOMELAB_CONFIG"

PROXMOX_ENV_OVERRIDES: dict[str, str] = {
    "host": "PROXMOX_HOST",
    "port": "PROXMOX_PORT",
    "realm": "PROXMOX_REALM",
    "user": "PROXMOX_USER",
    "token_key": "PROXMOX_TOKEN_KEY",
    "token_secret": "PROXMOX_TOKEN_SECRET",
    "verify_ssl": "PROXMOX_VERIFY_SSL",
}


def resolve_config_path(path: Path | None, environ: Mapping[str, str]) -> Path:
    if path is not None:
        return path.expanduser()
    override = environ.get(CONFIG_PATH_ENV)
    if override:
        return Path(override).expanduser()
    return DEFAULT_CONFIG_PATH


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError:
        logger.debug("config-file-missing", path=str(path))
        return {}
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Config file '{path}' is invalid: {exc}") from exc


def _section(data: Mapping[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise ConfigError(f"[{name}] must be a table")
    return dict(cast(dict[str, Any], value))


def _describe(exc: ValidationError, section: str) -> str:
    problems: list[str] = []
    for error in exc.errors():
        field = str(error["loc"][0]) if error["loc"] else section
        env_name = PROXMOX_ENV_OVERRIDES.get(field) if section == "proxmox" else None
        if error["type"] == "missing" and env_name:
            problems.append(f"{env_name} is required but not configured")
        else:
            problems.append(f"Invalid value for {section}.{field}: {error['msg']}")
    return "; ".join(problems)


def load_config(path: Path | None = None, *, environ: Mapping[str, str] | None = None) -> HomelabConfig:
    """Load the configuration; ``PROXMOX_*`` variables override the file."""
    env = os.environ if environ is None else environ
    config_path = resolve_config_path(path, env)
    data = _read_toml(config_path)

    proxmox_data = _section(data, "proxmox")
    for field, env_name in PROXMOX_ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value:
            proxmox_data[field] = value
    ssh_data = _section(data, "ssh")

    try:
        proxmox = ProxmoxConfig.model_validate(proxmox_data)
    except ValidationError as exc:
        raise ConfigError(_describe(exc, "proxmox")) from exc
    try:
        ssh = SSHDefaults.model_validate(ssh_data)
    except ValidationError as exc:
        raise ConfigError(_describe(exc, "ssh")) from exc

    logger.debug("config-loaded", path=str(config_path), host=proxmox.host, port=proxmox.port)
    return HomelabConfig(proxmox=proxmox, ssh=ssh)


__all__ = [
    "CONFIG_PATH_ENV",
    "DEFAULT_CONFIG_PATH",
    "PROXMOX_ENV_OVERRIDES",
    "load_config",
    "resolve_config_path",
]
