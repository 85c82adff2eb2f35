"""TOML and environment based configuration.

Loads ~/.ephemera/defaults.toml (global) and ephemera.toml (project),
merges them, applies environment overrides and builds ``Settings``.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from types import MappingProxyType
from typing import Any, Final

from ephemera.constants import ANY_CIDR, DEFAULT_INTERVAL, DEFAULT_MAX_RETRIES, DEFAULT_PORT

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".ephemera" / "defaults.toml"
PROJECT_CONFIG_NAME = "ephemera.toml"

# Setting name -> environment variable overriding it.
ENV_OVERRIDES: Final[Mapping[str, str]] = MappingProxyType({
    "region": "AWS_REGION",
    "launch_command": "PULLPREVIEW_LAUNCH_COMMAND",
    "env_vars": "PULLPREVIEW_ENV_VARS",
    "snapshot_name": "PULLPREVIEW_SNAPSHOT_NAME",
    "basic_auth": "BASIC_AUTH",
    "github_token": "GITHUB_TOKEN",
    "github_repository_owner": "GITHUB_REPOSITORY_OWNER",
})


@dataclass(frozen=True, slots=True)
class Settings:
    """Everything an orchestration run needs besides the instance name.

    Args:
        region: AWS region of the Lightsail instance.
        availability_zone: Availability zone to launch in. Defaults to the
            first zone of ``region``.
        bundle_id: Lightsail bundle (instance size).
        blueprint_id: Lightsail blueprint (base image) for fresh instances.
        admins: GitHub users whose public keys get SSH access.
        cidrs: Networks allowed to reach the instance.
        ports: Extra port specs (``start[-end][/protocol]``) to open.
        default_port: Port the preview is served on.
        compose_files: Compose files passed to ``docker compose``.
        registries: Registry URIs (``docker://[user[:pass]@]host``) to log into.
        dns: Base domain of the public hostname.
        ip_prefix: Optional label inserted before the IP in the hostname.
        subdomain: Label of the public hostname. Defaults to the instance name.
        swap_enabled: Whether first boot tunes the tmpfs and VFS cache.
        tags: Extra tags attached to the instance.
        max_retries: Evaluations allowed per readiness poll.
        interval: Seconds between readiness evaluations.
        launch_command: Replaces ``docker compose up`` when set.
        env_vars: Extra ``KEY=value`` lines for the remote env file.
        snapshot_name: Snapshot to restore from, besides the instance's own.
        basic_auth: ``user:password`` shown in the reported URL.
        github_token: Token used when fetching admin keys.
        github_repository_owner: Owner recorded as a tag on the instance.
    """

    region: str = "us-east-1"
    availability_zone: str = ""
    bundle_id: str = "nano_2_0"
    blueprint_id: str = "amazon_linux_2"
    admins: tuple[str, ...] = ()
    cidrs: tuple[str, ...] = (ANY_CIDR,)
    ports: tuple[str, ...] = ()
    default_port: str = DEFAULT_PORT
    compose_files: tuple[str, ...] = ("docker-compose.yml",)
    registries: tuple[str, ...] = ()
    dns: str = "my.preview.run"
    ip_prefix: str | None = None
    subdomain: str | None = None
    swap_enabled: bool = True
    tags: Mapping[str, str] = field(default_factory=dict)
    max_retries: int = DEFAULT_MAX_RETRIES
    interval: float = DEFAULT_INTERVAL
    launch_command: str = ""
    env_vars: str = ""
    snapshot_name: str = ""
    basic_auth: str | None = None
    github_token: str = ""
    github_repository_owner: str = ""

    @property
    def zone(self) -> str:
        return self.availability_zone or f"{self.region}a"


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    with path.open("rb") as f:
        return tomllib.load(f)


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)
    return _deep_merge(global_cfg, project_cfg)


def _env_config(environ: Mapping[str, str]) -> RawConfig:
    return {name: environ[var] for name, var in ENV_OVERRIDES.items() if var in environ}


def _build_settings(raw: RawConfig) -> Settings:
    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown settings: {', '.join(unknown)}. Valid: {', '.join(sorted(known))}")

    values = dict(raw)
    for key, value in values.items():
        if isinstance(value, list):
            values[key] = tuple(str(v) for v in value)
    if "tags" in values:
        values["tags"] = {str(k): str(v) for k, v in values["tags"].items()}
    if "default_port" in values:
        values["default_port"] = str(values["default_port"])
    return Settings(**values)


def load_settings(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> Settings:
    """Build settings from config files, environment and explicit overrides.

    Precedence, highest first: ``overrides``, environment, project file,
    global file, defaults.

    Raises:
        ValueError: If a setting name is not recognized.
    """
    raw = load_config(project_dir=project_dir, global_path=global_path)
    raw = _deep_merge(raw, _env_config(os.environ if environ is None else environ))
    raw = _deep_merge(raw, {k: v for k, v in overrides.items() if v is not None})
    return _build_settings(raw)
