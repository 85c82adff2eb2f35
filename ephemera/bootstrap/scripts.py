"""Payloads executed on the instance.

- ``setup_command``: first-boot user data for a fresh instance.
- ``restore_command``: user data for an instance restored from a snapshot.
- ``render_update_script``: the script copied to the instance and run on
  every deployment.
"""

from __future__ import annotations

import shlex
from collections.abc import Sequence
from dataclasses import dataclass

from ..constants import MARKER_DIR, REMOTE_APP_PATH, REMOTE_ENV_FILE, REMOTE_PRE_SCRIPT
from .compose import chain, script
from .ops import (
    authorized_keys,
    finish_setup,
    install_docker,
    prepare_app_dir,
    restart_docker,
    setup_swapping,
)


def setup_command(
    public_keys: Sequence[str],
    *,
    swap_enabled: bool = True,
    remote_app_path: str = REMOTE_APP_PATH,
) -> str:
    """First-boot payload, as a single ``&&``-chained command."""
    return chain(
        authorized_keys(public_keys),
        prepare_app_dir(remote_app_path),
        setup_swapping() if swap_enabled else None,
        install_docker(),
        finish_setup(),
    )


def restore_command() -> str:
    """Payload for instances restored from a snapshot.

    Everything else survives in the snapshot, only the engine needs a kick.
    """
    return chain(restart_docker())


@dataclass(frozen=True, slots=True)
class UpdateContext:
    """Values rendered into the update script."""

    public_ip: str
    public_dns: str
    url: str
    compose_files: tuple[str, ...] = ("docker-compose.yml",)
    remote_app_path: str = REMOTE_APP_PATH
    admins: tuple[str, ...] = ()
    launch_command: str = ""
    env_vars: str = ""


def _env_file(ctx: UpdateContext) -> str:
    variables = [
        f"PULLPREVIEW_PUBLIC_DNS={ctx.public_dns}",
        f"PULLPREVIEW_PUBLIC_IP={ctx.public_ip}",
        f"PULLPREVIEW_URL={ctx.url}",
        "PULLPREVIEW_FIRST_RUN=${PULLPREVIEW_FIRST_RUN}",
    ]
    if ctx.admins:
        variables.append(f"PULLPREVIEW_ADMINS={','.join(ctx.admins)}")
    body = "\n".join(variables + ctx.env_vars.strip().splitlines())
    return f"cat > {REMOTE_ENV_FILE} << EOF\n{body}\nEOF"


def _launch(ctx: UpdateContext) -> list[str]:
    if ctx.launch_command:
        return [ctx.launch_command]
    files = " ".join(f"-f {shlex.quote(f)}" for f in ctx.compose_files)
    return [
        f"docker compose {files} pull -q",
        f"docker compose {files} up -d --remove-orphans",
    ]


def render_update_script(ctx: UpdateContext) -> str:
    """Render the deployment script run after every push."""
    first_run_marker = f"{MARKER_DIR}/first_run_done"
    return script(
        f"cd {ctx.remote_app_path}",
        f"PULLPREVIEW_FIRST_RUN=$([[ -f {first_run_marker} ]] && echo false || echo true)",
        _env_file(ctx),
        "set -o allexport",
        f"source {REMOTE_ENV_FILE}",
        "set +o allexport",
        REMOTE_PRE_SCRIPT,
        _launch(ctx),
        f"touch {first_run_marker}",
    )
