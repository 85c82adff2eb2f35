"""First-boot provisioning steps.

Each function returns an ``Op`` (a string or a list of strings) that
``chain`` composes into the instance user data.
"""

from __future__ import annotations

import shlex
from collections.abc import Sequence
from typing import Final

from ..constants import (
    ADMIN_USER,
    AUTHORIZED_KEYS_PATH,
    MARKER_DIR,
    PROFILE_SNIPPET,
    READY_MARKER,
    REMOTE_ENV_FILE,
)
from .compose import Op

COMPOSE_VERSION: Final = "v2.29.7"
COMPOSE_PLUGIN_DIR: Final = "/usr/local/lib/docker/cli-plugins"
SHM_SIZE: Final = "256M"
VFS_CACHE_PRESSURE: Final = 50
IMAGE_PRUNE_AGE: Final = "96h"


def authorized_keys(public_keys: Sequence[str], path: str = AUTHORIZED_KEYS_PATH) -> Op:
    """Overwrite the admin user's authorized keys.

    Example:
        >>> authorized_keys(["ssh-ed25519 AAAA a@b"])
        "echo 'ssh-ed25519 AAAA a@b' > /home/ec2-user/.ssh/authorized_keys"
    """
    keys = "\n".join(public_keys)
    return f"echo {shlex.quote(keys)} > {path}"


def prepare_app_dir(remote_app_path: str, user: str = ADMIN_USER) -> Op:
    """Create the application directory and a login profile that enters it.

    The profile also exports the variables of the env file when present.
    """
    env_loader = (
        f"[[ -f {REMOTE_ENV_FILE} ]] && set -o allexport; "
        f"source {REMOTE_ENV_FILE}; set +o allexport"
    )
    return [
        f"mkdir -p {remote_app_path} && chown -R {user}:{user} {remote_app_path}",
        f"echo 'cd {remote_app_path}' > {PROFILE_SNIPPET}",
        f"echo {shlex.quote(env_loader)} >> {PROFILE_SNIPPET}",
    ]


def setup_swapping(shm_size: str = SHM_SIZE, cache_pressure: int = VFS_CACHE_PRESSURE) -> Op:
    """Replace the tmpfs fstab entry with a fixed-size one and tune VFS caching."""
    entry = f"tmpfs       /dev/shm    tmpfs   defaults,size={shm_size}  0   0"
    return [
        f"sed -i '/^tmpfs/c\\{entry}' /etc/fstab",
        f"echo 'vm.vfs_cache_pressure={cache_pressure}' | tee -a /etc/sysctl.conf",
    ]


def install_docker(user: str = ADMIN_USER, compose_version: str = COMPOSE_VERSION) -> Op:
    """Install docker with the compose plugin and a daily image prune job."""
    compose_url = (
        "https://github.com/docker/compose/releases/download/"
        f"{compose_version}/docker-compose-linux-$(uname -m)"
    )
    prune = f'docker image prune -a --filter="until={IMAGE_PRUNE_AGE}" --force'
    return [
        "yum install -y docker",
        f"mkdir -p {COMPOSE_PLUGIN_DIR}",
        f'curl -fsSL "{compose_url}" -o {COMPOSE_PLUGIN_DIR}/docker-compose',
        f"chmod +x {COMPOSE_PLUGIN_DIR}/docker-compose",
        f"usermod -aG docker {user}",
        "service docker start",
        f"echo {shlex.quote(prune)} > /etc/cron.daily/docker-prune "
        "&& chmod a+x /etc/cron.daily/docker-prune",
    ]


def finish_setup(user: str = ADMIN_USER) -> Op:
    """Drop the ready marker polled by the lifecycle controller."""
    return (
        f"mkdir -p {MARKER_DIR} && touch {READY_MARKER} "
        f"&& chown -R {user}:{user} {MARKER_DIR}"
    )


def restart_docker() -> Op:
    return "service docker restart"
