"""Centralized constants for ephemera.

Remote paths, resource tags and polling defaults live here so the
bootstrap payloads, the remote executor and the lifecycle controller
agree on them.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

# =============================================================================
# Resource Tags
# =============================================================================

STACK_NAME: Final = "pullpreview"


class Tag(StrEnum):
    """Tag keys attached to every created instance."""

    STACK = "stack"
    OWNER = "repo_owner"


# =============================================================================
# Lightsail States
# =============================================================================


class InstanceState(StrEnum):
    """Lightsail instance state names."""

    PENDING = "pending"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class SnapshotState(StrEnum):
    """Lightsail instance snapshot state names."""

    PENDING = "pending"
    AVAILABLE = "available"
    ERROR = "error"


# =============================================================================
# Remote Paths
# =============================================================================

ADMIN_USER: Final = "ec2-user"
REMOTE_APP_PATH: Final = "/app"
AUTHORIZED_KEYS_PATH: Final = f"/home/{ADMIN_USER}/.ssh/authorized_keys"
MARKER_DIR: Final = "/etc/pullpreview"
READY_MARKER: Final = f"{MARKER_DIR}/ready"
REMOTE_ENV_FILE: Final = f"{MARKER_DIR}/env"
PROFILE_SNIPPET: Final = "/etc/profile.d/pullpreview.sh"
REMOTE_UPDATE_SCRIPT: Final = "/tmp/update_script.sh"
REMOTE_PRE_SCRIPT: Final = "/tmp/pre_script.sh"

# =============================================================================
# Network
# =============================================================================

ANY_CIDR: Final = "0.0.0.0/0"
SSH_PORT: Final = 22
DEFAULT_PORT: Final = "80"
DEFAULT_PROTOCOL: Final = "tcp"

# Public TLS certificates cap the common name at 64 characters.
MAX_HOSTNAME_LENGTH: Final = 62
MAX_NAME_LENGTH: Final = 61

# =============================================================================
# Polling
# =============================================================================

DEFAULT_MAX_RETRIES: Final = 30
DEFAULT_INTERVAL: Final = 5.0

# =============================================================================
# SSH
# =============================================================================

SSH_CONNECT_TIMEOUT: Final = 10
SSH_KEEPALIVE_INTERVAL: Final = 15

# =============================================================================
# Registries
# =============================================================================

REGISTRY_SCHEME: Final = "docker"
DEFAULT_REGISTRY_HOST: Final = "docker.io"
TOKEN_PLACEHOLDER_USER: Final = "doesnotmatter"
