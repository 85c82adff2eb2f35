"""ephemera: disposable preview environments on AWS Lightsail.

Example:
    >>> import ephemera
    >>>
    >>> report = ephemera.up("feature/login-page")
    >>> print(report.url)
    >>> ephemera.down("feature/login-page")
"""

from __future__ import annotations

from loguru import logger

from .config import Settings, load_config, load_settings
from .exceptions import (
    EphemeraError,
    InvalidRegistryError,
    KeyFetchError,
    OperationError,
    TransferError,
    WaitTimeoutError,
)
from .instance import Instance, LifecycleState
from .lifecycle import Report, down, up
from .logging import LogConfig, setup_logging, teardown_logging
from .naming import normalize_name, public_hostname
from .ssh import RemoteExecutor, SSHResult
from .wait import wait_until

logger.disable("ephemera")

__all__ = [
    "EphemeraError",
    "Instance",
    "InvalidRegistryError",
    "KeyFetchError",
    "LifecycleState",
    "LogConfig",
    "OperationError",
    "RemoteExecutor",
    "Report",
    "SSHResult",
    "Settings",
    "TransferError",
    "WaitTimeoutError",
    "down",
    "load_config",
    "load_settings",
    "normalize_name",
    "public_hostname",
    "setup_logging",
    "teardown_logging",
    "up",
    "wait_until",
]
