"""Shell payloads for instance provisioning.

Example:
    >>> from ephemera.bootstrap import chain, setup_command
    >>>
    >>> user_data = setup_command(["ssh-ed25519 AAAA admin"], swap_enabled=False)
"""

from __future__ import annotations

from .compose import STRICT_SHEBANG, Op, chain, resolve, script, steps
from .ops import (
    authorized_keys,
    finish_setup,
    install_docker,
    prepare_app_dir,
    restart_docker,
    setup_swapping,
)
from .registries import RegistryLogin, compile_registry_logins, parse_registry, pre_script
from .scripts import UpdateContext, render_update_script, restore_command, setup_command

__all__ = [
    "Op",
    "STRICT_SHEBANG",
    "RegistryLogin",
    "UpdateContext",
    "authorized_keys",
    "chain",
    "compile_registry_logins",
    "finish_setup",
    "install_docker",
    "parse_registry",
    "pre_script",
    "prepare_app_dir",
    "render_update_script",
    "resolve",
    "restart_docker",
    "restore_command",
    "script",
    "setup_command",
    "setup_swapping",
    "steps",
]
