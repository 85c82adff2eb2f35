"""Container registry logins for the pre-script.

Registries are configured as URIs of the form
``docker://[user[:password]@]host``. Each valid entry becomes one
``docker login`` line; malformed entries are logged and skipped.

A URI carrying a single credential component (``docker://TOKEN@ghcr.io``)
is a token login: the component is used as the password and the user
name is a placeholder. Registries such as ghcr.io accept any user name
alongside a token.
"""

from __future__ import annotations

import shlex
from collections.abc import Sequence
from dataclasses import dataclass
from urllib.parse import unquote, urlsplit

from loguru import logger

from ..constants import DEFAULT_REGISTRY_HOST, REGISTRY_SCHEME, TOKEN_PLACEHOLDER_USER
from ..exceptions import InvalidRegistryError
from .compose import script

log = logger.bind(component="registries")


@dataclass(frozen=True, slots=True)
class RegistryLogin:
    """Credentials for one registry."""

    host: str
    username: str
    password: str

    @property
    def is_default_host(self) -> bool:
        return self.host.endswith(DEFAULT_REGISTRY_HOST)

    def command(self) -> str:
        """Shell line logging into this registry, reading the password from stdin."""
        target = "" if self.is_default_host else f" {shlex.quote(self.host)}"
        return (
            f"echo {shlex.quote(self.password)} | docker login "
            f"--username {shlex.quote(self.username)} --password-stdin{target}"
        )


def parse_registry(uri: str) -> RegistryLogin:
    """Parse a registry URI.

    Raises:
        InvalidRegistryError: Wrong scheme, missing host or missing credentials.
    """
    try:
        parts = urlsplit(uri)
    except ValueError as e:
        raise InvalidRegistryError(str(e)) from e

    if parts.scheme != REGISTRY_SCHEME:
        raise InvalidRegistryError(f"expected {REGISTRY_SCHEME}:// scheme")

    userinfo, _, host = parts.netloc.rpartition("@")
    if not host:
        raise InvalidRegistryError("missing host")

    username, sep, password = userinfo.partition(":")
    if not sep:
        username, password = TOKEN_PLACEHOLDER_USER, username
    if not password:
        raise InvalidRegistryError("missing credentials")

    return RegistryLogin(host=host, username=unquote(username), password=unquote(password))


def compile_registry_logins(registries: Sequence[str]) -> list[str]:
    """Build one login line per valid registry, in configuration order."""
    lines: list[str] = []
    for index, uri in enumerate(registries):
        try:
            login = parse_registry(uri)
        except InvalidRegistryError as e:
            log.bind(registry=index).warning(f"Registry #{index} is invalid: {e}")
            continue
        lines.append(login.command())
    return lines


def pre_script(registries: Sequence[str]) -> str:
    """Render the pre-script run before each update."""
    return script(compile_registry_logins(registries))
