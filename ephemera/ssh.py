"""Remote command execution over SSH.

Commands run with the short-lived key and certificate Lightsail hands out
per instance. Every attempt is recorded so the caller can tell whether
the whole deployment went through.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO

import paramiko
from loguru import logger

from ephemera.constants import SSH_CONNECT_TIMEOUT, SSH_KEEPALIVE_INTERVAL
from ephemera.lightsail.types import AccessDetails

log = logger.bind(component="ssh")

KEY_FILE_NAME = "ephemera-key"
CERT_FILE_NAME = f"{KEY_FILE_NAME}-cert.pub"
_CHUNK_SIZE = 32 * 1024


@dataclass(frozen=True, slots=True)
class SSHResult:
    """One recorded remote attempt."""

    command: str
    success: bool


def _write_secret(path: Path, content: str) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(content if content.endswith("\n") else content + "\n")
    os.chmod(path, 0o600)


class RemoteExecutor:
    """Run commands and copy files on an instance.

    Host keys are not verified: instances are created moments before we
    connect to them and thrown away afterwards.

    Args:
        credentials: Returns the access details to connect with.
        key_dir: Where key material is staged. Defaults to the system temp dir.
        connect_timeout: Seconds before a connection attempt is abandoned.
        keepalive: Seconds between keepalive packets.
    """

    def __init__(
        self,
        credentials: Callable[[], AccessDetails],
        *,
        key_dir: Path | None = None,
        connect_timeout: float = SSH_CONNECT_TIMEOUT,
        keepalive: int = SSH_KEEPALIVE_INTERVAL,
    ) -> None:
        self._credentials = credentials
        self._key_dir = key_dir or Path(tempfile.gettempdir())
        self.connect_timeout = connect_timeout
        self.keepalive = keepalive
        self.history: list[SSHResult] = []

    @property
    def key_path(self) -> Path:
        return self._key_dir / KEY_FILE_NAME

    @property
    def cert_path(self) -> Path:
        return self._key_dir / CERT_FILE_NAME

    @property
    def success(self) -> bool:
        """True iff every recorded attempt succeeded."""
        return all(result.success for result in self.history)

    @contextmanager
    def staged_credentials(self, details: AccessDetails) -> Iterator[paramiko.PKey]:
        """Write key material with owner-only permissions, removed on exit."""
        try:
            _write_secret(self.key_path, details.private_key)
            _write_secret(self.cert_path, details.cert_key)
            pkey = paramiko.RSAKey.from_private_key_file(str(self.key_path))
            pkey.load_certificate(str(self.cert_path))
            yield pkey
        finally:
            self.key_path.unlink(missing_ok=True)
            self.cert_path.unlink(missing_ok=True)

    def _connect(self, details: AccessDetails, pkey: paramiko.PKey) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        client.connect(
            hostname=details.ip_address,
            username=details.username,
            pkey=pkey,
            timeout=self.connect_timeout,
            banner_timeout=self.connect_timeout,
            auth_timeout=self.connect_timeout,
            look_for_keys=False,
            allow_agent=False,
        )
        transport = client.get_transport()
        if transport is not None:
            transport.set_keepalive(self.keepalive)
        return client

    def _run(self, client: paramiko.SSHClient, command: str, input: IO[bytes] | None) -> int:
        stdin, stdout, _ = client.exec_command(command)
        # Merged so one reader drains both streams as output arrives.
        stdout.channel.set_combine_stderr(True)
        if input is not None:
            while chunk := input.read(_CHUNK_SIZE):
                stdin.write(chunk)
            stdin.flush()
        stdin.channel.shutdown_write()
        for line in stdout:
            log.info(line.rstrip("\r\n"))
        return stdout.channel.recv_exit_status()

    def execute(self, command: str, input: IO[bytes] | None = None) -> bool:
        """Run ``command`` on the instance, optionally streaming ``input`` to its stdin.

        Returns:
            True if the command exited with status 0. Connection failures
            count as an unsuccessful attempt.
        """
        details = self._credentials()
        log.debug(f"ssh {details.username}@{details.ip_address} {command!r}")
        try:
            with self.staged_credentials(details) as pkey:
                client = self._connect(details, pkey)
                try:
                    code = self._run(client, command, input)
                finally:
                    client.close()
        except (paramiko.SSHException, OSError) as e:
            log.debug(f"ssh attempt failed: {type(e).__name__}: {e}")
            code = None

        success = code == 0
        if code:
            log.debug(f"ssh command exited with {code}")
        self.history.append(SSHResult(command=command, success=success))
        return success

    def copy(self, source: str | Path, target: str, mode: str = "0644") -> bool:
        """Stream a local file to ``target`` and set its mode."""
        with open(source, "rb") as f:
            return self.execute(f"cat - > {target} && chmod {mode} {target}", input=f)
