import stat
from pathlib import Path
from unittest.mock import MagicMock, patch

import paramiko
import pytest

from ephemera.lightsail.types import AccessDetails
from ephemera.ssh import RemoteExecutor, SSHResult

pytestmark = [pytest.mark.unit]


@pytest.fixture
def details(access_details_raw) -> AccessDetails:
    return AccessDetails.from_api(access_details_raw)


@pytest.fixture
def ssh_client():
    client = MagicMock(name="SSHClient")
    stdin, stdout, stderr = MagicMock(), MagicMock(), MagicMock()
    stdout.channel.recv_exit_status.return_value = 0
    client.exec_command.return_value = (stdin, stdout, stderr)
    with (
        patch("ephemera.ssh.paramiko.SSHClient", return_value=client),
        patch("ephemera.ssh.paramiko.RSAKey.from_private_key_file") as from_file,
    ):
        client.pkey = from_file.return_value
        yield client


def _exit_with(client: MagicMock, code: int) -> None:
    client.exec_command.return_value[1].channel.recv_exit_status.return_value = code


class TestExecute:
    def test_success(self, ssh_client, details, tmp_path: Path):
        executor = RemoteExecutor(lambda: details, key_dir=tmp_path)
        assert executor.execute("test -f /etc/pullpreview/ready") is True
        assert executor.history == [SSHResult("test -f /etc/pullpreview/ready", True)]
        assert executor.success is True

    def test_connects_with_certificate_and_bounded_timeout(self, ssh_client, details, tmp_path):
        RemoteExecutor(lambda: details, key_dir=tmp_path).execute("true")

        kwargs = ssh_client.connect.call_args.kwargs
        assert kwargs["hostname"] == "3.84.12.7"
        assert kwargs["username"] == "ec2-user"
        assert kwargs["pkey"] is ssh_client.pkey
        assert kwargs["timeout"] == 10
        ssh_client.pkey.load_certificate.assert_called_once_with(str(tmp_path / "ephemera-key-cert.pub"))
        ssh_client.get_transport.return_value.set_keepalive.assert_called_once_with(15)
        ssh_client.close.assert_called_once()

    def test_host_keys_are_not_verified(self, ssh_client, details, tmp_path):
        RemoteExecutor(lambda: details, key_dir=tmp_path).execute("true")
        policy = ssh_client.set_missing_host_key_policy.call_args.args[0]
        assert isinstance(policy, paramiko.AutoAddPolicy)

    def test_key_material_is_private_and_removed(self, ssh_client, details, tmp_path):
        modes = {}

        def capture(*_args, **_kwargs):
            for name in ("ephemera-key", "ephemera-key-cert.pub"):
                modes[name] = stat.S_IMODE((tmp_path / name).stat().st_mode)
            return ssh_client.exec_command.return_value

        ssh_client.exec_command.side_effect = capture
        RemoteExecutor(lambda: details, key_dir=tmp_path).execute("true")

        assert modes == {"ephemera-key": 0o600, "ephemera-key-cert.pub": 0o600}
        assert list(tmp_path.iterdir()) == []

    def test_non_zero_exit_is_a_failure(self, ssh_client, details, tmp_path):
        _exit_with(ssh_client, 1)
        executor = RemoteExecutor(lambda: details, key_dir=tmp_path)
        assert executor.execute("false") is False
        assert executor.success is False

    def test_connection_failure_is_recorded_not_raised(self, ssh_client, details, tmp_path):
        ssh_client.connect.side_effect = OSError("Connection refused")
        executor = RemoteExecutor(lambda: details, key_dir=tmp_path)
        assert executor.execute("true") is False
        assert executor.history == [SSHResult("true", False)]
        assert list(tmp_path.iterdir()) == []

    def test_authentication_failure_is_recorded(self, ssh_client, details, tmp_path):
        ssh_client.connect.side_effect = paramiko.AuthenticationException("denied")
        assert RemoteExecutor(lambda: details, key_dir=tmp_path).execute("true") is False

    def test_success_requires_every_attempt(self, ssh_client, details, tmp_path):
        executor = RemoteExecutor(lambda: details, key_dir=tmp_path)
        executor.execute("true")
        _exit_with(ssh_client, 2)
        executor.execute("false")
        _exit_with(ssh_client, 0)
        executor.execute("true")
        assert [r.success for r in executor.history] == [True, False, True]
        assert executor.success is False


class TestCopy:
    def test_streams_file_to_remote_stdin(self, ssh_client, details, tmp_path):
        source = tmp_path / "update_script.sh"
        source.write_bytes(b"#!/bin/bash -e\necho hi\n")
        key_dir = tmp_path / "keys"
        key_dir.mkdir()

        executor = RemoteExecutor(lambda: details, key_dir=key_dir)
        assert executor.copy(source, "/tmp/update_script.sh", mode="0755") is True

        ssh_client.exec_command.assert_called_once_with(
            "cat - > /tmp/update_script.sh && chmod 0755 /tmp/update_script.sh"
        )
        stdin = ssh_client.exec_command.return_value[0]
        written = b"".join(call.args[0] for call in stdin.write.call_args_list)
        assert written == b"#!/bin/bash -e\necho hi\n"
        stdin.channel.shutdown_write.assert_called_once()

class _InterleavedStdout:
    """Channel file yielding stdout and stderr lines in arrival order once merged."""

    def __init__(self, lines: list[tuple[str, str]]) -> None:
        self._lines = lines
        self.events: list[str] = []
        self.channel = MagicMock(name="channel")
        self.channel.recv_exit_status.return_value = 0

    def __iter__(self):
        combined = self.channel.set_combine_stderr.call_args == ((True,), {})
        for stream, line in self._lines:
            if stream == "stdout" or combined:
                self.events.append(line)
                yield line


class TestOutput:
    def test_stderr_is_merged_and_streamed_in_order(self, ssh_client, details, tmp_path, log_records):
        stdout = _InterleavedStdout([
            ("stdout", "Pulling web\n"),
            ("stderr", "warning: image has no digest\n"),
            ("stdout", "Container web Started\n"),
            ("stderr", "Error response from daemon\r\n"),
        ])
        ssh_client.exec_command.return_value = (MagicMock(), stdout, MagicMock())

        assert RemoteExecutor(lambda: details, key_dir=tmp_path).execute("/tmp/update_script.sh") is True

        remote = [r["message"] for r in log_records if r["level"].name == "INFO"]
        assert remote == [
            "Pulling web",
            "warning: image has no digest",
            "Container web Started",
            "Error response from daemon",
        ]

    def test_exit_status_read_after_output_is_drained(self, ssh_client, details, tmp_path):
        stdout = _InterleavedStdout([("stdout", "building\n"), ("stderr", "failed\n")])
        stdout.channel.recv_exit_status.side_effect = lambda: stdout.events.append("exit") or 3
        ssh_client.exec_command.return_value = (MagicMock(), stdout, MagicMock())

        assert RemoteExecutor(lambda: details, key_dir=tmp_path).execute("false") is False
        assert stdout.events == ["building\n", "failed\n", "exit"]
