"""Preview instance lifecycle.

``Instance`` is built fresh for every run. It holds no durable state:
the instance itself and its snapshots live in Lightsail, the ready
marker and authorized keys live on the machine. Values fetched from the
API are cached on first access for the rest of the run.

Launch sequence::

    UNCREATED -> LAUNCHING -> RUNNING -> READY -> PROVISIONED

and ``destroy`` moves any state to DESTROYED.
"""

from __future__ import annotations

import tempfile
import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from enum import StrEnum
from functools import cached_property
from pathlib import Path
from typing import TYPE_CHECKING, Any

from botocore.exceptions import ClientError
from loguru import logger

from ephemera.bootstrap import UpdateContext, pre_script, render_update_script, restore_command, setup_command
from ephemera.config import Settings
from ephemera.constants import (
    ANY_CIDR,
    AUTHORIZED_KEYS_PATH,
    READY_MARKER,
    REMOTE_APP_PATH,
    REMOTE_PRE_SCRIPT,
    REMOTE_UPDATE_SCRIPT,
    SSH_PORT,
    STACK_NAME,
    InstanceState,
    Tag,
)
from ephemera.exceptions import OperationError, TransferError, WaitTimeoutError
from ephemera.keys import fetch_public_keys
from ephemera.lightsail import (
    AccessDetails,
    Operation,
    PortRule,
    Snapshot,
    create_client,
    find_latest_snapshot,
    is_not_found,
    open_ports,
)
from ephemera.naming import normalize_name, public_hostname
from ephemera.ssh import RemoteExecutor, SSHResult
from ephemera.wait import wait_until

if TYPE_CHECKING:
    from mypy_boto3_lightsail import LightsailClient


class LifecycleState(StrEnum):
    UNCREATED = "uncreated"
    LAUNCHING = "launching"
    RUNNING = "running"
    READY = "ready"
    PROVISIONED = "provisioned"
    DESTROYED = "destroyed"


class Instance:
    """A single preview instance, addressed by its normalized name.

    Args:
        name: Arbitrary name (branch, PR title), normalized into a resource name.
        settings: Run configuration.
        client: Lightsail client. Created from ``settings.region`` if omitted.
        executor: Remote executor. Defaults to SSH with this instance's credentials.
        key_fetcher: Resolves admin names into public keys.
        sleep: Sleep function used between readiness polls.
    """

    def __init__(
        self,
        name: str,
        settings: Settings | None = None,
        *,
        client: LightsailClient | None = None,
        executor: RemoteExecutor | None = None,
        key_fetcher: Callable[[Sequence[str], str], tuple[str, ...]] = fetch_public_keys,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or Settings()
        self.name = normalize_name(name)
        self.subdomain = self.settings.subdomain or self.name
        self.admins = tuple(self.settings.admins)
        self.cidrs = frozenset(self.settings.cidrs or (ANY_CIDR,))
        self.default_port = self.settings.default_port
        self.ports = tuple(dict.fromkeys([*self.settings.ports, self.default_port, str(SSH_PORT)]))
        self.compose_files = tuple(self.settings.compose_files)
        self.registries = tuple(self.settings.registries)
        self.dns = self.settings.dns
        self.ip_prefix = self.settings.ip_prefix
        self.swap_enabled = self.settings.swap_enabled
        self.state = LifecycleState.UNCREATED

        self._client = client
        self._key_fetcher = key_fetcher
        self._sleep = sleep
        self.ssh = executor or RemoteExecutor(lambda: self.access_details)
        self._log = logger.bind(component="instance", instance=self.name)

    # ------------------ cached lookups ------------------

    @cached_property
    def client(self) -> LightsailClient:
        return self._client or create_client(self.settings.region)

    @cached_property
    def ssh_public_keys(self) -> tuple[str, ...]:
        return self._key_fetcher(self.admins, self.settings.github_token)

    @cached_property
    def latest_snapshot(self) -> Snapshot | None:
        return find_latest_snapshot(self.client, self.name, self.settings.snapshot_name)

    @cached_property
    def instance_details(self) -> dict[str, Any]:
        return self.client.get_instance(instanceName=self.name)["instance"]

    @cached_property
    def access_details(self) -> AccessDetails:
        response = self.client.get_instance_access_details(instanceName=self.name, protocol="ssh")
        details = AccessDetails.from_api(response["accessDetails"])
        self._log.debug(f"access_details={details!r}")
        return details

    # ------------------ derived attributes ------------------

    @property
    def username(self) -> str:
        return self.access_details.username

    @property
    def public_ip(self) -> str:
        return self.access_details.ip_address

    @property
    def ssh_address(self) -> str:
        return f"{self.username}@{self.public_ip}"

    @property
    def public_dns(self) -> str:
        return public_hostname(self.subdomain, self.public_ip, self.dns, self.ip_prefix)

    @property
    def url(self) -> str:
        scheme = "https" if self.default_port == "443" else "http"
        auth = f"{self.settings.basic_auth}@" if self.settings.basic_auth else ""
        return f"{scheme}://{auth}{self.public_dns}:{self.default_port}"

    @property
    def ssh_results(self) -> list[SSHResult]:
        return self.ssh.history

    @property
    def success(self) -> bool:
        return self.ssh.success

    def _transition(self, state: LifecycleState) -> None:
        self._log.debug(f"state {self.state} -> {state}")
        self.state = state

    # ------------------ readiness ------------------

    def running(self) -> bool:
        """One state query. A missing instance is simply not running yet."""
        try:
            response = self.client.get_instance_state(instanceName=self.name)
        except ClientError as e:
            if not is_not_found(e):
                raise
            self.__dict__.pop("instance_details", None)
            return False
        return response["state"]["name"] == InstanceState.RUNNING

    def ssh_ready(self) -> bool:
        return self.ssh.execute(f"test -f {READY_MARKER}")

    def _wait(self, predicate: Callable[[], bool], condition: str) -> None:
        ready = wait_until(
            predicate,
            self.settings.max_retries,
            self.settings.interval,
            description=condition,
            sleep=self._sleep,
        )
        if not ready:
            self._log.error(f"Timeout while waiting for {condition}")
            raise WaitTimeoutError(condition, self.settings.max_retries)

    def wait_until_running(self) -> None:
        self._wait(self.running, "instance to be running")
        self._transition(LifecycleState.RUNNING)
        self._log.info(f"Instance is running public_ip={self.public_ip} public_dns={self.public_dns}")

    def wait_until_ssh_ready(self) -> None:
        self._wait(self.ssh_ready, "ssh")
        self._transition(LifecycleState.READY)
        self._log.info("Instance ssh access OK")

    # ------------------ launch & destroy ------------------

    def setup_command(self) -> str:
        return setup_command(self.ssh_public_keys, swap_enabled=self.swap_enabled)

    def restore_command(self) -> str:
        return restore_command()

    def _tags(self, extra: Mapping[str, str] | None) -> list[dict[str, str]]:
        tags: dict[str, str] = {Tag.STACK: STACK_NAME}
        if self.settings.github_repository_owner:
            tags[Tag.OWNER] = self.settings.github_repository_owner
        tags.update(self.settings.tags)
        tags.update(extra or {})
        return [{"key": str(k), "value": str(v)} for k, v in tags.items()]

    def launch(self, tags: Mapping[str, str] | None = None) -> list[Operation]:
        """Create the instance, from the latest usable snapshot when there is one."""
        self._transition(LifecycleState.LAUNCHING)
        params: dict[str, Any] = {
            "instanceNames": [self.name],
            "availabilityZone": self.settings.zone,
            "bundleId": self.settings.bundle_id,
            "tags": self._tags(tags),
        }

        snapshot = self.latest_snapshot
        if snapshot is not None:
            self._log.info(f"Found snapshot to restore from: {snapshot.name}")
            self._log.info(f"Creating new instance name={self.name}...")
            response = self.client.create_instances_from_snapshot(
                **params,
                userData=self.restore_command(),
                instanceSnapshotName=snapshot.name,
            )
        else:
            self._log.debug(f"Instance launching ssh_public_keys={list(self.ssh_public_keys)}")
            self._log.info(f"Creating new instance name={self.name}...")
            response = self.client.create_instances(
                **params,
                userData=self.setup_command(),
                blueprintId=self.settings.blueprint_id,
            )
        return [Operation.from_api(op) for op in response.get("operations", [])]

    def destroy(self) -> None:
        """Delete the instance.

        Raises:
            OperationError: If the delete operation reports an error code.
        """
        response = self.client.delete_instance(instanceName=self.name)
        for operation in map(Operation.from_api, response.get("operations", [])):
            if operation.failed:
                raise OperationError(
                    "delete_instance", str(operation.error_code), operation.error_details
                )
        self._transition(LifecycleState.DESTROYED)
        self._log.info("Instance successfully destroyed")

    # ------------------ provisioning ------------------

    def open_ports(self) -> list[PortRule]:
        return open_ports(self.client, self.name, self.ports, self.cidrs)

    @contextmanager
    def _staged(self, filename: str, content: str) -> Iterator[Path]:
        with tempfile.TemporaryDirectory(prefix="ephemera-") as tmp:
            path = Path(tmp) / filename
            path.write_text(content)
            path.chmod(0o600)
            yield path

    def setup_ssh_access(self) -> bool:
        with self._staged("authorized_keys", "\n".join(self.ssh_public_keys)) as path:
            return self.ssh.copy(path, AUTHORIZED_KEYS_PATH, mode="0600")

    def update_context(self) -> UpdateContext:
        return UpdateContext(
            public_ip=self.public_ip,
            public_dns=self.public_dns,
            url=self.url,
            compose_files=self.compose_files,
            remote_app_path=REMOTE_APP_PATH,
            admins=self.admins,
            launch_command=self.settings.launch_command,
            env_vars=self.settings.env_vars,
        )

    def setup_update_script(self) -> None:
        with self._staged("update_script.sh", render_update_script(self.update_context())) as path:
            if not self.ssh.copy(path, REMOTE_UPDATE_SCRIPT, mode="0755"):
                raise TransferError("update script", REMOTE_UPDATE_SCRIPT)

    def setup_prepost_scripts(self) -> None:
        with self._staged("pre_script.sh", pre_script(self.registries)) as path:
            if not self.ssh.copy(path, REMOTE_PRE_SCRIPT, mode="0755"):
                raise TransferError("pre script", REMOTE_PRE_SCRIPT)

    def provision(self) -> None:
        """Deploy keys and scripts onto a ready instance."""
        self.setup_ssh_access()
        self.setup_update_script()
        self.setup_prepost_scripts()
        self._transition(LifecycleState.PROVISIONED)

    def run_update_script(self) -> bool:
        return self.ssh.execute(REMOTE_UPDATE_SCRIPT)
