"""Orchestration entry points (up, down) for preview instances."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from ephemera.config import Settings, load_settings
from ephemera.instance import Instance

if TYPE_CHECKING:
    from mypy_boto3_lightsail import LightsailClient

log = logger.bind(component="lifecycle")


@dataclass(frozen=True, slots=True)
class Report:
    """What a successful ``up`` hands back for display.

    ``success`` is True only if every recorded remote attempt succeeded.
    SSH readiness checks made while the instance was still booting are
    recorded too, so a fresh launch usually reports False even when the
    update script ran fine.
    """

    name: str
    url: str
    public_ip: str
    public_dns: str
    success: bool


def up(
    name: str,
    settings: Settings | None = None,
    *,
    tags: Mapping[str, str] | None = None,
    client: LightsailClient | None = None,
    instance: Instance | None = None,
) -> Report:
    """Launch (or reuse) a preview instance and deploy onto it.

    Launches the instance unless it is already running, waits for it,
    opens its ports, waits for SSH, deploys keys and scripts, and runs
    the update script.

    Args:
        name: Preview name, normalized into the instance name.
        settings: Run configuration. Loaded from files and environment if omitted.
        tags: Extra tags for a newly created instance.
        client: Lightsail client to use.
        instance: Pre-built instance, overriding ``name``/``settings``/``client``.

    Returns:
        The public URL, IP and hostname, and whether every remote step succeeded.

    Raises:
        EphemeraError: On timeouts, failed transfers or failed cloud operations.
    """
    instance = instance or Instance(name, settings or load_settings(), client=client)
    log.info(f"Starting preview name={instance.name}")

    try:
        if instance.running():
            log.info(f"Instance name={instance.name} is already running")
        else:
            instance.launch(tags)
            instance.wait_until_running()

        instance.open_ports()
        instance.wait_until_ssh_ready()
        instance.provision()
        instance.run_update_script()
    except Exception as e:
        log.error(f"Launch of {instance.name} failed: {e}")
        raise

    report = Report(
        name=instance.name,
        url=instance.url,
        public_ip=instance.public_ip,
        public_dns=instance.public_dns,
        success=instance.success,
    )
    if report.success:
        log.info(f"Preview ready url={report.url}")
    else:
        log.warning(
            f"Preview ready url={report.url}, some remote attempts failed (readiness checks included)"
        )
    return report


def down(
    name: str,
    settings: Settings | None = None,
    *,
    client: LightsailClient | None = None,
    instance: Instance | None = None,
) -> None:
    """Destroy the preview instance called ``name``.

    Raises:
        OperationError: If Lightsail reports an error deleting the instance.
    """
    instance = instance or Instance(name, settings or load_settings(), client=client)
    log.info(f"Destroying instance name={instance.name}")
    instance.destroy()
