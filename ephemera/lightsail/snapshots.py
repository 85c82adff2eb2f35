"""Snapshot lookup for restoring previews."""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING

from loguru import logger

from ..constants import SnapshotState
from .types import Snapshot

if TYPE_CHECKING:
    from mypy_boto3_lightsail import LightsailClient

log = logger.bind(component="snapshots")


def list_snapshots(client: LightsailClient) -> Iterator[Snapshot]:
    """Yield every instance snapshot of the account, following pagination."""
    kwargs: dict[str, str] = {}
    while True:
        response = client.get_instance_snapshots(**kwargs)
        for raw in response.get("instanceSnapshots", []):
            yield Snapshot.from_api(raw)
        token = response.get("nextPageToken")
        if not token:
            return
        kwargs["pageToken"] = token


def find_latest_snapshot(
    client: LightsailClient,
    instance_name: str,
    snapshot_name: str = "",
) -> Snapshot | None:
    """Find the newest available snapshot usable for ``instance_name``.

    A snapshot qualifies when it is available and either carries the
    configured ``snapshot_name`` or was taken from ``instance_name``.
    Returns None when nothing qualifies.
    """
    candidates = [
        snap
        for snap in list_snapshots(client)
        if snap.state == SnapshotState.AVAILABLE
        and ((snapshot_name and snap.name == snapshot_name) or snap.from_instance_name == instance_name)
    ]
    if not candidates:
        log.debug(f"No snapshot found for {instance_name}")
        return None
    return max(candidates, key=lambda snap: snap.created_at)
