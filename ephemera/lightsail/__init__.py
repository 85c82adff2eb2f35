"""Lightsail integration: client, snapshots, firewall and API records."""

from __future__ import annotations

from .client import create_client, is_not_found
from .firewall import build_rules, open_ports, parse_port_spec
from .snapshots import find_latest_snapshot, list_snapshots
from .types import AccessDetails, Operation, PortRule, Snapshot

__all__ = [
    "AccessDetails",
    "Operation",
    "PortRule",
    "Snapshot",
    "build_rules",
    "create_client",
    "find_latest_snapshot",
    "is_not_found",
    "list_snapshots",
    "open_ports",
    "parse_port_spec",
]
