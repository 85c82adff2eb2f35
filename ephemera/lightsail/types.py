"""Typed views over Lightsail API records.

boto3 returns plain dicts with camelCase keys; these frozen dataclasses
keep the fields the orchestrator reads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# =============================================================================
# Snapshots
# =============================================================================


@dataclass(frozen=True, slots=True)
class Snapshot:
    """An instance snapshot."""

    name: str
    state: str
    from_instance_name: str
    created_at: datetime

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> Snapshot:
        return cls(
            name=raw["name"],
            state=raw.get("state", ""),
            from_instance_name=raw.get("fromInstanceName", ""),
            created_at=raw["createdAt"],
        )


# =============================================================================
# Access Details
# =============================================================================


@dataclass(frozen=True, slots=True)
class AccessDetails:
    """Short-lived SSH credentials for an instance.

    ``private_key`` and ``cert_key`` are excluded from ``repr`` so the
    record can be logged.
    """

    username: str
    ip_address: str
    private_key: str = field(repr=False)
    cert_key: str = field(repr=False)
    expires_at: datetime | None = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> AccessDetails:
        return cls(
            username=raw["username"],
            ip_address=raw["ipAddress"],
            private_key=raw["privateKey"],
            cert_key=raw["certKey"],
            expires_at=raw.get("expiresAt"),
        )


# =============================================================================
# Firewall
# =============================================================================


@dataclass(frozen=True, slots=True)
class PortRule:
    """One public ingress rule."""

    from_port: int
    to_port: int
    protocol: str
    cidrs: tuple[str, ...]

    def to_api(self) -> dict[str, Any]:
        return {
            "fromPort": self.from_port,
            "toPort": self.to_port,
            "protocol": self.protocol,
            "cidrs": list(self.cidrs),
        }


# =============================================================================
# Operations
# =============================================================================


@dataclass(frozen=True, slots=True)
class Operation:
    """Result of an asynchronous Lightsail operation."""

    id: str
    operation_type: str
    status: str
    error_code: str | None = None
    error_details: str | None = None

    @property
    def failed(self) -> bool:
        return self.error_code is not None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> Operation:
        return cls(
            id=raw.get("id", ""),
            operation_type=raw.get("operationType", ""),
            status=raw.get("status", ""),
            error_code=raw.get("errorCode"),
            error_details=raw.get("errorDetails"),
        )
