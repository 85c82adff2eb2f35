"""Public ingress rules.

Port specs are strings of the form ``start[-end][/protocol]``, e.g.
``"80"``, ``"3000-3010"`` or ``"53/udp"``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from loguru import logger

from ..constants import ANY_CIDR, DEFAULT_PROTOCOL, SSH_PORT
from .types import PortRule

if TYPE_CHECKING:
    from mypy_boto3_lightsail import LightsailClient

log = logger.bind(component="firewall")


def parse_port_spec(spec: str, cidrs: Iterable[str] = (ANY_CIDR,)) -> PortRule:
    """Translate a port spec into an ingress rule.

    SSH (start port 22) is always open to the world so administrative
    access can't be locked out by a restrictive CIDR list.

    Example:
        >>> parse_port_spec("3000-3010/udp", ["10.0.0.0/8"])
        PortRule(from_port=3000, to_port=3010, protocol='udp', cidrs=('10.0.0.0/8',))

    Raises:
        ValueError: If a port is not an integer.
    """
    port_range, _, protocol = spec.strip().partition("/")
    start, _, end = port_range.partition("-")
    from_port = int(start)
    to_port = int(end) if end else from_port
    allowed = (ANY_CIDR,) if from_port == SSH_PORT else tuple(sorted(set(cidrs)))
    return PortRule(
        from_port=from_port,
        to_port=to_port,
        protocol=protocol or DEFAULT_PROTOCOL,
        cidrs=allowed,
    )


def build_rules(ports: Sequence[str], cidrs: Iterable[str] = (ANY_CIDR,)) -> list[PortRule]:
    cidrs = tuple(cidrs)
    return [parse_port_spec(spec, cidrs) for spec in ports]


def open_ports(
    client: LightsailClient,
    instance_name: str,
    ports: Sequence[str],
    cidrs: Iterable[str] = (ANY_CIDR,),
) -> list[PortRule]:
    """Replace the instance's public ports with the given rule set."""
    rules = build_rules(ports, cidrs)
    log.bind(instance=instance_name).info(
        "Opening ports " + ", ".join(f"{r.from_port}-{r.to_port}/{r.protocol}" for r in rules)
    )
    client.put_instance_public_ports(
        portInfos=[rule.to_api() for rule in rules],
        instanceName=instance_name,
    )
    return rules
