"""Resource identifiers and public hostnames.

Lightsail resource names and the DNS labels we hand out to users have
different constraints, so they are derived separately:

- ``normalize_name`` turns an arbitrary string (branch name, PR title)
  into a stable resource identifier.
- ``public_hostname`` builds a hostname unique per public IP that fits in
  a publicly issued TLS certificate.
"""

from __future__ import annotations

import re

from ephemera.constants import MAX_HOSTNAME_LENGTH, MAX_NAME_LENGTH

_INVALID_CHARS = re.compile(r"[^A-Za-z0-9]")
_HYPHEN_RUNS = re.compile(r"-{2,}")


def normalize_name(raw: str) -> str:
    """Normalize ``raw`` into a valid resource identifier.

    Total and idempotent: the result is lowercase alphanumeric groups
    joined by single hyphens, at most 61 characters long, possibly empty.

    Example:
        >>> normalize_name("feature/Add--Login_Page")
        'feature-add-login-page'
    """
    name = _INVALID_CHARS.sub("-", raw).lower()
    name = _HYPHEN_RUNS.sub("-", name)
    return name[:MAX_NAME_LENGTH].strip("-")


def public_hostname(
    subdomain: str,
    public_ip: str,
    dns: str,
    ip_prefix: str | None = None,
) -> str:
    """Derive the public hostname of an instance.

    The subdomain is truncated so that the whole hostname stays within
    62 characters; the dashed public IP keeps it unique even when two
    truncated subdomains collide.

    Example:
        >>> public_hostname("my-branch", "3.84.12.7", "my.preview.run")
        'my-branch-3-84-12-7.my.preview.run'
    """
    # three separators: subdomain-, prefix-, and the dot before dns
    budget = MAX_HOSTNAME_LENGTH - len(dns) - len(public_ip) - len(ip_prefix or "") - 3
    label = subdomain[: max(budget, 0)].rstrip("-")
    parts = [label, ip_prefix, public_ip.replace(".", "-")]
    return "-".join(p for p in parts if p) + "." + dns
