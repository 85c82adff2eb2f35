"""Admin public key resolution.

Admins are GitHub user names; their public keys are published at
``https://github.com/<user>.keys``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import httpx
from loguru import logger

from ephemera.exceptions import KeyFetchError

GITHUB_KEYS_URL = "https://github.com/{user}.keys"

log = logger.bind(component="keys")


def unique_keys(lines: Iterable[str]) -> tuple[str, ...]:
    """Drop empty lines and duplicates, preserving first-seen order."""
    seen: dict[str, None] = {}
    for line in lines:
        key = line.strip()
        if key:
            seen.setdefault(key, None)
    return tuple(seen)


def fetch_public_keys(
    admins: Sequence[str],
    token: str = "",
    *,
    client: httpx.Client | None = None,
    timeout: float = 30,
) -> tuple[str, ...]:
    """Download and merge the public keys of every admin.

    Raises:
        KeyFetchError: If any admin's key list cannot be fetched.
    """
    if not admins:
        return ()

    headers = {"Authorization": f"Bearer {token}"} if token else {}
    http = client or httpx.Client(timeout=timeout, follow_redirects=True)
    lines: list[str] = []
    try:
        for admin in admins:
            url = GITHUB_KEYS_URL.format(user=admin)
            try:
                response = http.get(url, headers=headers)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise KeyFetchError(f"Unable to fetch public keys of {admin}: {e}") from e
            admin_keys = response.text.splitlines()
            log.debug(f"Fetched {len(admin_keys)} public key(s) for {admin}")
            lines.extend(admin_keys)
    finally:
        if client is None:
            http.close()

    return unique_keys(lines)
