"""Lightsail client factory and error classification."""

from __future__ import annotations

from typing import TYPE_CHECKING

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

if TYPE_CHECKING:
    from mypy_boto3_lightsail import LightsailClient

NOT_FOUND_CODES = ("NotFoundException", "DoesNotExist")


def create_client(region: str, request_timeout: int = 30, max_attempts: int = 5) -> LightsailClient:
    """Create a Lightsail client.

    Credentials come from the standard boto3 chain (environment, profile,
    instance role).
    """
    config = Config(
        connect_timeout=request_timeout,
        read_timeout=request_timeout,
        retries={"max_attempts": max_attempts, "mode": "standard"},
    )
    return boto3.client("lightsail", region_name=region, config=config)


def is_not_found(exc: BaseException) -> bool:
    """Check if exception means the resource does not exist (yet)."""
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        return code in NOT_FOUND_CODES
    return False
