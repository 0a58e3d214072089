"""Provider configuration and the boto3 session handed to every reconciler."""

from __future__ import annotations

import logging
import threading
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from pydantic import BaseModel, Field, field_validator

from .tags import IgnoreTags

logger = logging.getLogger(__name__)

# Default propagation window for newly created objects
PROPAGATION_TIMEOUT_SECONDS = 120.0


def _single_block(value: Any) -> Any:
    """HCL decodes a nested block as a one-item list; unwrap it."""
    if isinstance(value, list):
        if len(value) != 1:
            raise ValueError(f"expected a single block, got {len(value)}")
        return value[0]
    return value


class Timeouts(BaseModel):
    """Time bounds per operation class, in seconds."""

    propagation: float = Field(default=PROPAGATION_TIMEOUT_SECONDS, ge=0)
    poll_interval: float = Field(default=1.0, gt=0)
    read: float = Field(default=60.0, gt=0)
    connect: float = Field(default=10.0, gt=0)
    max_attempts: int = Field(default=5, ge=1)


class ProviderConfig(BaseModel):
    """AWS provider settings shared by all resources in a stack."""

    region: str | None = None
    profile: str | None = None
    endpoint_url: str | None = None
    default_tags: dict[str, str] = Field(default_factory=dict)
    ignore_tags: IgnoreTags = Field(default_factory=IgnoreTags)
    timeouts: Timeouts = Field(default_factory=Timeouts)

    @field_validator("ignore_tags", "timeouts", mode="before")
    @classmethod
    def _unwrap_block(cls, value: Any) -> Any:
        return _single_block(value)

    @field_validator("default_tags", mode="before")
    @classmethod
    def _unwrap_tags(cls, value: Any) -> Any:
        # default_tags { tags = {...} } or default_tags = {...}
        value = _single_block(value)
        if isinstance(value, dict) and set(value) == {"tags"} and isinstance(value["tags"], dict):
            return value["tags"]
        return value

    def boto_config(self) -> BotoConfig:
        return BotoConfig(
            read_timeout=self.timeouts.read,
            connect_timeout=self.timeouts.connect,
            retries={"max_attempts": self.timeouts.max_attempts, "mode": "standard"},
        )


class ProviderSession:
    """Read-only handle to AWS clients for one provider configuration.

    Clients are created lazily and cached; boto3 clients are safe to share
    between threads once created.
    """

    def __init__(self, config: ProviderConfig | None = None, *, session: boto3.Session | None = None) -> None:
        self.config = config or ProviderConfig()
        self._session = session or boto3.Session(
            profile_name=self.config.profile,
            region_name=self.config.region,
        )
        self._clients: dict[str, Any] = {}
        self._lock = threading.Lock()

    def client(self, service: str) -> Any:
        with self._lock:
            if service not in self._clients:
                kwargs: dict[str, Any] = {"config": self.config.boto_config()}
                if self.config.endpoint_url:
                    kwargs["endpoint_url"] = self.config.endpoint_url
                logger.debug("Creating %s client (region=%s)", service, self._session.region_name)
                self._clients[service] = self._session.client(service, **kwargs)
            return self._clients[service]
