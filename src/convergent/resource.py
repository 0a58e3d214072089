"""ResourceType ABC and resource type registration."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any, ClassVar

from .context import Context
from .identity import IdentityCodec
from .schema import Schema
from .state import ResourceState

logger = logging.getLogger(__name__)

_resource_registry: dict[str, type[ResourceType]] = {}


def resource(name: str):
    """Register a ResourceType class under its configuration type name."""

    def decorator(cls):
        cls.type_name = name
        _resource_registry[name] = cls
        return cls

    return decorator


def lookup(name: str) -> type[ResourceType]:
    if name not in _resource_registry:
        raise ValueError(f"Unknown resource type: '{name}'")
    return _resource_registry[name]


class CreateIncomplete(Exception):
    """The object exists but a later step of its creation failed.

    The cause is chained as ``__cause__``.
    """

    def __init__(self, identity: str, created: dict[str, Any]) -> None:
        self.identity = identity
        self.created = created
        super().__init__(f"creation of {identity} did not complete")


class ResourceType(ABC):
    """One remote resource kind: its schema, identity and remote calls.

    Implementations call the boto3 client directly and let botocore errors
    propagate; the reconciler translates them (``not_found_codes`` become
    NotFound). Instances hold no state and may be shared between threads.
    """

    type_name: ClassVar[str] = ""
    service: ClassVar[str]
    schema: ClassVar[Schema]
    identity: ClassVar[IdentityCodec] = IdentityCodec(("id",))
    schema_version: ClassVar[int] = 0
    not_found_codes: ClassVar[frozenset[str]] = frozenset({"NotFoundException"})
    taggable: ClassVar[bool] = False

    @abstractmethod
    def create(self, ctx: Context, client: Any, config: dict[str, Any], tags: dict[str, str]) -> tuple[str, dict[str, Any]]:
        """Create the object; return its ID and any values known only at creation.

        Calls made after the object exists belong inside ``completing`` so a
        failure there still reports the assigned ID.
        """

    @contextmanager
    def completing(self, identity: str, created: dict[str, Any]) -> Iterator[None]:
        """Run follow-up creation steps; any failure becomes CreateIncomplete."""
        try:
            yield
        except Exception as exc:
            raise CreateIncomplete(identity, created) from exc

    @abstractmethod
    def describe(self, ctx: Context, client: Any, state: ResourceState) -> dict[str, Any]:
        """Fetch the remote object."""

    @abstractmethod
    def flatten(self, obj: Mapping[str, Any], prior: Mapping[str, Any]) -> dict[str, Any]:
        """Project the remote object onto the configuration shape."""

    @abstractmethod
    def update(
        self,
        ctx: Context,
        client: Any,
        state: ResourceState,
        config: dict[str, Any],
        changed: set[str],
    ) -> None:
        """Converge only the changed update groups."""

    @abstractmethod
    def delete(self, ctx: Context, client: Any, state: ResourceState) -> None:
        """Delete the object."""

    def is_deleted(self, obj: Mapping[str, Any]) -> bool:
        """Whether the remote object reports a terminal deleted status."""
        return False

    def resource_id(self, obj: Mapping[str, Any]) -> str | None:
        """Provider-assigned ID found in the remote object, if any."""
        return None

    def import_state(self, ctx: Context, client: Any, reference: str) -> ResourceState:
        """Seed state from an import reference; the reconciler reads it next."""
        attrs = self.identity.parse_to(reference)
        return ResourceState(
            type_name=self.type_name,
            id=reference,
            attributes=attrs,
            schema_version=self.schema_version,
        )

    def migrate_state(self, version: int, attributes: dict[str, Any]) -> dict[str, Any]:
        """Upgrade attributes stored at ``version`` to ``version + 1``."""
        raise ValueError(f"{self.type_name}: unexpected schema version {version}")

    # -- Tags side-channel (taggable types only) --

    def list_tags(self, client: Any, state: ResourceState, obj: Mapping[str, Any]) -> dict[str, str]:
        raise NotImplementedError

    def tag(self, client: Any, state: ResourceState, upsert: dict[str, str], removed: list[str]) -> None:
        raise NotImplementedError
