"""aws_lightsail_key_pair: Lightsail SSH key pair."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from .. import tags as tagging
from .. import wire
from ..context import Context
from ..errors import PropagationTimeout, RemoteRejected
from ..identity import IdentityCodec
from ..resource import ResourceType, resource
from ..schema import Map, Schema, String
from ..state import ResourceState

logger = logging.getLogger(__name__)

DEFAULT_NAME_PREFIX = "convergent-"

_OPERATION_DONE = frozenset({"Succeeded", "Completed"})
_OPERATION_FAILED = "Failed"

# Values only known from the create response; the API never returns them again
_WRITE_ONCE = ("name_prefix", "public_key", "private_key")

_counter = itertools.count()

SCHEMA = Schema(
    {
        "name": String(optional=True, computed=True, force_new=True, conflicts_with=("name_prefix",)),
        "name_prefix": String(optional=True, force_new=True),
        "public_key": String(optional=True, computed=True, force_new=True),
        "arn": String(computed=True),
        "fingerprint": String(computed=True),
        "private_key": String(computed=True, sensitive=True),
        "tags": Map(optional=True),
        "tags_all": Map(computed=True),
    }
)


def unique_name(prefix: str) -> str:
    """A name unique to this process: prefix + UTC timestamp + counter."""
    return f"{prefix}{datetime.now(UTC):%Y%m%d%H%M%S%f}{next(_counter):08x}"


class _OperationPending(Exception):
    def __init__(self, status: str) -> None:
        self.status = status
        super().__init__(f"operation status {status}")


def wait_for_operation(ctx: Context, client: Any, operation: Mapping[str, Any]) -> None:
    """Block until a Lightsail operation succeeds, within the propagation window."""
    operation_id = operation["id"]

    def check() -> None:
        status = client.get_operation(operationId=operation_id)["operation"]["status"]
        if status == _OPERATION_FAILED:
            raise RemoteRejected(f"Lightsail operation {operation_id} failed")
        if status not in _OPERATION_DONE:
            raise _OperationPending(status)

    try:
        ctx.poll(check, retry_on=(_OperationPending,), description=f"Lightsail operation {operation_id}")
    except _OperationPending as exc:
        raise PropagationTimeout(f"Lightsail operation {operation_id} still {exc.status}") from exc


@resource("aws_lightsail_key_pair")
class KeyPair(ResourceType):
    service = "lightsail"
    schema = SCHEMA
    identity = IdentityCodec(("name",))
    not_found_codes = frozenset({"NotFoundException", "DoesNotExist"})
    taggable = True

    def create(self, ctx: Context, client: Any, config: dict[str, Any], tags: dict[str, str]) -> tuple[str, dict[str, Any]]:
        name = config.get("name") or unique_name(config.get("name_prefix") or DEFAULT_NAME_PREFIX)
        created: dict[str, Any] = {"name": name}

        if config.get("public_key"):
            logger.debug("Importing Lightsail key pair: %s", name)
            output = client.import_key_pair(keyPairName=name, publicKeyBase64=config["public_key"])
            with self.completing(name, created):
                wait_for_operation(ctx, client, output["operation"])
                if tags:
                    client.tag_resource(resourceName=name, tags=tagging.to_wire(tags))
        else:
            request: dict[str, Any] = {"keyPairName": name}
            if tags:
                request["tags"] = tagging.to_wire(tags)
            logger.debug("Creating Lightsail key pair: %s", name)
            output = client.create_key_pair(**request)
            created["public_key"] = output["publicKeyBase64"]
            created["private_key"] = output["privateKeyBase64"]
            with self.completing(name, created):
                wait_for_operation(ctx, client, output["operation"])

        return name, created

    def describe(self, ctx: Context, client: Any, state: ResourceState) -> dict[str, Any]:
        return client.get_key_pair(keyPairName=state.id)["keyPair"]

    def flatten(self, obj: Mapping[str, Any], prior: Mapping[str, Any]) -> dict[str, Any]:
        keypair = {k: v for k, v in obj.items() if k != "tags"}
        attributes = wire.flatten(SCHEMA, keypair, prior)
        for name in _WRITE_ONCE:
            if name not in attributes and prior.get(name) is not None:
                attributes[name] = prior[name]
        return attributes

    def update(
        self,
        ctx: Context,
        client: Any,
        state: ResourceState,
        config: dict[str, Any],
        changed: set[str],
    ) -> None:
        """Every attribute but tags is create-time-only; nothing to send."""

    def delete(self, ctx: Context, client: Any, state: ResourceState) -> None:
        logger.debug("Deleting Lightsail key pair: %s", state.id)
        output = client.delete_key_pair(keyPairName=state.id)
        wait_for_operation(ctx, client, output["operation"])

    def list_tags(self, client: Any, state: ResourceState, obj: Mapping[str, Any]) -> dict[str, str]:
        return tagging.from_wire(obj.get("tags", []))

    def tag(self, client: Any, state: ResourceState, upsert: dict[str, str], removed: list[str]) -> None:
        if removed:
            client.untag_resource(resourceName=state.id, tagKeys=removed)
        if upsert:
            client.tag_resource(resourceName=state.id, tags=tagging.to_wire(upsert))
