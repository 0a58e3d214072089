"""aws_transfer_access: Transfer Family access grant for an external identity."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .. import wire
from ..context import Context
from ..identity import IdentityCodec
from ..resource import ResourceType, resource
from ..schema import AttrType, Block, BlockList, Int, Schema, SetOf, String
from ..state import ResourceState
from ..validation import matches, one_of, string_len_between, valid_arn, valid_json
from ..wire import JsonDocument, pascal

logger = logging.getLogger(__name__)

HOME_DIRECTORY_TYPES = ("PATH", "LOGICAL")

_HOME_DIRECTORY_MAPPING = Schema(
    {
        "entry": String(required=True, validators=(string_len_between(0, 1024),)),
        "target": String(required=True, validators=(string_len_between(0, 1024),)),
    }
)

_POSIX_PROFILE = Schema(
    {
        "gid": Int(required=True),
        "uid": Int(required=True),
        "secondary_gids": SetOf(AttrType.INT, optional=True),
    }
)

SCHEMA = Schema(
    {
        "external_id": String(required=True, force_new=True, validators=(string_len_between(1, 256),)),
        "home_directory": String(optional=True, validators=(string_len_between(0, 1024),)),
        "home_directory_mappings": BlockList(_HOME_DIRECTORY_MAPPING, optional=True, max_items=50),
        "home_directory_type": String(optional=True, default="PATH", validators=(one_of(HOME_DIRECTORY_TYPES),)),
        "policy": String(optional=True, validators=(valid_json,), codec=JsonDocument()),
        "posix_profile": Block(_POSIX_PROFILE, optional=True),
        # Required by the API on create but never returned on read
        "role": String(optional=True, write_only=True, validators=(valid_arn,)),
        "server_id": String(
            required=True,
            force_new=True,
            validators=(matches(r"s-([0-9a-f]{17})", "a server ID (s-<17 hex digits>)"),),
        ),
    }
)


@resource("aws_transfer_access")
class TransferAccess(ResourceType):
    service = "transfer"
    schema = SCHEMA
    identity = IdentityCodec(("server_id", "external_id"))
    not_found_codes = frozenset({"ResourceNotFoundException"})

    def create(self, ctx: Context, client: Any, config: dict[str, Any], tags: dict[str, str]) -> tuple[str, dict[str, Any]]:
        request = wire.expand(SCHEMA, config, pascal)
        logger.debug("Creating Transfer Access: %s", wire.redact(SCHEMA, request, pascal))
        client.create_access(**request)
        return self.identity.format_from(config), {}

    def describe(self, ctx: Context, client: Any, state: ResourceState) -> dict[str, Any]:
        server_id, external_id = self.identity.parse(state.id)
        return client.describe_access(ServerId=server_id, ExternalId=external_id)

    def flatten(self, obj: Mapping[str, Any], prior: Mapping[str, Any]) -> dict[str, Any]:
        access = {**obj["Access"], "ServerId": obj["ServerId"]}
        return wire.flatten(SCHEMA, access, prior, pascal)

    def update(
        self,
        ctx: Context,
        client: Any,
        state: ResourceState,
        config: dict[str, Any],
        changed: set[str],
    ) -> None:
        server_id, external_id = self.identity.parse(state.id)
        request: dict[str, Any] = {"ServerId": server_id, "ExternalId": external_id}
        request.update(wire.expand(SCHEMA, {name: config.get(name) for name in changed}, pascal))
        # Clearing a plain string attribute is sent as an empty value
        for name in changed:
            attr = SCHEMA[name]
            if config.get(name) is None and attr.type is AttrType.STRING:
                request[pascal(name)] = ""
        logger.debug("Updating Transfer Access: %s", wire.redact(SCHEMA, request, pascal))
        client.update_access(**request)

    def delete(self, ctx: Context, client: Any, state: ResourceState) -> None:
        server_id, external_id = self.identity.parse(state.id)
        logger.debug("Deleting Transfer Access: %s", state.id)
        client.delete_access(ServerId=server_id, ExternalId=external_id)
