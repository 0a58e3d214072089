"""aws_appmesh_virtual_node: App Mesh virtual node."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from .. import tags as tagging
from .. import wire
from ..context import Context
from ..identity import IdentityCodec
from ..resource import ResourceType, resource
from ..schema import AttrType, Block, BlockList, BlockSet, Bool, Int, Map, Schema, SetOf, String
from ..state import ResourceState
from ..validation import (
    int_at_least,
    int_between,
    is_port_number,
    not_empty,
    one_of,
    string_len_between,
    valid_account_id,
    valid_arn,
)
from ..wire import KeyValueList

logger = logging.getLogger(__name__)

DURATION_UNITS = ("s", "ms")
PORT_PROTOCOLS = ("http", "tcp", "http2", "grpc")
LISTENER_TLS_MODES = ("STRICT", "PERMISSIVE", "DISABLED")
STATUS_DELETED = "DELETED"

_name = (string_len_between(1, 255),)

# -- Shared blocks --

_DURATION = Schema(
    {
        "unit": String(required=True, validators=(one_of(DURATION_UNITS),)),
        "value": Int(required=True),
    }
)

_SDS = Schema({"secret_name": String(required=True, validators=_name)})

_TLS_TRUST = Schema(
    {
        "acm": Block(Schema({"certificate_authority_arns": SetOf(AttrType.STRING, required=True)}), optional=True),
        "file": Block(Schema({"certificate_chain": String(required=True, validators=_name)}), optional=True),
        "sds": Block(_SDS, optional=True),
    }
)

_SUBJECT_ALTERNATIVE_NAMES = Schema(
    {
        "match": Block(
            Schema({"exact": SetOf(AttrType.STRING, required=True)}),
            required=True,
            min_items=1,
        ),
    }
)

_TLS_VALIDATION = Schema(
    {
        "subject_alternative_names": Block(_SUBJECT_ALTERNATIVE_NAMES, optional=True),
        "trust": Block(_TLS_TRUST, required=True, min_items=1),
    }
)

_CERTIFICATE_FILE = Schema(
    {
        "certificate_chain": String(required=True, validators=_name),
        "private_key": String(required=True, validators=_name),
    }
)

_CLIENT_POLICY = Schema(
    {
        "tls": Block(
            Schema(
                {
                    "certificate": Block(
                        Schema({"file": Block(_CERTIFICATE_FILE, optional=True), "sds": Block(_SDS, optional=True)}),
                        optional=True,
                    ),
                    "enforce": Bool(optional=True, default=True),
                    "ports": SetOf(AttrType.INT, optional=True, validators=(is_port_number,)),
                    "validation": Block(_TLS_VALIDATION, required=True, min_items=1),
                }
            ),
            optional=True,
        ),
    }
)

# -- Listener --

_HTTP_TIMEOUT = Schema(
    {
        "idle": Block(_DURATION, optional=True),
        "per_request": Block(_DURATION, optional=True),
    }
)

_LISTENER_TIMEOUT = Schema(
    {
        "grpc": Block(_HTTP_TIMEOUT, optional=True),
        "http": Block(_HTTP_TIMEOUT, optional=True),
        "http2": Block(_HTTP_TIMEOUT, optional=True),
        "tcp": Block(Schema({"idle": Block(_DURATION, optional=True)}), optional=True),
    }
)

_max_requests = Schema({"max_requests": Int(required=True, validators=(int_at_least(1),))})

_CONNECTION_POOL = Schema(
    {
        "grpc": Block(_max_requests, optional=True),
        "http": Block(
            Schema(
                {
                    "max_connections": Int(required=True, validators=(int_at_least(1),)),
                    "max_pending_requests": Int(optional=True, validators=(int_at_least(1),)),
                }
            ),
            optional=True,
        ),
        "http2": Block(_max_requests, optional=True),
        "tcp": Block(
            Schema({"max_connections": Int(required=True, validators=(int_at_least(1),))}),
            optional=True,
        ),
    }
)

_HEALTH_CHECK = Schema(
    {
        "healthy_threshold": Int(required=True, validators=(int_between(2, 10),)),
        "interval_millis": Int(required=True, validators=(int_between(5000, 300000),)),
        "path": String(optional=True),
        "port": Int(optional=True, computed=True, validators=(is_port_number,)),
        "protocol": String(required=True, validators=(one_of(PORT_PROTOCOLS),)),
        "timeout_millis": Int(required=True, validators=(int_between(2000, 60000),)),
        "unhealthy_threshold": Int(required=True, validators=(int_between(2, 10),)),
    }
)

_OUTLIER_DETECTION = Schema(
    {
        "base_ejection_duration": Block(_DURATION, required=True, min_items=1),
        "interval": Block(_DURATION, required=True, min_items=1),
        "max_ejection_percent": Int(required=True, validators=(int_between(0, 100),)),
        "max_server_errors": Int(required=True, validators=(int_at_least(1),)),
    }
)

_PORT_MAPPING = Schema(
    {
        "port": Int(required=True, validators=(is_port_number,)),
        "protocol": String(required=True, validators=(one_of(PORT_PROTOCOLS),)),
    }
)

_LISTENER_TLS = Schema(
    {
        "certificate": Block(
            Schema(
                {
                    "acm": Block(Schema({"certificate_arn": String(required=True, validators=(valid_arn,))}), optional=True),
                    "file": Block(_CERTIFICATE_FILE, optional=True),
                    "sds": Block(_SDS, optional=True),
                }
            ),
            required=True,
            min_items=1,
        ),
        "mode": String(required=True, validators=(one_of(LISTENER_TLS_MODES),)),
    }
)

_LISTENER = Schema(
    {
        "connection_pool": Block(_CONNECTION_POOL, optional=True),
        "health_check": Block(_HEALTH_CHECK, optional=True),
        "outlier_detection": Block(_OUTLIER_DETECTION, optional=True),
        "port_mapping": Block(_PORT_MAPPING, required=True, min_items=1),
        "timeout": Block(_LISTENER_TIMEOUT, optional=True),
        "tls": Block(_LISTENER_TLS, optional=True),
    }
)

# -- Spec --

_BACKEND = Schema(
    {
        "virtual_service": Block(
            Schema(
                {
                    "virtual_service_name": String(required=True, validators=_name),
                    "client_policy": Block(_CLIENT_POLICY, optional=True),
                }
            ),
            required=True,
            min_items=1,
        ),
    }
)

_SERVICE_DISCOVERY = Schema(
    {
        "aws_cloud_map": Block(
            Schema(
                {
                    "attributes": Map(optional=True, codec=KeyValueList()),
                    "namespace_name": String(required=True, validators=(string_len_between(1, 1024),)),
                    "service_name": String(required=True, validators=(string_len_between(1, 1024),)),
                }
            ),
            optional=True,
            conflicts_with=("dns",),
        ),
        "dns": Block(Schema({"hostname": String(required=True, validators=(not_empty,))}), optional=True),
    }
)

_LOGGING = Schema(
    {
        "access_log": Block(
            Schema({"file": Block(Schema({"path": String(required=True, validators=_name)}), optional=True)}),
            optional=True,
        ),
    }
)

SPEC = Schema(
    {
        "backend": BlockSet(_BACKEND, optional=True, max_items=50, wire="backends"),
        "backend_defaults": Block(Schema({"client_policy": Block(_CLIENT_POLICY, optional=True)}), optional=True),
        "listener": BlockList(_LISTENER, optional=True, wire="listeners"),
        "logging": Block(_LOGGING, optional=True),
        "service_discovery": Block(_SERVICE_DISCOVERY, optional=True),
    }
)

SCHEMA = Schema(
    {
        "name": String(required=True, force_new=True, validators=_name),
        "mesh_name": String(required=True, force_new=True, validators=_name),
        "mesh_owner": String(optional=True, computed=True, force_new=True, validators=(valid_account_id,)),
        "spec": Block(SPEC, required=True, min_items=1),
        "arn": String(computed=True),
        "created_date": String(computed=True),
        "last_updated_date": String(computed=True),
        "resource_owner": String(computed=True),
        "tags": Map(optional=True),
        "tags_all": Map(computed=True),
    }
)


def _timestamp(value: Any) -> str | None:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _node_key(attributes: Mapping[str, Any]) -> dict[str, str]:
    key = {"meshName": attributes["mesh_name"], "virtualNodeName": attributes["name"]}
    if attributes.get("mesh_owner"):
        key["meshOwner"] = attributes["mesh_owner"]
    return key


@resource("aws_appmesh_virtual_node")
class VirtualNode(ResourceType):
    """Virtual node; its ID is the provider-assigned UID.

    Import references use ``mesh-name/virtual-node-name``.
    """

    service = "appmesh"
    schema = SCHEMA
    identity = IdentityCodec(("mesh_name", "name"))
    schema_version = 1
    taggable = True

    def create(self, ctx: Context, client: Any, config: dict[str, Any], tags: dict[str, str]) -> tuple[str, dict[str, Any]]:
        request = {**_node_key(config), "spec": wire.expand(SPEC, config["spec"][0])}
        if tags:
            request["tags"] = tagging.to_wire(tags)
        logger.debug("Creating App Mesh virtual node: %s", wire.redact(SCHEMA, request))
        output = client.create_virtual_node(**request)
        return output["virtualNode"]["metadata"]["uid"], {}

    def describe(self, ctx: Context, client: Any, state: ResourceState) -> dict[str, Any]:
        return client.describe_virtual_node(**_node_key(state.attributes))["virtualNode"]

    def is_deleted(self, obj: Mapping[str, Any]) -> bool:
        return obj.get("status", {}).get("status") == STATUS_DELETED

    def resource_id(self, obj: Mapping[str, Any]) -> str | None:
        return obj["metadata"]["uid"]

    def flatten(self, obj: Mapping[str, Any], prior: Mapping[str, Any]) -> dict[str, Any]:
        metadata = obj["metadata"]
        prior_spec = prior.get("spec") or [None]
        attributes = {
            "name": obj["virtualNodeName"],
            "mesh_name": obj["meshName"],
            "mesh_owner": metadata.get("meshOwner"),
            "arn": metadata["arn"],
            "created_date": _timestamp(metadata.get("createdAt")),
            "last_updated_date": _timestamp(metadata.get("lastUpdatedAt")),
            "resource_owner": metadata.get("resourceOwner"),
            "spec": [wire.flatten(SPEC, obj.get("spec") or {}, prior_spec[0])],
        }
        return {k: v for k, v in attributes.items() if v is not None}

    def update(
        self,
        ctx: Context,
        client: Any,
        state: ResourceState,
        config: dict[str, Any],
        changed: set[str],
    ) -> None:
        if "spec" in changed:
            request = {**_node_key(config), "spec": wire.expand(SPEC, config["spec"][0])}
            logger.debug("Updating App Mesh virtual node: %s", wire.redact(SCHEMA, request))
            client.update_virtual_node(**request)

    def delete(self, ctx: Context, client: Any, state: ResourceState) -> None:
        logger.debug("Deleting App Mesh virtual node: %s", state.id)
        client.delete_virtual_node(**_node_key(state.attributes))

    def import_state(self, ctx: Context, client: Any, reference: str) -> ResourceState:
        mesh_name, name = self.identity.parse(reference)
        logger.debug("Importing App Mesh virtual node %s from mesh %s", name, mesh_name)
        return ResourceState(
            type_name=self.type_name,
            id=reference,
            attributes={"mesh_name": mesh_name, "name": name},
            schema_version=self.schema_version,
        )

    def migrate_state(self, version: int, attributes: dict[str, Any]) -> dict[str, Any]:
        """v0 kept backends as a list of virtual service names."""
        if version != 0:
            return super().migrate_state(version, attributes)
        for spec in attributes.get("spec") or []:
            names = spec.pop("backends", None) or []
            if names:
                spec["backend"] = [{"virtual_service": [{"virtual_service_name": name}]} for name in names]
        return attributes

    def list_tags(self, client: Any, state: ResourceState, obj: Mapping[str, Any]) -> dict[str, str]:
        result: dict[str, str] = {}
        paginator = client.get_paginator("list_tags_for_resource")
        for page in paginator.paginate(resourceArn=obj["metadata"]["arn"]):
            result.update(tagging.from_wire(page.get("tags", [])))
        return result

    def tag(self, client: Any, state: ResourceState, upsert: dict[str, str], removed: list[str]) -> None:
        arn = state.get("arn")
        if removed:
            client.untag_resource(resourceArn=arn, tagKeys=removed)
        if upsert:
            client.tag_resource(resourceArn=arn, tags=tagging.to_wire(upsert))
