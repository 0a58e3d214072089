"""Desired configuration <-> wire (API request/response) mapping.

``expand`` and ``flatten`` are pure recursive functions over a schema:

* an absent optional attribute or block is omitted from the wire request;
  explicit zero values (``0``, ``False``, ``""``) are sent,
* single-item blocks map to a wire struct, multi-item blocks to a list,
* a block missing from a response, or sent as an empty struct, flattens to
  nothing, never to a block of zero values,
* write-only attributes are never read back; their prior value is kept.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any

from .schema import REDACTED, Attr, AttrType, Schema

Case = Callable[[str], str]


def camel(name: str) -> str:
    """``virtual_service_name`` -> ``virtualServiceName``."""
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def pascal(name: str) -> str:
    """``home_directory_type`` -> ``HomeDirectoryType``."""
    return "".join(part.title() for part in name.split("_"))


# -- Codecs --


class Codec(ABC):
    """Custom value translation for a single attribute."""

    @abstractmethod
    def encode(self, value: Any) -> Any: ...

    @abstractmethod
    def decode(self, value: Any, prior: Any = None) -> Any: ...

    def equivalent(self, a: Any, b: Any) -> bool:
        return a == b


class KeyValueList(Codec):
    """A string map carried on the wire as ``[{key: ..., value: ...}]``."""

    def __init__(self, key: str = "key", value: str = "value") -> None:
        self.key = key
        self.value = value

    def encode(self, value: Mapping[str, str]) -> list[dict[str, str]]:
        return [{self.key: k, self.value: v} for k, v in value.items()]

    def decode(self, value: list[Mapping[str, str]], prior: Any = None) -> dict[str, str]:
        return {item[self.key]: item.get(self.value, "") for item in value}


class JsonDocument(Codec):
    """A JSON document kept as a string; equivalent documents compare equal.

    On read, the prior (configured) text is kept when it is equivalent to the
    remote document so formatting differences never show up as drift.
    """

    @staticmethod
    def normalize(value: str) -> str:
        return json.dumps(json.loads(value), sort_keys=True, separators=(",", ":"))

    def encode(self, value: str) -> str:
        return self.normalize(value)

    def decode(self, value: str, prior: Any = None) -> str | None:
        if not value:
            return None
        if prior is not None and self.equivalent(prior, value):
            return prior
        return self.normalize(value)

    def equivalent(self, a: Any, b: Any) -> bool:
        try:
            return json.loads(a) == json.loads(b)
        except (TypeError, ValueError):
            return a == b


# -- Mapping --


def wire_name(name: str, attr: Attr, case: Case) -> str:
    return attr.wire or case(name)


def redact(schema: Schema, request: Mapping[str, Any], case: Case = camel) -> dict[str, Any]:
    """Copy of a wire request with sensitive values masked, for logging."""
    result = dict(request)
    for name, attr in schema.items():
        key = wire_name(name, attr, case)
        value = result.get(key)
        if value is None:
            continue
        if attr.sensitive:
            result[key] = REDACTED
        elif attr.is_block:
            if isinstance(value, Mapping):
                result[key] = redact(attr.elem, value, case)  # type: ignore[arg-type]
            else:
                result[key] = [redact(attr.elem, item, case) for item in value]  # type: ignore[arg-type]
    return result


def expand(schema: Schema, config: Mapping[str, Any], case: Case = camel) -> dict[str, Any]:
    """Translate a validated configuration block into its wire shape."""
    request: dict[str, Any] = {}
    for name, attr in schema.items():
        if attr.computed_only:
            continue
        value = config.get(name)
        if value is None or value == [] or value == {}:
            continue
        request[wire_name(name, attr, case)] = _expand_value(attr, value, case)
    return request


def _expand_value(attr: Attr, value: Any, case: Case) -> Any:
    if attr.codec is not None:
        return attr.codec.encode(value)
    if attr.is_block:
        items = [expand(attr.elem, item, case) for item in value]  # type: ignore[arg-type]
        return items[0] if attr.max_items == 1 else items
    if attr.type in (AttrType.LIST, AttrType.SET):
        return list(value)
    if attr.type is AttrType.MAP:
        return dict(value)
    return value


def flatten(
    schema: Schema,
    obj: Mapping[str, Any],
    prior: Mapping[str, Any] | None = None,
    case: Case = camel,
) -> dict[str, Any]:
    """Translate a wire struct back into a configuration-shaped block."""
    prior = prior or {}
    result: dict[str, Any] = {}
    for name, attr in schema.items():
        if attr.write_only:
            if prior.get(name) is not None:
                result[name] = prior[name]
            continue
        value = obj.get(wire_name(name, attr, case))
        if value is None:
            continue
        flattened = _flatten_value(attr, value, prior.get(name), case)
        # A block with no fields set is the same as no block
        if flattened is None or (attr.is_block and not any(flattened)):
            continue
        result[name] = flattened
    return result


def _flatten_value(attr: Attr, value: Any, prior: Any, case: Case) -> Any:
    if attr.codec is not None:
        return attr.codec.decode(value, prior)
    if attr.is_block:
        items = [value] if isinstance(value, Mapping) else list(value)
        priors = prior if attr.type is AttrType.LIST and isinstance(prior, list) else []
        return [
            flatten(attr.elem, item, priors[i] if i < len(priors) else None, case)  # type: ignore[arg-type]
            for i, item in enumerate(items)
        ]
    if attr.type in (AttrType.LIST, AttrType.SET):
        return list(value)
    if attr.type is AttrType.MAP:
        return dict(value)
    return value
