"""Resource schemas: attribute trees, validation and change detection.

A schema is a mapping of attribute names to :class:`Attr` definitions.
Nested blocks are attributes whose element type is itself a :class:`Schema`;
in a configuration they are always lists of dicts (the shape HCL produces),
even when at most one item is allowed.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import ValidationFailed
from .validation import Validator

if TYPE_CHECKING:
    from .wire import Codec

REDACTED = "<sensitive>"


class AttrType(str, Enum):
    STRING = "string"
    INT = "int"
    BOOL = "bool"
    FLOAT = "float"
    MAP = "map"
    LIST = "list"
    SET = "set"


_SCALAR_TYPES: dict[AttrType, tuple[type, ...]] = {
    AttrType.STRING: (str,),
    AttrType.INT: (int,),
    AttrType.BOOL: (bool,),
    AttrType.FLOAT: (int, float),
}


@dataclass(frozen=True)
class Attr:
    """A single attribute definition."""

    type: AttrType
    required: bool = False
    optional: bool = False
    computed: bool = False
    force_new: bool = False
    sensitive: bool = False
    write_only: bool = False
    default: Any = None
    elem: AttrType | Schema | None = None
    min_items: int = 0
    max_items: int | None = None
    validators: tuple[Validator, ...] = ()
    conflicts_with: tuple[str, ...] = ()
    wire: str | None = None
    codec: Codec | None = None
    group: str | None = None

    @property
    def is_block(self) -> bool:
        return isinstance(self.elem, Schema)

    @property
    def computed_only(self) -> bool:
        """Populated only by read; never accepted from configuration."""
        return self.computed and not (self.optional or self.required)


# -- Attribute constructors --


def String(**kwargs: Any) -> Attr:
    return Attr(AttrType.STRING, **kwargs)


def Int(**kwargs: Any) -> Attr:
    return Attr(AttrType.INT, **kwargs)


def Bool(**kwargs: Any) -> Attr:
    return Attr(AttrType.BOOL, **kwargs)


def Map(**kwargs: Any) -> Attr:
    return Attr(AttrType.MAP, elem=AttrType.STRING, **kwargs)


def ListOf(elem: AttrType, **kwargs: Any) -> Attr:
    return Attr(AttrType.LIST, elem=elem, **kwargs)


def SetOf(elem: AttrType, **kwargs: Any) -> Attr:
    return Attr(AttrType.SET, elem=elem, **kwargs)


def Block(schema: Schema, **kwargs: Any) -> Attr:
    """A nested block; ``max_items`` defaults to 1."""
    kwargs.setdefault("max_items", 1)
    return Attr(AttrType.LIST, elem=schema, **kwargs)


def BlockList(schema: Schema, **kwargs: Any) -> Attr:
    return Attr(AttrType.LIST, elem=schema, **kwargs)


def BlockSet(schema: Schema, **kwargs: Any) -> Attr:
    return Attr(AttrType.SET, elem=schema, **kwargs)


# -- Comparison helpers --


def _is_empty(value: Any) -> bool:
    return value is None or value == [] or value == {}


def _sort_key(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def canonical(attr: Attr, value: Any) -> Any:
    """Return a comparable form of a value: sets sorted, empty collapsed to None."""
    if _is_empty(value):
        return None
    if attr.is_block:
        items = [attr.elem.canonical(item) for item in value]  # type: ignore[union-attr]
    elif attr.type in (AttrType.LIST, AttrType.SET):
        items = list(value)
    else:
        return value
    if attr.type is AttrType.SET:
        items.sort(key=_sort_key)
    return items


class Schema(Mapping[str, Attr]):
    """An ordered mapping of attribute names to definitions."""

    def __init__(self, attrs: dict[str, Attr]) -> None:
        self._attrs = dict(attrs)

    def __getitem__(self, name: str) -> Attr:
        return self._attrs[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._attrs)

    def __len__(self) -> int:
        return len(self._attrs)

    def __repr__(self) -> str:
        return f"Schema({', '.join(self._attrs)})"

    # -- Validation --

    def validate(self, config: Mapping[str, Any], *, resource_type: str | None = None) -> dict[str, Any]:
        """Validate a configuration, returning a normalized copy with defaults applied.

        All problems are collected and raised together as ValidationFailed.
        """
        errors: list[str] = []
        result = self._validate_block(config, "", errors)
        if errors:
            raise ValidationFailed(errors, resource_type=resource_type)
        return result

    def _validate_block(self, config: Any, path: str, errors: list[str]) -> dict[str, Any]:
        if not isinstance(config, Mapping):
            errors.append(f"{path or '<root>'}: expected a block, got {type(config).__name__}")
            return {}

        for key in config:
            if key not in self._attrs:
                errors.append(f"{_join(path, key)}: unsupported attribute")

        result: dict[str, Any] = {}
        for name, attr in self._attrs.items():
            where = _join(path, name)
            value = config.get(name)
            if _is_empty(value):
                if attr.default is not None:
                    result[name] = copy.deepcopy(attr.default)
                elif attr.required:
                    errors.append(f"{where}: required attribute is missing")
                continue
            if attr.computed_only:
                errors.append(f"{where}: computed attribute cannot be set")
                continue
            for other in attr.conflicts_with:
                if not _is_empty(config.get(other)):
                    errors.append(f"{where}: conflicts with {_join(path, other)}")
            result[name] = _validate_value(attr, value, where, errors)
        return result

    def redact(self, block: Mapping[str, Any]) -> dict[str, Any]:
        """Copy of a block with sensitive values masked, for logging."""
        result = dict(block)
        for name, attr in self._attrs.items():
            value = result.get(name)
            if value is None:
                continue
            if attr.sensitive:
                result[name] = REDACTED
            elif attr.is_block:
                result[name] = [attr.elem.redact(item) for item in value]  # type: ignore[union-attr]
        return result

    # -- Comparison --

    def canonical(self, block: Mapping[str, Any]) -> dict[str, Any]:
        result = {}
        for name, attr in self._attrs.items():
            value = canonical(attr, block.get(name))
            if value is not None:
                result[name] = value
        return result

    def merge_computed(self, prior: Mapping[str, Any], desired: Mapping[str, Any]) -> dict[str, Any]:
        """Fill optional+computed attributes missing from ``desired`` with prior values.

        Computed-only attributes are carried over as well. Nested list blocks are
        paired by index; sets are taken from ``desired`` as-is.
        """
        result = dict(desired)
        for name, attr in self._attrs.items():
            old = prior.get(name)
            if _is_empty(old):
                continue
            new = result.get(name)
            if _is_empty(new):
                if attr.computed:
                    result[name] = copy.deepcopy(old)
                continue
            if attr.is_block and attr.type is AttrType.LIST:
                result[name] = [
                    attr.elem.merge_computed(old[i], item) if i < len(old) else item  # type: ignore[union-attr]
                    for i, item in enumerate(new)
                ]
        return result

    def changed(self, prior: Mapping[str, Any], desired: Mapping[str, Any]) -> set[str]:
        """Names of configurable attributes whose desired value differs from prior."""
        merged = self.merge_computed(prior, desired)
        names = set()
        for name, attr in self._attrs.items():
            if attr.computed_only:
                continue
            old, new = prior.get(name), merged.get(name)
            if attr.codec is not None and not _is_empty(old) and not _is_empty(new):
                if not attr.codec.equivalent(old, new):
                    names.add(name)
            elif canonical(attr, old) != canonical(attr, new):
                names.add(name)
        return names

    def groups(self, names: set[str]) -> set[str]:
        """Map attribute names to their update groups."""
        return {self._attrs[n].group or n for n in names}

    def replacements(self, prior: Mapping[str, Any], desired: Mapping[str, Any]) -> list[str]:
        """Changed attributes that can only be set at creation time."""
        return sorted(n for n in self.changed(prior, desired) if self._attrs[n].force_new)


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def _check_scalar(kind: AttrType, value: Any, where: str, errors: list[str]) -> bool:
    expected = _SCALAR_TYPES[kind]
    if isinstance(value, bool) and kind is not AttrType.BOOL:
        ok = False
    else:
        ok = isinstance(value, expected)
    if not ok:
        errors.append(f"{where}: expected {kind.value}, got {type(value).__name__}")
    return ok


def _run_validators(attr: Attr, value: Any, where: str, errors: list[str]) -> None:
    for validator in attr.validators:
        message = validator(value)
        if message:
            errors.append(f"{where}: {message}")


def _validate_value(attr: Attr, value: Any, where: str, errors: list[str]) -> Any:
    if attr.type is AttrType.MAP:
        if not isinstance(value, Mapping):
            errors.append(f"{where}: expected map, got {type(value).__name__}")
            return value
        for key, item in value.items():
            _check_scalar(AttrType.STRING, item, f"{where}.{key}", errors)
        _run_validators(attr, value, where, errors)
        return dict(value)

    if attr.type in (AttrType.LIST, AttrType.SET):
        if attr.is_block and isinstance(value, Mapping):
            value = [value]
        if not isinstance(value, (list, tuple, set, frozenset)):
            errors.append(f"{where}: expected {attr.type.value}, got {type(value).__name__}")
            return value
        items = list(value)
        if len(items) < attr.min_items:
            errors.append(f"{where}: at least {attr.min_items} item(s) required, got {len(items)}")
        if attr.max_items is not None and len(items) > attr.max_items:
            errors.append(f"{where}: at most {attr.max_items} item(s) allowed, got {len(items)}")
        if attr.is_block:
            return [
                attr.elem._validate_block(item, f"{where}[{i}]", errors)  # type: ignore[union-attr]
                for i, item in enumerate(items)
            ]
        for i, item in enumerate(items):
            if _check_scalar(attr.elem, item, f"{where}[{i}]", errors):  # type: ignore[arg-type]
                _run_validators(attr, item, f"{where}[{i}]", errors)
        return items

    if _check_scalar(attr.type, value, where, errors):
        _run_validators(attr, value, where, errors)
    return value
