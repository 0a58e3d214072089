"""Identity codec: join natural-key fields into a resource ID and back."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .errors import MalformedReference


@dataclass(frozen=True)
class IdentityCodec:
    """Encodes natural-key fields as ``field1<sep>field2...``.

    Parsing requires exactly one component per field; a reference with any
    other component count, or with an empty component, is malformed.
    """

    fields: tuple[str, ...]
    separator: str = "/"

    def format(self, *values: str) -> str:
        if len(values) != len(self.fields):
            raise ValueError(f"expected {len(self.fields)} identity values, got {len(values)}")
        return self.separator.join(values)

    def format_from(self, attrs: Mapping[str, Any]) -> str:
        return self.format(*(str(attrs[f]) for f in self.fields))

    def parse(self, reference: str) -> tuple[str, ...]:
        parts = tuple(reference.split(self.separator))
        if len(parts) != len(self.fields) or not all(parts):
            raise MalformedReference(f"wrong format of ID ({reference!r}), use: '{self.usage}'")
        return parts

    def parse_to(self, reference: str) -> dict[str, str]:
        return dict(zip(self.fields, self.parse(reference), strict=True))

    @property
    def usage(self) -> str:
        return self.separator.join(f.replace("_", "-") for f in self.fields)
