"""Key-value tag helpers shared by taggable resource types."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from pydantic import BaseModel, Field

# Tags with this prefix are managed by AWS and never reconciled
SYSTEM_TAG_PREFIX = "aws:"


class IgnoreTags(BaseModel):
    """Tag keys excluded from drift detection."""

    keys: list[str] = Field(default_factory=list)
    key_prefixes: list[str] = Field(default_factory=list)

    def ignored(self, key: str) -> bool:
        return key in self.keys or any(key.startswith(p) for p in self.key_prefixes)


def merge_defaults(tags: Mapping[str, str] | None, defaults: Mapping[str, str]) -> dict[str, str]:
    """Resource tags override provider default tags with the same key."""
    merged = dict(defaults)
    merged.update(tags or {})
    return merged


def remove_defaults(tags: Mapping[str, str], defaults: Mapping[str, str]) -> dict[str, str]:
    """Drop tags that are present only because of provider defaults."""
    return {k: v for k, v in tags.items() if defaults.get(k) != v}


def visible(tags: Mapping[str, str], ignore: IgnoreTags) -> dict[str, str]:
    """Filter out system and ignored tags from a remote tag set."""
    return {
        k: v for k, v in tags.items() if not k.startswith(SYSTEM_TAG_PREFIX) and not ignore.ignored(k)
    }


def diff(old: Mapping[str, str], new: Mapping[str, str]) -> tuple[dict[str, str], list[str]]:
    """Return (tags to set, keys to remove) to converge ``old`` into ``new``."""
    upsert = {k: v for k, v in new.items() if old.get(k) != v}
    removed = sorted(k for k in old if k not in new)
    return upsert, removed


def to_wire(tags: Mapping[str, str], key: str = "key", value: str = "value") -> list[dict[str, str]]:
    return [{key: k, value: v} for k, v in tags.items()]


def from_wire(items: Iterable[Mapping[str, str]], key: str = "key", value: str = "value") -> dict[str, str]:
    return {item[key]: item.get(value, "") for item in items}
