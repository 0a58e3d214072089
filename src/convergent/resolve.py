"""Resolve ${...} references in declaration attributes.

References are dotted paths into a context of namespaces, e.g.
``${env.HOME}``, ``${var.region}`` or ``${state.aws_waf_rule.block.id}``.
A string consisting of a single reference resolves to the referenced value
itself (a map stays a map); embedded references are stringified. ``$${``
yields a literal ``${``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

_INTERP_PATTERN = re.compile(r"\$\$\{|(\$\{([^{}]+)\})")
_SINGLE_REF = re.compile(r"\$\{([^{}]+)\}")


class Resolver:
    """Resolve ${...} interpolation references against a context dict."""

    def __init__(self, context: Mapping[str, Any] | None = None) -> None:
        self._context = context or {}

    def lookup(self, ref: str) -> Any:
        """Resolve a dotted reference against the context."""
        current: Any = self._context
        for part in ref.split("."):
            if isinstance(current, Mapping) and part in current:
                current = current[part]
            elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                logger.warning("Undefined variable '%s'", ref)
                raise ValueError(f"undefined variable '{ref}'")
        return current

    def resolve_value(self, value: str) -> Any:
        if "${" not in value:
            return value

        match = _SINGLE_REF.fullmatch(value)
        if match:
            return self.lookup(match.group(1).strip())

        def _replace(m: re.Match) -> str:  # type: ignore[type-arg]
            if m.group(0) == "$${":
                return "${"
            return str(self.lookup(m.group(2).strip()))

        return _INTERP_PATTERN.sub(_replace, value)

    def resolve(self, data: dict[str, Any]) -> dict[str, Any]:
        """Recursively walk a parsed dict and resolve all ${...} interpolations."""
        return self._walk(data)

    def _walk(self, obj: Any) -> Any:
        if isinstance(obj, dict):
            return {k: self._walk(v) for k, v in obj.items()}
        if isinstance(obj, list):
            return [self._walk(item) for item in obj]
        if isinstance(obj, str):
            return self.resolve_value(obj)
        return obj
