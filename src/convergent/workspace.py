"""Workspace: a mutable collection of parsed blueprints and stacks."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any, overload

from . import hcl
from .blueprints import Blueprint
from .specop import STRATEGIES, Declaration, SpecOp
from .stacks import Stack

logger = logging.getLogger(__name__)

_STRUCTURAL_KEYS = {"use", "include"} | set(STRATEGIES)


def _parse_ops(block_data: dict[str, Any]) -> list[SpecOp]:
    """Parse strategy blocks from a blueprint or stack block.

    HCL2 structure for two-label strategy blocks:
        {"ensure": [{"aws_waf_rule": {"blocklist": {...attrs}}}, ...], ...}
    """
    ops: list[SpecOp] = []
    for strategy_name, strategy_cls in STRATEGIES.items():
        for op_block in block_data.get(strategy_name, []):
            for type_name, labelled in op_block.items():
                if not isinstance(labelled, dict):
                    raise ValueError(f"{strategy_name} '{type_name}' requires a label")
                for label, attrs in labelled.items():
                    logger.debug("Decoding %s %s.%s", strategy_name, type_name, label)
                    ops.append(strategy_cls(Declaration(type_name, label, dict(attrs))))
    return ops


def _resolve_blueprint(
    name: str,
    pending: dict[str, dict[str, Any]],
    resolved: dict[str, Blueprint],
    resolving: set[str],
) -> Blueprint:
    """Recursively resolve a single blueprint, handling includes."""
    if name in resolved:
        return resolved[name]
    if name in resolving:
        raise ValueError(f"Circular include detected: '{name}'")
    if name not in pending:
        raise ValueError(f"Unknown blueprint: '{name}'")
    logger.debug("Resolving blueprint '%s'", name)
    resolving.add(name)

    bp_data = pending[name]
    ops: list[SpecOp] = []

    # Includes run first
    for include_name in bp_data.get("include", []):
        logger.debug("Blueprint '%s' includes '%s'", name, include_name)
        ops.extend(_resolve_blueprint(include_name, pending, resolved, resolving).ops)

    ops.extend(_parse_ops(bp_data))

    bp = Blueprint(name=name, description=bp_data.get("description", ""), ops=ops)
    resolved[name] = bp
    resolving.discard(name)
    return bp


def _build_stack(name: str, data: dict[str, Any], blueprints: dict[str, Blueprint]) -> Stack:
    logger.debug("Building stack '%s'", name)
    stack_blueprints: list[Blueprint] = []
    for bp_name in data.get("use", []):
        if bp_name not in blueprints:
            raise ValueError(f"Stack '{name}' references unknown blueprint: '{bp_name}'")
        stack_blueprints.append(blueprints[bp_name])

    # Inline operations form an anonymous blueprint, run last
    inline_ops = _parse_ops(data)
    if inline_ops:
        stack_blueprints.append(Blueprint(name=f"{name}:inline", ops=inline_ops))

    kwargs: dict[str, Any] = {"name": name, "blueprints": stack_blueprints}
    for key, value in data.items():
        if key not in _STRUCTURAL_KEYS:
            kwargs[key] = value

    return Stack(**kwargs)


class Workspace(Mapping[str, Stack]):
    """Accumulates parsed data and resolves stacks on access."""

    def __init__(self, *, context: dict[str, Any] | None = None) -> None:
        self._context = context
        self._pending_blueprints: dict[str, dict[str, Any]] = {}
        self._pending_stacks: dict[str, dict[str, Any]] = {}

    @property
    def blueprints(self) -> dict[str, Blueprint]:
        """All blueprints, resolved."""
        resolved: dict[str, Blueprint] = {}
        for name in self._pending_blueprints:
            _resolve_blueprint(name, self._pending_blueprints, resolved, set())
        return resolved

    def load(self, data: dict[str, Any]) -> None:
        """Extract blueprint and stack blocks from a parsed data dict.

        Raises ValueError if any blueprint or stack name is already loaded.
        """
        for bp_block in data.get("blueprint", []):
            for bp_name, bp_data in bp_block.items():
                if bp_name in self._pending_blueprints:
                    raise ValueError(f"Duplicate blueprint: '{bp_name}'")
                logger.debug("Found blueprint '%s'", bp_name)
                self._pending_blueprints[bp_name] = bp_data

        for stack_block in data.get("stack", []):
            for stack_name, stack_data in stack_block.items():
                if stack_name in self._pending_stacks:
                    raise ValueError(f"Duplicate stack: '{stack_name}'")
                logger.debug("Found stack '%s'", stack_name)
                self._pending_stacks[stack_name] = stack_data

    def load_file(self, file: Path) -> None:
        self.load(hcl.load(file, context=self._context))

    def scan(self, path: str | Path, *, recurse: bool = True) -> None:
        """Load every .hcl file under a directory, in sorted order."""
        root = Path(path)
        if not root.is_dir():
            logger.warning("Not a directory, nothing to load: %s", root)
            return
        files = sorted(root.rglob("*.hcl") if recurse else root.glob("*.hcl"))
        logger.debug("Found %d HCL file(s) in %s", len(files), root)
        for file in files:
            logger.debug("Loading %s", file)
            self.load_file(file)

    def _resolve(self) -> dict[str, Stack]:
        logger.debug(
            "Resolving %d blueprint(s) and %d stack(s)",
            len(self._pending_blueprints),
            len(self._pending_stacks),
        )
        blueprints = self.blueprints
        return {name: _build_stack(name, data, blueprints) for name, data in self._pending_stacks.items()}

    def __getitem__(self, name: str) -> Stack:
        return self._resolve()[name]

    def __contains__(self, name: object) -> bool:
        return name in self._pending_stacks

    def __iter__(self) -> Iterator[str]:
        return iter(self._pending_stacks)

    def __len__(self) -> int:
        return len(self._pending_stacks)

    @overload
    def get(self, name: str) -> Stack | None: ...
    @overload
    def get(self, name: str, default: Stack) -> Stack: ...
    def get(self, name: str, default: Any = None) -> Stack | None:
        if name not in self._pending_stacks:
            return default
        return self[name]

    def filter(self, names: Iterable[str]) -> list[Stack]:
        """Return stacks matching the given names, preserving input order."""
        resolved = self._resolve()
        return [s for n in names if (s := resolved.get(n)) is not None]

    def __repr__(self) -> str:
        return f"Workspace(blueprints={len(self._pending_blueprints)}, stacks={len(self._pending_stacks)})"
