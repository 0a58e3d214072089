"""Declarations and the strategies that reconcile them."""

from __future__ import annotations

import copy
import logging
import os
from abc import ABC, abstractmethod
from typing import Any

from .context import Context
from .errors import PartialCreate
from .reconciler import Reconciler
from .resolve import Resolver
from .resource import ResourceType, lookup
from .state import ResourceState

logger = logging.getLogger(__name__)


class Declaration:
    """A labelled desired configuration for one resource type.

    ``${...}`` references in the configuration are resolved when the
    declaration runs, against ``env``, ``var`` (the context variables) and
    ``state`` (everything tracked so far).
    """

    def __init__(self, type_name: str, label: str, config: dict[str, Any] | None = None) -> None:
        self.resource_type: ResourceType = lookup(type_name)()
        self.type_name = type_name
        self.label = label
        self.config = config or {}

    @property
    def address(self) -> str:
        return f"{self.type_name}.{self.label}"

    def __repr__(self) -> str:
        return f"Declaration({self.address})"

    def resolve(self, ctx: Context) -> dict[str, Any]:
        resolver = Resolver(
            {
                "env": dict(os.environ),
                "var": ctx.variables,
                "state": ctx.state.view(),
            }
        )
        return resolver.resolve(copy.deepcopy(self.config))

    def reconciler(self, ctx: Context) -> Reconciler:
        return Reconciler(self.resource_type, ctx)

    def current(self, ctx: Context) -> ResourceState | None:
        """Refresh the tracked state; forget it if the object is gone."""
        tracked = ctx.state.get(self.address)
        if tracked is None:
            return None
        current = self.reconciler(ctx).read(tracked)
        if current is None:
            ctx.state.remove(self.address)
        else:
            ctx.state.put(self.address, current)
        return current

    def create(self, ctx: Context, config: dict[str, Any]) -> ResourceState:
        try:
            state = self.reconciler(ctx).create(config)
        except PartialCreate as exc:
            # Track what was created so the next run can pick it up
            ctx.state.put(self.address, exc.state)
            raise
        ctx.state.put(self.address, state)
        return state

    def delete(self, ctx: Context, state: ResourceState) -> None:
        self.reconciler(ctx).delete(state)
        ctx.state.remove(self.address)


class SpecOp(ABC):
    """Wraps a Declaration with conditional execution logic."""

    def __init__(self, decl: Declaration) -> None:
        self.decl = decl

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.decl.address})"

    @abstractmethod
    def __call__(self, ctx: Context) -> None: ...


class Present(SpecOp):
    """Create only if the resource is not tracked (or is gone)."""

    def __call__(self, ctx: Context) -> None:
        address = self.decl.address
        if self.decl.current(ctx) is not None:
            logger.debug("Skipping %s; already exists", address)
            return
        config = self.decl.resolve(ctx)
        if ctx.dry_run:
            self.decl.reconciler(ctx).validate(config)
            logger.info("[DRY RUN] Would create %s", address)
        else:
            logger.info("Creating %s", address)
            self.decl.create(ctx, config)


class Ensure(SpecOp):
    """Create, replace or update until the remote object matches."""

    def __call__(self, ctx: Context) -> None:
        address = self.decl.address
        current = self.decl.current(ctx)
        config = self.decl.resolve(ctx)
        reconciler = self.decl.reconciler(ctx)

        if current is None:
            if ctx.dry_run:
                reconciler.validate(config)
                logger.info("[DRY RUN] Would create %s", address)
            else:
                logger.info("Creating %s", address)
                self.decl.create(ctx, config)
            return

        replace = reconciler.requires_replace(current, config)
        if replace:
            if ctx.dry_run:
                logger.info("[DRY RUN] Would replace %s (%s)", address, ", ".join(replace))
            else:
                logger.info("Replacing %s (%s)", address, ", ".join(replace))
                self.decl.delete(ctx, current)
                self.decl.create(ctx, config)
            return

        changes = reconciler.changes(current, config)
        if not changes:
            logger.debug("Skipping %s; up to date", address)
        elif ctx.dry_run:
            logger.info("[DRY RUN] Would update %s (%s)", address, ", ".join(sorted(changes)))
        else:
            logger.info("Updating %s (%s)", address, ", ".join(sorted(changes)))
            ctx.state.put(address, reconciler.update(current, config))


class Absent(SpecOp):
    """Delete if the resource is tracked and still present, then forget it."""

    def __call__(self, ctx: Context) -> None:
        address = self.decl.address
        current = self.decl.current(ctx)
        if current is None:
            logger.debug("Skipping removal of %s; not present", address)
        elif ctx.dry_run:
            logger.info("[DRY RUN] Would remove %s", address)
        else:
            logger.info("Removing %s", address)
            self.decl.delete(ctx, current)


class Adopt(SpecOp):
    """Import an existing remote object by its ``id`` reference."""

    def __call__(self, ctx: Context) -> None:
        address = self.decl.address
        if address in ctx.state:
            logger.debug("Skipping import of %s; already tracked", address)
            return
        config = self.decl.resolve(ctx)
        reference = config.get("id")
        if not reference:
            raise ValueError(f"{address}: adopt requires an 'id' reference")
        if ctx.dry_run:
            logger.info("[DRY RUN] Would import %s from '%s'", address, reference)
        else:
            logger.info("Importing %s from '%s'", address, reference)
            ctx.state.put(address, self.decl.reconciler(ctx).import_(reference))


STRATEGIES: dict[str, type[SpecOp]] = {
    "present": Present,
    "ensure": Ensure,
    "absent": Absent,
    "adopt": Adopt,
}
