"""Generic resource lifecycle reconciler.

One Reconciler drives a single resource type through create, read, update,
delete and import against the remote API:

1. Validate the desired configuration before any remote call
2. Create, then read back (retrying not-found for the propagation window)
3. Read: project the remote object onto the configuration shape; an object
   that is gone out of band is reported as absent, not as an error
4. Update: converge only the changed attribute groups, then read back
5. Delete: an object that is already gone counts as deleted
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from . import tags
from .context import Context
from .errors import (
    NotFound,
    PartialCreate,
    PropagationTimeout,
    ReconcileError,
    RemoteError,
    RemoteRejected,
    ReplacementRequired,
    error_code,
    error_message,
)
from .resource import CreateIncomplete, ResourceType
from .state import ResourceState

logger = logging.getLogger(__name__)


class Reconciler:
    """Lifecycle operations for one resource type within one context."""

    def __init__(self, resource_type: ResourceType, ctx: Context) -> None:
        self.resource_type = resource_type
        self.ctx = ctx

    @property
    def type_name(self) -> str:
        return self.resource_type.type_name

    @property
    def client(self) -> Any:
        return self.ctx.client(self.resource_type.service)

    @contextmanager
    def _remote(self, action: str, identity: str | None, error: type[ReconcileError]) -> Iterator[None]:
        """Translate botocore failures into reconcile errors with context."""
        try:
            yield
        except ClientError as exc:
            message = f"{action} {self.type_name} ({identity or 'new'}): {error_message(exc)}"
            if error_code(exc) in self.resource_type.not_found_codes:
                raise NotFound(message, resource_type=self.type_name, identity=identity) from exc
            raise error(message, resource_type=self.type_name, identity=identity) from exc
        except BotoCoreError as exc:
            message = f"{action} {self.type_name} ({identity or 'new'}): {exc}"
            raise RemoteError(message, resource_type=self.type_name, identity=identity) from exc

    # -- Planning --

    def validate(self, desired: Mapping[str, Any]) -> dict[str, Any]:
        return self.resource_type.schema.validate(desired, resource_type=self.type_name)

    def _tags_all(self, config: Mapping[str, Any]) -> dict[str, str]:
        return tags.merge_defaults(config.get("tags"), self.ctx.session.config.default_tags)

    def _changes(self, state: ResourceState, config: dict[str, Any]) -> set[str]:
        changed = self.resource_type.schema.changed(state.attributes, config)
        if self.resource_type.taggable and self._tags_all(config) != (state.get("tags_all") or {}):
            changed.add("tags")
        return changed

    def changes(self, state: ResourceState, desired: Mapping[str, Any]) -> set[str]:
        """Update groups that differ between tracked state and desired config."""
        config = self.validate(desired)
        return self.resource_type.schema.groups(self._changes(state, config))

    def requires_replace(self, state: ResourceState, desired: Mapping[str, Any]) -> list[str]:
        """Create-time-only attributes that differ; non-empty means replace."""
        return self.resource_type.schema.replacements(state.attributes, self.validate(desired))

    # -- Lifecycle --

    def create(self, desired: Mapping[str, Any]) -> ResourceState:
        config = self.validate(desired)
        tags_all = self._tags_all(config) if self.resource_type.taggable else {}

        logger.info("Creating %s", self.type_name)
        try:
            with self._remote("creating", None, RemoteRejected):
                identity, created = self.resource_type.create(self.ctx, self.client, config, tags_all)
        except CreateIncomplete as exc:
            cause = exc.__cause__ or exc
            raise PartialCreate(
                f"{self.type_name} ({exc.identity}) was created but did not complete: {error_message(cause)}",
                state=self._created_state(exc.identity, config, exc.created, tags_all),
                resource_type=self.type_name,
                identity=exc.identity,
            ) from cause

        state = self._created_state(identity, config, created, tags_all)
        logger.debug(
            "Created %s (%s): %s", self.type_name, identity, self.resource_type.schema.redact(state.attributes)
        )

        try:
            current = self.read(state, new=True)
        except ReconcileError as exc:
            raise PartialCreate(
                f"{self.type_name} ({identity}) was created but reading it back failed: {exc}",
                state=state,
                resource_type=self.type_name,
                identity=identity,
            ) from exc
        if current is None:
            raise RemoteError(
                f"reading {self.type_name} ({identity}): not found after creation",
                resource_type=self.type_name,
                identity=identity,
            )
        return current

    def _created_state(
        self,
        identity: str,
        config: dict[str, Any],
        created: dict[str, Any],
        tags_all: dict[str, str],
    ) -> ResourceState:
        attributes = {**config, **created}
        if self.resource_type.taggable:
            attributes["tags_all"] = tags_all
        return ResourceState(
            type_name=self.type_name,
            id=identity,
            attributes=attributes,
            schema_version=self.resource_type.schema_version,
        )

    def read(self, state: ResourceState, *, new: bool = False) -> ResourceState | None:
        """Refresh tracked state from the remote object.

        Returns None when an existing object is gone (not found, or reporting
        a deleted status). For a new object, not-found is retried for the
        propagation window and a deleted status is an error.
        """
        state = self.upgrade(state)
        client = self.client

        def fetch() -> dict[str, Any]:
            with self._remote("reading", state.id, RemoteError):
                return self.resource_type.describe(self.ctx, client, state)

        if new:
            try:
                obj = self.ctx.poll(fetch, retry_on=(NotFound,), description=f"{self.type_name} ({state.id})")
            except NotFound as exc:
                raise PropagationTimeout(
                    f"{self.type_name} ({state.id}) not found {self.ctx.timeouts.propagation:g}s after creation",
                    resource_type=self.type_name,
                    identity=state.id,
                ) from exc
        else:
            try:
                obj = fetch()
            except NotFound:
                logger.warning("%s (%s) not found, removing from state", self.type_name, state.id)
                return None

        if self.resource_type.is_deleted(obj):
            if new:
                raise RemoteError(
                    f"reading {self.type_name} ({state.id}): DELETED after creation",
                    resource_type=self.type_name,
                    identity=state.id,
                )
            logger.warning("%s (%s) is deleted, removing from state", self.type_name, state.id)
            return None

        attributes = self.resource_type.flatten(obj, state.attributes)
        if self.resource_type.taggable:
            with self._remote("listing tags for", state.id, RemoteError):
                remote_tags = self.resource_type.list_tags(client, state, obj)
            provider = self.ctx.session.config
            tags_all = tags.visible(remote_tags, provider.ignore_tags)
            attributes["tags_all"] = tags_all
            attributes["tags"] = tags.remove_defaults(tags_all, provider.default_tags)

        return state.model_copy(
            update={
                "id": self.resource_type.resource_id(obj) or state.id,
                "attributes": attributes,
            }
        )

    def update(self, state: ResourceState, desired: Mapping[str, Any]) -> ResourceState:
        config = self.validate(desired)
        schema = self.resource_type.schema

        replace = schema.replacements(state.attributes, config)
        if replace:
            raise ReplacementRequired(replace, resource_type=self.type_name, identity=state.id)

        groups = schema.groups(self._changes(state, config))
        if not groups:
            logger.debug("%s (%s) is up to date", self.type_name, state.id)
            return state

        client = self.client
        merged = schema.merge_computed(state.attributes, config)

        resource_groups = groups - {"tags"}
        if resource_groups:
            logger.info("Updating %s (%s): %s", self.type_name, state.id, ", ".join(sorted(resource_groups)))
            with self._remote("updating", state.id, RemoteRejected):
                self.resource_type.update(self.ctx, client, state, merged, resource_groups)

        if "tags" in groups:
            new_tags = self._tags_all(config)
            upsert, removed = tags.diff(state.get("tags_all") or {}, new_tags)
            logger.info("Updating tags for %s (%s)", self.type_name, state.id)
            with self._remote("updating tags for", state.id, RemoteRejected):
                self.resource_type.tag(client, state, upsert, removed)
            merged["tags_all"] = new_tags

        current = self.read(state.model_copy(update={"attributes": merged}))
        if current is None:
            raise NotFound(
                f"{self.type_name} ({state.id}) disappeared during update",
                resource_type=self.type_name,
                identity=state.id,
            )
        return current

    def delete(self, state: ResourceState) -> None:
        logger.info("Deleting %s (%s)", self.type_name, state.id)
        try:
            with self._remote("deleting", state.id, RemoteError):
                self.resource_type.delete(self.ctx, self.client, state)
        except NotFound:
            logger.debug("%s (%s) already deleted", self.type_name, state.id)

    def import_(self, reference: str) -> ResourceState:
        """Adopt an existing remote object by its external reference."""
        logger.info("Importing %s (%s)", self.type_name, reference)
        client = self.client
        with self._remote("importing", reference, RemoteError):
            state = self.resource_type.import_state(self.ctx, client, reference)
        current = self.read(state)
        if current is None:
            raise NotFound(
                f"cannot import non-existent {self.type_name} ({reference})",
                resource_type=self.type_name,
                identity=reference,
            )
        return current

    def upgrade(self, state: ResourceState) -> ResourceState:
        """Migrate state stored under an older schema version."""
        target = self.resource_type.schema_version
        version = state.schema_version
        if version == target:
            return state
        if version > target:
            raise ValueError(f"{self.type_name}: state schema version {version} is newer than {target}")

        attributes = copy.deepcopy(state.attributes)
        while version < target:
            logger.info("Migrating %s (%s) state from v%d", self.type_name, state.id, version)
            attributes = self.resource_type.migrate_state(version, attributes)
            version += 1
        return state.model_copy(update={"attributes": attributes, "schema_version": version})
