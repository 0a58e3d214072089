"""aws_waf_rule: WAF classic rule with match-set predicates."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from typing import Any

from botocore.exceptions import ClientError

from .. import wire
from ..context import Context
from ..errors import NotFound, error_code
from ..resource import ResourceType, resource
from ..schema import BlockSet, Bool, Schema, String
from ..state import ResourceState
from ..validation import matches, one_of
from ..wire import pascal

logger = logging.getLogger(__name__)

PREDICATE_TYPES = (
    "ByteMatch",
    "GeoMatch",
    "IPMatch",
    "RegexMatch",
    "SizeConstraint",
    "SqlInjectionMatch",
    "XssMatch",
)

STALE_DATA = "WAFStaleDataException"

_RULE_ID = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")

_PREDICATE = Schema(
    {
        "data_id": String(required=True),
        "negated": Bool(required=True),
        "type": String(required=True, validators=(one_of(PREDICATE_TYPES),)),
    }
)

SCHEMA = Schema(
    {
        "name": String(required=True, force_new=True),
        "metric_name": String(
            required=True,
            force_new=True,
            validators=(matches(r"[0-9A-Za-z]+", "alphanumeric"),),
        ),
        "predicates": BlockSet(_PREDICATE, optional=True),
    }
)


class _StaleData(Exception):
    def __init__(self, error: ClientError) -> None:
        self.error = error
        super().__init__(str(error))


def with_change_token[T](ctx: Context, client: Any, description: str, fn: Callable[[str], T]) -> T:
    """Run a mutating call with a fresh change token, retrying stale tokens."""

    def attempt() -> T:
        token = client.get_change_token()["ChangeToken"]
        try:
            return fn(token)
        except ClientError as exc:
            if error_code(exc) == STALE_DATA:
                raise _StaleData(exc) from exc
            raise

    try:
        return ctx.poll(attempt, retry_on=(_StaleData,), description=description)
    except _StaleData as exc:
        raise exc.error from None


def _wire_predicates(predicates: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [wire.expand(_PREDICATE, p, pascal) for p in predicates]


def predicate_updates(old: list[dict[str, Any]], new: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """INSERT/DELETE updates turning the ``old`` predicate set into ``new``."""
    old_items = _wire_predicates(old)
    new_items = _wire_predicates(new)
    updates = [{"Action": "DELETE", "Predicate": p} for p in old_items if p not in new_items]
    updates += [{"Action": "INSERT", "Predicate": p} for p in new_items if p not in old_items]
    return updates


def find_rule_id(client: Any, name: str) -> str:
    paginator = client.get_paginator("list_rules")
    for page in paginator.paginate():
        for rule in page.get("Rules", []):
            if rule["Name"] == name:
                return rule["RuleId"]
    raise NotFound(f"no WAF rule named {name!r}", resource_type="aws_waf_rule", identity=name)


@resource("aws_waf_rule")
class Rule(ResourceType):
    """WAF classic rule; every mutation needs a fresh change token."""

    service = "waf"
    schema = SCHEMA
    not_found_codes = frozenset({"WAFNonexistentItemException"})

    def _update_rule(self, ctx: Context, client: Any, rule_id: str, updates: list[dict[str, Any]]) -> None:
        if not updates:
            return
        logger.debug("Updating WAF rule %s: %s", rule_id, updates)
        with_change_token(
            ctx,
            client,
            f"WAF rule {rule_id} update",
            lambda token: client.update_rule(RuleId=rule_id, ChangeToken=token, Updates=updates),
        )

    def create(self, ctx: Context, client: Any, config: dict[str, Any], tags: dict[str, str]) -> tuple[str, dict[str, Any]]:
        logger.debug("Creating WAF rule: %s", config["name"])
        output = with_change_token(
            ctx,
            client,
            f"WAF rule {config['name']} create",
            lambda token: client.create_rule(Name=config["name"], MetricName=config["metric_name"], ChangeToken=token),
        )
        rule_id = output["Rule"]["RuleId"]
        with self.completing(rule_id, {}):
            self._update_rule(ctx, client, rule_id, predicate_updates([], config.get("predicates") or []))
        return rule_id, {}

    def describe(self, ctx: Context, client: Any, state: ResourceState) -> dict[str, Any]:
        return client.get_rule(RuleId=state.id)["Rule"]

    def resource_id(self, obj: Mapping[str, Any]) -> str | None:
        return obj["RuleId"]

    def flatten(self, obj: Mapping[str, Any], prior: Mapping[str, Any]) -> dict[str, Any]:
        return wire.flatten(SCHEMA, obj, prior, pascal)

    def update(
        self,
        ctx: Context,
        client: Any,
        state: ResourceState,
        config: dict[str, Any],
        changed: set[str],
    ) -> None:
        if "predicates" in changed:
            updates = predicate_updates(state.get("predicates") or [], config.get("predicates") or [])
            self._update_rule(ctx, client, state.id, updates)

    def delete(self, ctx: Context, client: Any, state: ResourceState) -> None:
        self._update_rule(ctx, client, state.id, predicate_updates(state.get("predicates") or [], []))
        logger.debug("Deleting WAF rule: %s", state.id)
        with_change_token(
            ctx,
            client,
            f"WAF rule {state.id} delete",
            lambda token: client.delete_rule(RuleId=state.id, ChangeToken=token),
        )

    def import_state(self, ctx: Context, client: Any, reference: str) -> ResourceState:
        """Import by rule ID, or by rule name via the rule listing."""
        rule_id = reference if _RULE_ID.match(reference) else find_rule_id(client, reference)
        if rule_id != reference:
            logger.debug("Resolved WAF rule %s to %s", reference, rule_id)
        return ResourceState(type_name=self.type_name, id=rule_id, attributes={})
