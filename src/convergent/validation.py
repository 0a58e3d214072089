"""Attribute validators.

Each validator is a callable taking the attribute value and returning an
error message, or None when the value is acceptable.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable
from typing import Any

Validator = Callable[[Any], str | None]

_ARN_PATTERN = re.compile(r"^arn:[\w-]+:[\w-]*:[\w-]*:(\d{12})?:.+$")
_ACCOUNT_ID_PATTERN = re.compile(r"^\d{12}$")


def string_len_between(low: int, high: int) -> Validator:
    def check(value: Any) -> str | None:
        if not low <= len(value) <= high:
            return f"length must be between {low} and {high}, got {len(value)}"
        return None

    return check


def int_between(low: int, high: int) -> Validator:
    def check(value: Any) -> str | None:
        if not low <= value <= high:
            return f"must be between {low} and {high}, got {value}"
        return None

    return check


def int_at_least(low: int) -> Validator:
    def check(value: Any) -> str | None:
        if value < low:
            return f"must be at least {low}, got {value}"
        return None

    return check


def is_port_number(value: Any) -> str | None:
    return int_between(1, 65535)(value)


def one_of(choices: Iterable[str]) -> Validator:
    allowed = tuple(choices)

    def check(value: Any) -> str | None:
        if value not in allowed:
            return f"must be one of {', '.join(allowed)}, got {value!r}"
        return None

    return check


def matches(pattern: str, description: str) -> Validator:
    compiled = re.compile(pattern)

    def check(value: Any) -> str | None:
        if not compiled.fullmatch(value):
            return f"must be {description}, got {value!r}"
        return None

    return check


def not_empty(value: Any) -> str | None:
    if not value:
        return "must not be empty"
    return None


def valid_arn(value: Any) -> str | None:
    if not _ARN_PATTERN.match(value):
        return f"invalid ARN: {value!r}"
    return None


def valid_account_id(value: Any) -> str | None:
    if not _ACCOUNT_ID_PATTERN.match(value):
        return f"invalid account ID: {value!r}"
    return None


def valid_json(value: Any) -> str | None:
    try:
        json.loads(value)
    except (TypeError, ValueError) as exc:
        return f"invalid JSON: {exc}"
    return None
