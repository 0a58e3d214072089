"""Tracked resource state."""

from __future__ import annotations

import logging
import threading
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ResourceState(BaseModel):
    """What is remembered about one remote object between runs."""

    type_name: str
    id: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    schema_version: int = 0

    def get(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)


class StateStore:
    """Tracked states keyed by resource address (``<type>.<label>``)."""

    def __init__(self, states: dict[str, ResourceState] | None = None) -> None:
        self._states: dict[str, ResourceState] = dict(states or {})
        self._lock = threading.Lock()

    def get(self, address: str) -> ResourceState | None:
        with self._lock:
            return self._states.get(address)

    def put(self, address: str, state: ResourceState) -> None:
        with self._lock:
            self._states[address] = state

    def remove(self, address: str) -> None:
        with self._lock:
            if self._states.pop(address, None) is not None:
                logger.debug("Removed '%s' from tracked state", address)

    def __contains__(self, address: object) -> bool:
        return address in self._states

    def __len__(self) -> int:
        return len(self._states)

    def view(self) -> dict[str, dict[str, dict[str, Any]]]:
        """Nested ``{type: {label: {id, ...attributes}}}`` view for interpolation."""
        result: dict[str, dict[str, dict[str, Any]]] = {}
        with self._lock:
            for address, state in self._states.items():
                type_name, _, label = address.partition(".")
                result.setdefault(type_name, {})[label] = {"id": state.id, **state.attributes}
        return result

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {address: state.model_dump() for address, state in self._states.items()}

    @classmethod
    def restore(cls, data: dict[str, Any]) -> StateStore:
        return cls({address: ResourceState.model_validate(item) for address, item in data.items()})
