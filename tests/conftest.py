"""Shared fixtures: a fake provider session and an in-memory resource type."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from convergent.context import Context
from convergent.provider import ProviderConfig, Timeouts
from convergent.resource import ResourceType, _resource_registry
from convergent.schema import Int, Schema, String


def client_error(code: str, message: str = "", operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class FakeSession:
    """Stands in for ProviderSession; one MagicMock per service."""

    def __init__(self, config: ProviderConfig | None = None) -> None:
        self.config = config or ProviderConfig(timeouts=Timeouts(propagation=0.05, poll_interval=0.01))
        self.clients: dict[str, MagicMock] = {}

    def client(self, service: str) -> Any:
        return self.clients.setdefault(service, MagicMock(name=service))


class MemoryWidget(ResourceType):
    """Keeps objects in a dict; every mutating call is recorded on the client."""

    type_name = "test_memory"
    service = "memory"
    schema = Schema(
        {
            "name": String(required=True, force_new=True),
            "size": Int(optional=True),
            "ref": String(optional=True),
        }
    )
    objects: dict[str, dict[str, Any]] = {}

    def create(self, ctx, client, config, tags):
        client.create(**config)
        object_id = f"w-{config['name']}"
        self.objects[object_id] = dict(config)
        return object_id, {}

    def describe(self, ctx, client, state):
        if state.id not in self.objects:
            raise client_error("NotFoundException")
        return self.objects[state.id]

    def flatten(self, obj, prior):
        return dict(obj)

    def update(self, ctx, client, state, config, changed):
        client.update(id=state.id, changed=sorted(changed))
        self.objects[state.id] = {k: v for k, v in config.items() if k in self.schema}

    def delete(self, ctx, client, state):
        client.delete(id=state.id)
        if self.objects.pop(state.id, None) is None:
            raise client_error("NotFoundException")


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def ctx(session: FakeSession) -> Context:
    return Context(target=None, session=session)  # type: ignore[arg-type]


@pytest.fixture
def memory():
    """Register the in-memory resource type; yields its object store."""
    saved = _resource_registry.copy()
    _resource_registry["test_memory"] = MemoryWidget
    MemoryWidget.objects.clear()
    yield MemoryWidget.objects
    MemoryWidget.objects.clear()
    _resource_registry.clear()
    _resource_registry.update(saved)
