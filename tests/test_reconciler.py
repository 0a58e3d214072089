"""Tests for convergent.reconciler."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import pytest
from conftest import FakeSession, client_error

from convergent.errors import (
    NotFound,
    PartialCreate,
    PropagationTimeout,
    RemoteError,
    RemoteRejected,
    ReplacementRequired,
    ValidationFailed,
)
from convergent.provider import ProviderConfig, Timeouts
from convergent.reconciler import Reconciler
from convergent.resource import ResourceType
from convergent.schema import Int, Map, Schema, String
from convergent.state import ResourceState

SCHEMA = Schema(
    {
        "name": String(required=True, force_new=True),
        "size": Int(optional=True),
        "color": String(optional=True),
        "status": String(computed=True),
        "created_at": String(computed=True),
        "tags": Map(optional=True),
        "tags_all": Map(computed=True),
    }
)


class Widget(ResourceType):
    type_name = "test_widget"
    service = "widgets"
    schema = SCHEMA
    taggable = True

    def create(self, ctx, client, config, tags):
        output = client.create_widget(Name=config["name"], Size=config.get("size"), Tags=tags)
        return output["Id"], {}

    def describe(self, ctx, client, state):
        return client.get_widget(Id=state.id)

    def is_deleted(self, obj: Mapping[str, Any]) -> bool:
        return obj["Status"] == "DELETED"

    def flatten(self, obj, prior):
        attributes = {
            "name": obj["Name"],
            "size": obj.get("Size"),
            "color": obj.get("Color"),
            "status": obj["Status"],
            "created_at": obj["CreatedAt"],
        }
        return {k: v for k, v in attributes.items() if v is not None}

    def update(self, ctx, client, state, config, changed):
        for group in sorted(changed):
            client.update_widget(Id=state.id, Field=group, Value=config.get(group))

    def delete(self, ctx, client, state):
        client.delete_widget(Id=state.id)

    def list_tags(self, client, state, obj):
        return dict(obj.get("Tags", {}))

    def tag(self, client, state, upsert, removed):
        if removed:
            client.untag_widget(Id=state.id, Keys=removed)
        if upsert:
            client.tag_widget(Id=state.id, Tags=upsert)


class StagedWidget(Widget):
    def create(self, ctx, client, config, tags):
        widget_id = client.create_widget(Name=config["name"], Tags=tags)["Id"]
        created = {"color": "red"}
        with self.completing(widget_id, created):
            client.configure_widget(Id=widget_id, Size=config.get("size"))
        return widget_id, created


def _remote(status: str = "ACTIVE", **fields) -> dict[str, Any]:
    obj = {"Id": "w-1", "Name": "alpha", "Status": status, "CreatedAt": "2024-01-01T00:00:00"}
    obj.update(fields)
    return obj


def _state(**attrs) -> ResourceState:
    attributes = {"name": "alpha", "status": "ACTIVE", "created_at": "2024-01-01T00:00:00", "tags_all": {}}
    attributes.update(attrs)
    return ResourceState(type_name="test_widget", id="w-1", attributes=attributes)


@pytest.fixture
def session() -> FakeSession:
    return FakeSession(
        ProviderConfig(
            default_tags={"team": "core"},
            timeouts=Timeouts(propagation=0.05, poll_interval=0.01),
        )
    )


@pytest.fixture
def client(session):
    return session.client("widgets")


@pytest.fixture
def reconciler(ctx) -> Reconciler:
    return Reconciler(Widget(), ctx)


class TestCreate:
    def test_create_then_read(self, reconciler, client):
        client.create_widget.return_value = {"Id": "w-1"}
        client.get_widget.return_value = _remote(Size=3, Tags={"team": "core"})

        state = reconciler.create({"name": "alpha", "size": 3})

        assert state.id == "w-1"
        assert state.get("status") == "ACTIVE"
        assert state.get("created_at") == "2024-01-01T00:00:00"
        assert state.get("tags_all") == {"team": "core"}
        assert state.get("tags") == {}
        client.create_widget.assert_called_once_with(Name="alpha", Size=3, Tags={"team": "core"})

    def test_validates_before_remote_call(self, reconciler, client):
        with pytest.raises(ValidationFailed):
            reconciler.create({"size": "big"})
        client.create_widget.assert_not_called()

    def test_retries_not_found_after_create(self, reconciler, client):
        client.create_widget.return_value = {"Id": "w-1"}
        client.get_widget.side_effect = [client_error("NotFoundException"), _remote()]

        state = reconciler.create({"name": "alpha"})

        assert state.get("status") == "ACTIVE"
        assert client.get_widget.call_count == 2

    def test_propagation_timeout_is_partial_create(self, reconciler, client):
        client.create_widget.return_value = {"Id": "w-1"}
        client.get_widget.side_effect = client_error("NotFoundException")

        with pytest.raises(PartialCreate) as exc_info:
            reconciler.create({"name": "alpha"})

        assert exc_info.value.state.id == "w-1"
        assert isinstance(exc_info.value.__cause__, PropagationTimeout)

    def test_deleted_after_create_is_fatal(self, reconciler, client):
        client.create_widget.return_value = {"Id": "w-1"}
        client.get_widget.return_value = _remote(status="DELETED")

        with pytest.raises(PartialCreate, match="DELETED after creation"):
            reconciler.create({"name": "alpha"})
        assert client.get_widget.call_count == 1

    def test_rejected(self, reconciler, client):
        client.create_widget.side_effect = client_error("BadRequestException", "no")

        with pytest.raises(RemoteRejected, match="BadRequestException: no") as exc_info:
            reconciler.create({"name": "alpha"})
        assert not isinstance(exc_info.value, PartialCreate)
        assert exc_info.value.resource_type == "test_widget"

    def test_failed_follow_up_step_is_partial(self, ctx, client):
        client.create_widget.return_value = {"Id": "w-1"}
        client.configure_widget.side_effect = client_error("BadRequestException", "bad size")

        with pytest.raises(PartialCreate, match="w-1.*BadRequestException: bad size") as exc_info:
            Reconciler(StagedWidget(), ctx).create({"name": "alpha", "size": 3})

        state = exc_info.value.state
        assert state.id == "w-1"
        assert state.get("color") == "red"
        assert state.get("tags_all") == {"team": "core"}
        client.get_widget.assert_not_called()

    def test_missing_after_create_read(self, reconciler, client, monkeypatch):
        client.create_widget.return_value = {"Id": "w-1"}
        monkeypatch.setattr(reconciler, "read", lambda state, new=False: None)

        with pytest.raises(RemoteError, match="not found after creation"):
            reconciler.create({"name": "alpha"})


class TestRead:
    def test_refreshes_attributes(self, reconciler, client):
        client.get_widget.return_value = _remote(Size=5, Color="blue")
        state = reconciler.read(_state(size=1))
        assert state.get("size") == 5
        assert state.get("color") == "blue"

    def test_not_found_is_absent(self, reconciler, client, caplog):
        client.get_widget.side_effect = client_error("NotFoundException")
        with caplog.at_level(logging.WARNING):
            assert reconciler.read(_state()) is None
        assert "not found" in caplog.text

    def test_deleted_status_is_absent(self, reconciler, client):
        client.get_widget.return_value = _remote(status="DELETED")
        assert reconciler.read(_state()) is None

    def test_other_errors_propagate(self, reconciler, client):
        client.get_widget.side_effect = client_error("AccessDeniedException", "denied")
        with pytest.raises(RemoteError, match="denied") as exc_info:
            reconciler.read(_state())
        assert not isinstance(exc_info.value, NotFound)
        assert exc_info.value.identity == "w-1"

    def test_tags_filtered(self, reconciler, client):
        client.get_widget.return_value = _remote(Tags={"aws:created-by": "x", "team": "core", "env": "prod"})
        state = reconciler.read(_state())
        assert state.get("tags_all") == {"team": "core", "env": "prod"}
        assert state.get("tags") == {"env": "prod"}


class TestUpdate:
    def test_only_changed_group_is_sent(self, reconciler, client):
        client.get_widget.return_value = _remote(Size=2, Color="red")
        current = _state(size=1, color="red", tags_all={"team": "core"})

        state = reconciler.update(current, {"name": "alpha", "size": 2, "color": "red"})

        client.update_widget.assert_called_once_with(Id="w-1", Field="size", Value=2)
        client.tag_widget.assert_not_called()
        client.untag_widget.assert_not_called()
        assert state.get("size") == 2

    def test_no_change_makes_no_calls(self, reconciler, client):
        current = _state(size=1, tags_all={"team": "core"})
        assert reconciler.update(current, {"name": "alpha", "size": 1}) is current
        client.update_widget.assert_not_called()
        client.get_widget.assert_not_called()

    def test_tags_only(self, reconciler, client):
        client.get_widget.return_value = _remote(Tags={"team": "core", "env": "prod"})
        current = _state(tags_all={"team": "core", "old": "1"})

        reconciler.update(current, {"name": "alpha", "tags": {"env": "prod"}})

        client.update_widget.assert_not_called()
        client.untag_widget.assert_called_once_with(Id="w-1", Keys=["old"])
        client.tag_widget.assert_called_once_with(Id="w-1", Tags={"env": "prod"})

    def test_force_new_requires_replacement(self, reconciler, client):
        with pytest.raises(ReplacementRequired, match="name"):
            reconciler.update(_state(), {"name": "beta"})
        client.update_widget.assert_not_called()

    def test_planning(self, reconciler):
        current = _state(size=1, tags_all={"team": "core"})
        assert reconciler.requires_replace(current, {"name": "beta", "size": 1}) == ["name"]
        assert reconciler.changes(current, {"name": "alpha", "size": 2}) == {"size"}
        assert reconciler.changes(current, {"name": "alpha", "size": 1, "tags": {"a": "b"}}) == {"tags"}

    def test_disappeared_during_update(self, reconciler, client):
        client.get_widget.side_effect = client_error("NotFoundException")
        with pytest.raises(NotFound, match="disappeared"):
            reconciler.update(_state(size=1, tags_all={"team": "core"}), {"name": "alpha", "size": 2})


class TestDelete:
    def test_delete(self, reconciler, client):
        reconciler.delete(_state())
        client.delete_widget.assert_called_once_with(Id="w-1")

    def test_already_gone_is_success(self, reconciler, client):
        client.delete_widget.side_effect = client_error("NotFoundException")
        reconciler.delete(_state())
        reconciler.delete(_state())
        assert client.delete_widget.call_count == 2

    def test_other_errors(self, reconciler, client):
        client.delete_widget.side_effect = client_error("ResourceInUseException")
        with pytest.raises(RemoteError):
            reconciler.delete(_state())


class TestImport:
    def test_import(self, reconciler, client):
        client.get_widget.return_value = _remote()
        state = reconciler.import_("w-1")
        assert state.id == "w-1"
        assert state.get("name") == "alpha"

    def test_import_missing(self, reconciler, client):
        client.get_widget.side_effect = client_error("NotFoundException")
        with pytest.raises(NotFound, match="non-existent"):
            reconciler.import_("w-9")


class VersionedWidget(Widget):
    schema_version = 2

    def migrate_state(self, version, attributes):
        attributes.setdefault("migrated", []).append(version)
        return attributes


class TestUpgrade:
    def test_migrates_each_version(self, ctx):
        reconciler = Reconciler(VersionedWidget(), ctx)
        state = reconciler.upgrade(_state())
        assert state.schema_version == 2
        assert state.get("migrated") == [0, 1]

    def test_current_version_untouched(self, ctx):
        state = _state()
        assert Reconciler(Widget(), ctx).upgrade(state) is state

    def test_newer_version_rejected(self, ctx):
        state = _state().model_copy(update={"schema_version": 5})
        with pytest.raises(ValueError, match="newer"):
            Reconciler(Widget(), ctx).upgrade(state)
