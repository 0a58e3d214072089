"""Tests for the aws_transfer_access resource type."""

from __future__ import annotations

import pytest
from conftest import client_error

from convergent.errors import MalformedReference, ValidationFailed
from convergent.reconciler import Reconciler
from convergent.resources.transfer import TransferAccess

SERVER_ID = "s-0123456789abcdef0"
EXTERNAL_ID = "S-1-1-12-1234567890-123456789-1234567890-1234"
ROLE = "arn:aws:iam::123456789012:role/transfer"
POLICY = '{"Version": "2012-10-17", "Statement": []}'

CONFIG = {
    "server_id": SERVER_ID,
    "external_id": EXTERNAL_ID,
    "role": ROLE,
    "home_directory": "/bucket/home",
    "policy": POLICY,
}


def _access(**fields) -> dict:
    access = {
        "ExternalId": EXTERNAL_ID,
        "HomeDirectory": "/bucket/home",
        "HomeDirectoryType": "PATH",
        "Policy": '{"Statement":[],"Version":"2012-10-17"}',
    }
    access.update(fields)
    return {"ServerId": SERVER_ID, "Access": access}


@pytest.fixture
def client(session):
    client = session.client("transfer")
    client.describe_access.return_value = _access()
    return client


@pytest.fixture
def reconciler(ctx) -> Reconciler:
    return Reconciler(TransferAccess(), ctx)


@pytest.fixture
def created(reconciler, client):
    return reconciler.create(CONFIG)


class TestTransferAccess:
    def test_create(self, created, client):
        client.create_access.assert_called_once_with(
            ServerId=SERVER_ID,
            ExternalId=EXTERNAL_ID,
            Role=ROLE,
            HomeDirectory="/bucket/home",
            HomeDirectoryType="PATH",
            Policy='{"Statement":[],"Version":"2012-10-17"}',
        )
        assert created.id == f"{SERVER_ID}/{EXTERNAL_ID}"

    def test_role_is_kept_from_prior(self, created):
        assert created.get("role") == ROLE

    def test_policy_text_is_kept(self, created):
        assert created.get("policy") == POLICY

    def test_no_drift(self, reconciler, created):
        assert reconciler.changes(created, CONFIG) == set()

    def test_equivalent_policy_is_not_a_change(self, reconciler, created):
        desired = {**CONFIG, "policy": '{\n  "Statement": [],\n  "Version": "2012-10-17"\n}'}
        assert reconciler.changes(created, desired) == set()

    def test_update_sends_only_changes(self, reconciler, created, client):
        client.describe_access.return_value = _access(HomeDirectory="/bucket/other")
        reconciler.update(created, {**CONFIG, "home_directory": "/bucket/other"})
        client.update_access.assert_called_once_with(
            ServerId=SERVER_ID, ExternalId=EXTERNAL_ID, HomeDirectory="/bucket/other"
        )

    def test_cleared_string_sent_empty(self, reconciler, created, client):
        desired = {k: v for k, v in CONFIG.items() if k != "home_directory"}
        client.describe_access.return_value = _access(HomeDirectory=None)
        reconciler.update(created, desired)
        client.update_access.assert_called_once_with(ServerId=SERVER_ID, ExternalId=EXTERNAL_ID, HomeDirectory="")

    def test_removed_policy_sent_empty(self, reconciler, created, client):
        desired = {k: v for k, v in CONFIG.items() if k != "policy"}
        client.describe_access.return_value = _access(Policy=None)

        state = reconciler.update(created, desired)

        client.update_access.assert_called_once_with(ServerId=SERVER_ID, ExternalId=EXTERNAL_ID, Policy="")
        assert "policy" not in state.attributes
        assert reconciler.changes(state, desired) == set()

    def test_empty_remote_policy_is_absent(self, reconciler, created, client):
        desired = {k: v for k, v in CONFIG.items() if k != "policy"}
        client.describe_access.return_value = _access(Policy="")

        state = reconciler.read(created)

        assert "policy" not in state.attributes
        assert reconciler.changes(state, desired) == set()

    def test_external_id_change_requires_replacement(self, reconciler, created):
        assert reconciler.requires_replace(created, {**CONFIG, "external_id": "other"}) == ["external_id"]

    def test_bad_server_id(self, reconciler, client):
        with pytest.raises(ValidationFailed, match="server ID"):
            reconciler.create({**CONFIG, "server_id": "srv-1"})

    def test_bad_policy(self, reconciler, client):
        with pytest.raises(ValidationFailed, match="invalid JSON"):
            reconciler.create({**CONFIG, "policy": "{"})

    def test_not_found(self, reconciler, created, client):
        client.describe_access.side_effect = client_error("ResourceNotFoundException")
        assert reconciler.read(created) is None

    def test_delete_already_gone(self, reconciler, created, client):
        client.delete_access.side_effect = client_error("ResourceNotFoundException")
        reconciler.delete(created)
        client.delete_access.assert_called_once_with(ServerId=SERVER_ID, ExternalId=EXTERNAL_ID)


class TestImport:
    def test_import(self, reconciler, client):
        state = reconciler.import_(f"{SERVER_ID}/{EXTERNAL_ID}")
        assert state.get("server_id") == SERVER_ID
        assert state.get("external_id") == EXTERNAL_ID
        assert "role" not in state.attributes

    def test_malformed(self, reconciler):
        with pytest.raises(MalformedReference, match="server-id/external-id"):
            reconciler.import_(SERVER_ID)
