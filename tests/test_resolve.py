"""Tests for convergent.resolve."""

import logging

import pytest

from convergent.resolve import Resolver

CONTEXT = {
    "env": {"HOME": "/home/user"},
    "var": {"region": "us-east-1", "port": 8080, "tags": {"team": "core"}, "zones": ["a", "b"]},
    "state": {"aws_waf_rule": {"block": {"id": "r-1", "predicates": [{"data_id": "ip-1"}]}}},
}


class TestLookup:
    def test_dotted(self):
        assert Resolver(CONTEXT).lookup("env.HOME") == "/home/user"

    def test_state_reference(self):
        assert Resolver(CONTEXT).lookup("state.aws_waf_rule.block.id") == "r-1"

    def test_list_index(self):
        assert Resolver(CONTEXT).lookup("state.aws_waf_rule.block.predicates.0.data_id") == "ip-1"

    def test_undefined_raises(self, caplog):
        with caplog.at_level(logging.WARNING), pytest.raises(ValueError, match="var.missing"):
            Resolver(CONTEXT).lookup("var.missing")
        assert "Undefined variable 'var.missing'" in caplog.text

    def test_index_out_of_range(self):
        with pytest.raises(ValueError):
            Resolver(CONTEXT).lookup("var.zones.5")


class TestResolveValue:
    def test_no_interpolation(self):
        assert Resolver(CONTEXT).resolve_value("plain") == "plain"

    def test_single_reference_keeps_type(self):
        r = Resolver(CONTEXT)
        assert r.resolve_value("${var.port}") == 8080
        assert r.resolve_value("${var.tags}") == {"team": "core"}

    def test_embedded_reference_stringifies(self):
        assert Resolver(CONTEXT).resolve_value("${var.region}:${var.port}") == "us-east-1:8080"

    def test_whitespace_inside_braces(self):
        assert Resolver(CONTEXT).resolve_value("${ var.region }") == "us-east-1"

    def test_escape(self):
        assert Resolver(CONTEXT).resolve_value("$${var.region}") == "${var.region}"

    def test_double_brace_passthrough(self):
        assert Resolver(CONTEXT).resolve_value("${{ github.token }}") == "${{ github.token }}"


class TestResolve:
    def test_nested_blocks(self):
        data = {"spec": [{"listener": [{"port": "${var.port}"}]}], "name": "n-${var.region}"}
        assert Resolver(CONTEXT).resolve(data) == {"spec": [{"listener": [{"port": 8080}]}], "name": "n-us-east-1"}

    def test_non_strings_untouched(self):
        data = {"count": 5, "flag": False, "empty": None}
        assert Resolver().resolve(data) == data

    def test_does_not_mutate(self):
        data = {"name": "${var.region}"}
        Resolver(CONTEXT).resolve(data)
        assert data == {"name": "${var.region}"}
