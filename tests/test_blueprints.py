"""Tests for convergent.blueprints."""

from __future__ import annotations

from convergent.blueprints import Blueprint
from convergent.specop import Declaration, Ensure, Present


def _ensure(label: str, **config) -> Ensure:
    return Ensure(Declaration("test_memory", label, {"name": label, **config}))


class TestBlueprint:
    def test_defaults(self):
        bp = Blueprint(name="test-bp")
        assert bp.name == "test-bp"
        assert bp.description == ""
        assert bp.ops == []
        assert len(bp) == 0

    def test_iterable(self, memory):
        bp = Blueprint(name="test-bp", ops=[Present(Declaration("test_memory", "a", {"name": "a"})), _ensure("b")])
        assert len(list(bp)) == 2

    def test_apply_runs_ops_in_order(self, ctx, session, memory):
        bp = Blueprint(name="test-bp", ops=[_ensure("a"), _ensure("b", ref="${state.test_memory.a.id}")])
        bp.apply(ctx)
        assert memory["w-b"]["ref"] == "w-a"
        names = [c.kwargs["name"] for c in session.client("memory").create.call_args_list]
        assert names == ["a", "b"]

    def test_apply_dry_run(self, ctx, memory):
        ctx.dry_run = True
        Blueprint(name="test-bp", ops=[_ensure("a")]).apply(ctx)
        assert memory == {}
