"""
Tests for selection resolution.

This module tests how include specifications prune and await raw resolver
output:
- Explicit exclusion with False at any level
- Default exclusion of deferred values and default inclusion of plain ones
- Recursive selection through nested mappings and sequences
- Ordering, error propagation and the recursion depth guard
"""

import asyncio

import pytest

from layertree.core.tasks import LazyTask
from layertree.core.types import OMIT
from layertree.exceptions import ResolutionDepthError
from layertree.execution.scheduler import PoolScheduler
from layertree.execution.selection import resolve_selection
from layertree.execution.strategies import sequential


def lazy(value):
    async def producer():
        await asyncio.sleep(0)
        return value

    return LazyTask(producer)


class TestExclusion:
    """False removes values; deferred values are excluded unless asked for."""

    @pytest.mark.asyncio
    async def test_false_at_root_omits_everything(self):
        """Test that False at the root yields OMIT."""
        assert await resolve_selection({"a": 1}, False) is OMIT

    @pytest.mark.asyncio
    async def test_false_removes_plain_key(self):
        """Test that False removes a plain field."""
        result = await resolve_selection({"a": 1, "b": 2}, {"b": False})
        assert result == {"a": 1}

    @pytest.mark.asyncio
    async def test_false_removes_computed_nested_value(self):
        """Test that False removes a nested mapping."""
        raw = {"id": 1, "nested": {"a": 1, "b": 2}}

        result = await resolve_selection(raw, {"nested": False})

        assert result == {"id": 1}
        assert "nested" not in result

    @pytest.mark.asyncio
    async def test_deferred_key_absent_by_default(self):
        """Deferred fields without an include are left out."""
        task = lazy({"never": "seen"})

        result = await resolve_selection({"id": 1, "author": task}, {})

        assert result == {"id": 1}
        assert "author" not in result
        assert task.observations == 0

    @pytest.mark.asyncio
    async def test_deferred_root_without_include_is_omitted(self):
        """Test a deferred root value with no include."""
        assert await resolve_selection(lazy(1), None) is OMIT

    @pytest.mark.asyncio
    async def test_omission_differs_from_none(self):
        """Test that a None value is kept while omitted ones are removed."""
        result = await resolve_selection({"a": None, "b": lazy(1)}, {})

        assert result == {"a": None}
        assert "b" not in result

    @pytest.mark.asyncio
    async def test_unawaited_coroutines_are_closed(self):
        """Test that excluded coroutines are closed, not leaked."""

        async def never():
            return 1

        coroutine = never()

        await resolve_selection({"c": coroutine}, {})

        assert coroutine.cr_frame is None


class TestInclusion:
    """True and nested mappings await deferred values recursively."""

    @pytest.mark.asyncio
    async def test_true_awaits_deferred_value(self):
        """Test that True awaits a deferred field."""
        result = await resolve_selection({"author": lazy({"name": "Ada"})}, {"author": True})
        assert result == {"author": {"name": "Ada"}}

    @pytest.mark.asyncio
    async def test_plain_awaitables_are_deferred_too(self):
        """Test that bare coroutines are treated like lazy tasks."""

        async def load():
            return "value"

        result = await resolve_selection({"x": load()}, {"x": True})

        assert result == {"x": "value"}

    @pytest.mark.asyncio
    async def test_true_does_not_include_deeper_deferred_values(self):
        """True on a deferred value resolves it, but its own lazy children stay excluded."""
        inner = lazy("deep")
        raw = {"author": lazy({"name": "Ada", "posts": inner})}

        result = await resolve_selection(raw, {"author": True})

        assert result == {"author": {"name": "Ada"}}
        assert inner.observations == 0

    @pytest.mark.asyncio
    async def test_recursive_selective_inclusion(self):
        """Test selection across several levels of deferred values."""
        raw = {
            "x": lazy("x-value"),
            "nested": lazy(
                {
                    "a": lazy("a-value"),
                    "b": lazy("b-value"),
                    "c": lazy("c-value"),
                    "plain": 5,
                }
            ),
            "y": lazy("y-value"),
        }

        result = await resolve_selection(raw, {"x": True, "nested": {"a": True, "b": False}})

        assert result == {"x": "x-value", "nested": {"a": "a-value", "plain": 5}}

    @pytest.mark.asyncio
    async def test_mapping_include_on_deferred_value(self):
        """Test that a mapping include awaits and then prunes."""
        raw = {"post": lazy({"title": "T", "content": "C", "author": lazy({"id": 1})})}

        result = await resolve_selection(raw, {"post": {"content": False, "author": True}})

        assert result == {"post": {"title": "T", "author": {"id": 1}}}

    @pytest.mark.asyncio
    async def test_unknown_include_keys_are_ignored(self):
        """Include keys missing from the value are ignored."""
        result = await resolve_selection({"a": 1}, {"missing": True, "other": {"x": False}})
        assert result == {"a": 1}

    @pytest.mark.asyncio
    async def test_plain_child_without_include_prunes_deferred_descendants(self):
        """Test a plain subtree holding deferred values."""
        raw = {"meta": {"count": 2, "extra": lazy("hidden")}}

        result = await resolve_selection(raw, {})

        assert result == {"meta": {"count": 2}}

    @pytest.mark.asyncio
    async def test_primitives_pass_through(self):
        """Test that scalars are returned unchanged."""
        assert await resolve_selection("text", True) == "text"
        assert await resolve_selection(3, {"ignored": True}) == 3
        assert await resolve_selection(None, {}) is None

    @pytest.mark.asyncio
    async def test_source_object_is_not_mutated(self):
        """Test that the raw value is left intact."""
        raw = {"a": 1, "b": lazy(2)}

        await resolve_selection(raw, {"a": False})

        assert set(raw) == {"a", "b"}


class TestOrdering:
    """Key order and element order follow the source."""

    @pytest.mark.asyncio
    async def test_keys_resolved_sequentially_in_source_order(self):
        """Test that mapping fields are awaited one at a time, in order."""
        order = []

        def tracked(name, delay):
            async def producer():
                order.append(f"start {name}")
                await asyncio.sleep(delay)
                order.append(f"end {name}")
                return name

            return LazyTask(producer)

        raw = {"first": tracked("first", 0.02), "second": tracked("second", 0.0)}

        result = await resolve_selection(raw, {"first": True, "second": True})

        assert list(result) == ["first", "second"]
        assert order == ["start first", "end first", "start second", "end second"]

    @pytest.mark.asyncio
    async def test_sequence_keeps_order_regardless_of_completion(self):
        """Test sequence results against completion order."""

        def delayed(value, delay):
            async def producer():
                await asyncio.sleep(delay)
                return value

            return LazyTask(producer)

        raw = {"items": [delayed(1, 0.03), delayed(2, 0.01), delayed(3, 0.0)]}

        result = await resolve_selection(raw, {"items": True})

        assert result == {"items": [1, 2, 3]}


class TestSequences:
    """The same include applies to every element."""

    @pytest.mark.asyncio
    async def test_include_propagates_to_each_element(self):
        """Test that every element gets the sequence's include."""
        raw = {
            "items": [
                {"id": 1, "details": lazy({"content": "c1", "title": "t1"})},
                {"id": 2, "details": lazy({"content": "c2", "title": "t2"})},
            ]
        }

        result = await resolve_selection(raw, {"items": {"details": {"content": False}}})

        assert result == {
            "items": [
                {"id": 1, "details": {"title": "t1"}},
                {"id": 2, "details": {"title": "t2"}},
            ]
        }

    @pytest.mark.asyncio
    async def test_false_on_sequence_omits_it(self):
        """Test excluding a whole sequence."""
        assert await resolve_selection({"items": [1, 2]}, {"items": False}) == {}

    @pytest.mark.asyncio
    async def test_excluded_deferred_elements_are_dropped(self):
        """Deferred elements with no include are dropped from the list."""
        result = await resolve_selection({"items": [1, lazy(2), 3]}, {})
        assert result == {"items": [1, 3]}

    @pytest.mark.asyncio
    async def test_tuples_stay_tuples(self):
        """Test that tuples come back as tuples."""
        result = await resolve_selection((lazy(1), lazy(2)), True)
        assert result == (1, 2)

    @pytest.mark.asyncio
    async def test_custom_strategy_is_used(self, probe):
        """Test passing the sequential strategy."""

        def probed(value):
            async def producer():
                return await probe.run(value)

            return LazyTask(producer)

        raw = [probed(i) for i in range(5)]

        result = await resolve_selection(raw, True, array_strategy=sequential)

        assert result == [0, 1, 2, 3, 4]
        assert probe.max == 1

    @pytest.mark.asyncio
    async def test_pool_strategy_bounds_fan_out(self, probe):
        """Test a PoolScheduler bounding element resolution."""

        def probed(value):
            async def producer():
                return await probe.run(value, delay=0.03)

            return LazyTask(producer)

        raw = {"children": [probed(i) for i in range(10)]}

        result = await resolve_selection(
            raw, {"children": True}, array_strategy=PoolScheduler(4)
        )

        assert result == {"children": list(range(10))}
        assert probe.calls == 10
        assert probe.max == 4

    @pytest.mark.asyncio
    async def test_nested_lists_under_single_slot_pool(self):
        """Inner lists resolve inside the slot held by their outer element."""
        scheduler = PoolScheduler(1)

        result = await asyncio.wait_for(
            resolve_selection(
                [[lazy("a"), lazy("b")], [lazy("c")]], True, array_strategy=scheduler
            ),
            timeout=2,
        )

        assert result == [["a", "b"], ["c"]]
        assert scheduler.running == 0
        assert scheduler.pending == 0


class TestErrors:
    """Failures abort the whole resolution; cycles fail fast."""

    @pytest.mark.asyncio
    async def test_rejected_nested_task_aborts_resolution(self):
        """Test that a selected failing task fails the whole pass."""

        async def failing():
            raise LookupError("Post not found")

        raw = {"id": 1, "post": LazyTask(failing)}

        with pytest.raises(LookupError, match="Post not found"):
            await resolve_selection(raw, {"post": True})

    @pytest.mark.asyncio
    async def test_excluded_failing_task_is_never_run(self):
        """Test that an excluded failing task never runs."""

        async def failing():
            raise LookupError("never")

        assert await resolve_selection({"post": LazyTask(failing)}, {}) == {}

    @pytest.mark.asyncio
    async def test_self_referencing_include_hits_depth_guard(self):
        """Test the selection depth guard on a self-referencing value and include."""
        node = {}
        node["child"] = node
        include = {}
        include["child"] = include

        with pytest.raises(ResolutionDepthError) as exc_info:
            await resolve_selection(node, include, max_depth=20)

        assert exc_info.value.kind == "selection"
        assert exc_info.value.limit == 20
        assert exc_info.value.path.startswith("child.child")
