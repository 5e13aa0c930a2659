"""
tests/test_dependency_graph.py — Dependency graph validator and traversal helpers.

Covers:
    1.  Empty and dependency-free graphs are valid
    2.  Self-reference is a one-item cycle
    3.  Two-item and long transitive cycles are detected with their path
    4.  Dangling / cross-template pointers are rejected
    5.  Diamond-free chains and fan-out are accepted regardless of input order
    6.  dependents_index inverts the edges
    7.  topological_order puts prerequisites first and is stable

Pure functions: no database needed.
"""

import pytest

from onboarding.core.exceptions import CrossTemplateDependencyError, DependencyCycleError
from onboarding.services.dependency_graph import (
    dependency_edges,
    dependents_index,
    topological_order,
    validate_dependency_graph,
)


class TestValidateDependencyGraph:

    def test_empty_graph_is_valid(self):
        validate_dependency_graph({})

    def test_independent_items_are_valid(self):
        validate_dependency_graph({"a": None, "b": None, "c": None})

    def test_self_reference_is_cycle(self):
        with pytest.raises(DependencyCycleError) as exc:
            validate_dependency_graph({"a": "a"})
        assert exc.value.cycle == ["a", "a"]

    def test_two_item_cycle(self):
        with pytest.raises(DependencyCycleError) as exc:
            validate_dependency_graph({"a": "b", "b": "a"})
        assert set(exc.value.cycle) == {"a", "b"}
        assert exc.value.cycle[0] == exc.value.cycle[-1]

    def test_long_transitive_cycle(self):
        edges = {"a": "e", "b": "a", "c": "b", "d": "c", "e": "d"}
        with pytest.raises(DependencyCycleError) as exc:
            validate_dependency_graph(edges)
        assert set(exc.value.cycle) == set(edges)

    def test_cycle_reachable_from_a_tail(self):
        """x → a → b → a: the tail item is not part of the reported cycle."""
        with pytest.raises(DependencyCycleError) as exc:
            validate_dependency_graph({"x": "a", "a": "b", "b": "a"})
        assert "x" not in exc.value.cycle

    def test_dangling_pointer_rejected(self):
        with pytest.raises(CrossTemplateDependencyError) as exc:
            validate_dependency_graph({"a": None, "b": "zzz"})
        assert exc.value.item_key == "b"
        assert exc.value.depends_on_key == "zzz"

    @pytest.mark.parametrize("order", [
        ["a", "b", "c", "d"],
        ["d", "c", "b", "a"],
        ["c", "a", "d", "b"],
    ])
    def test_chain_valid_in_any_input_order(self, order):
        deps = {"a": None, "b": "a", "c": "b", "d": "b"}
        validate_dependency_graph({k: deps[k] for k in order})

    def test_cycle_error_is_validation_error_with_400(self):
        with pytest.raises(DependencyCycleError) as exc:
            validate_dependency_graph({"a": "a"})
        assert exc.value.http_status == 400
        assert exc.value.code == "ERR_DEPENDENCY_CYCLE"


class TestGraphHelpers:

    def test_dependency_edges_from_dicts(self):
        items = [{"id": 1, "depends_on_item_id": None}, {"id": 2, "depends_on_item_id": 1}]
        assert dependency_edges(items) == {1: None, 2: 1}

    def test_dependency_edges_with_custom_fields(self):
        items = [{"key": "x"}, {"key": "y", "after": "x"}]
        assert dependency_edges(items, key="key", depends_on="after") == {"x": None, "y": "x"}

    def test_dependents_index(self):
        index = dependents_index({"a": None, "b": "a", "c": "a", "d": "b"})
        assert index == {"a": ["b", "c"], "b": ["d"]}

    def test_topological_order_prerequisites_first(self):
        edges = {"d": "c", "c": "b", "b": "a", "a": None, "x": None}
        order = topological_order(edges)
        assert sorted(order) == sorted(edges)
        for key, dep in edges.items():
            if dep is not None:
                assert order.index(dep) < order.index(key)

    def test_topological_order_is_stable_without_dependencies(self):
        assert topological_order({"c": None, "a": None, "b": None}) == ["c", "a", "b"]

    def test_topological_order_rejects_cycle(self):
        with pytest.raises(DependencyCycleError):
            topological_order({"a": "b", "b": "a"})
