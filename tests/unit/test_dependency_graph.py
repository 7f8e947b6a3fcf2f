"""Tests for DependencyGraph construction, validation and queries."""

from __future__ import annotations

import pytest

from stackgraph.errors import CycleError, DuplicateResourceError, UnresolvedReferenceError
from stackgraph.graph.dependency_graph import DependencyGraph
from stackgraph.graph.models import EdgeType
from stackgraph.models.resources import (
    HelmReleaseSpec,
    NamespaceSpec,
    Ref,
    ResourceDescriptor,
    SecretSpec,
    ShellCommandSpec,
    resource,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _cmd(name: str, *depends_on: str) -> ResourceDescriptor:
    return resource(name, ShellCommandSpec(create=f"echo {name}"), depends_on=depends_on)


def _namespace_secret_release() -> list[ResourceDescriptor]:
    return [
        resource("ns", NamespaceSpec(namespace="kagent")),
        resource("secret", SecretSpec(secret_name="s", namespace="kagent", string_data={"k": "v"}), depends_on=("ns",)),
        resource("release", HelmReleaseSpec(chart="c", namespace="kagent"), depends_on=("secret",)),
    ]


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_explicit_edges(self) -> None:
        graph = DependencyGraph(_namespace_secret_release())
        assert graph.node_count == 3
        assert graph.edge_count == 2
        assert graph.dependencies_of("secret") == {"ns"}
        assert graph.dependents_of("secret") == {"release"}

    def test_reference_edges_are_inferred(self) -> None:
        graph = DependencyGraph(
            [
                resource("ns", NamespaceSpec(namespace="kagent")),
                resource("secret", SecretSpec(secret_name="s", namespace=Ref("ns", "name"), string_data={"k": "v"})),
            ]
        )
        [edge] = graph.edges
        assert (edge.source, edge.target) == ("ns", "secret")
        assert edge.edge_type == EdgeType.ATTRIBUTE_REFERENCE
        assert edge.source_field == "namespace"

    def test_names_keep_declaration_order(self) -> None:
        graph = DependencyGraph([_cmd("b"), _cmd("a"), _cmd("c")])
        assert graph.names == ["b", "a", "c"]
        assert "a" in graph
        assert len(graph) == 3

    def test_empty_graph(self) -> None:
        graph = DependencyGraph([])
        assert graph.levels() == []


class TestValidation:
    def test_duplicate_names_rejected(self) -> None:
        with pytest.raises(DuplicateResourceError):
            DependencyGraph([_cmd("a"), _cmd("a")])

    def test_cycle_is_named(self) -> None:
        with pytest.raises(CycleError) as exc_info:
            DependencyGraph([_cmd("a", "c"), _cmd("b", "a"), _cmd("c", "b")])
        cycle = exc_info.value.cycle
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"a", "b", "c"}
        assert " -> " in str(exc_info.value)

    def test_self_dependency_is_a_cycle(self) -> None:
        with pytest.raises(CycleError):
            DependencyGraph([_cmd("a", "a")])

    def test_undeclared_dependency(self) -> None:
        with pytest.raises(UnresolvedReferenceError) as exc_info:
            DependencyGraph([_cmd("a", "ghost")])
        assert exc_info.value.name == "ghost"
        assert exc_info.value.referenced_by == "a"

    def test_undeclared_reference_named_before_any_operation(self) -> None:
        release = resource(
            "release",
            HelmReleaseSpec(chart="c", namespace="kagent", values={"apiKeySecretRef": Ref("secret", "name")}),
        )
        with pytest.raises(UnresolvedReferenceError, match="'secret'"):
            DependencyGraph([release])


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestLevels:
    def test_chain(self) -> None:
        graph = DependencyGraph(_namespace_secret_release())
        assert graph.levels() == [["ns"], ["secret"], ["release"]]
        assert graph.levels(reverse=True) == [["release"], ["secret"], ["ns"]]

    def test_diamond(self) -> None:
        graph = DependencyGraph([_cmd("root"), _cmd("left", "root"), _cmd("right", "root"), _cmd("join", "left", "right")])
        assert graph.levels() == [["root"], ["left", "right"], ["join"]]

    def test_subset_keeps_order_through_outside_resources(self) -> None:
        graph = DependencyGraph(_namespace_secret_release())
        assert graph.levels(["secret", "release"]) == [["secret"], ["release"]]
        assert graph.levels(["ns", "release"]) == [["ns"], ["release"]]
        assert graph.levels(["ns", "release"], reverse=True) == [["release"], ["ns"]]

    def test_subset_dependencies_stop_at_nearest_member(self) -> None:
        graph = DependencyGraph(_namespace_secret_release())
        assert graph.subset_dependencies(["ns", "release"]) == {"ns": set(), "release": {"ns"}}
        assert graph.subset_dependencies(graph.names, reverse=True) == {
            "ns": {"secret"},
            "secret": {"release"},
            "release": set(),
        }
        assert graph.subset_dependencies(["secret"]) == {"secret": set()}


class TestTraversal:
    def test_transitive_dependents(self) -> None:
        graph = DependencyGraph(_namespace_secret_release())
        result = graph.transitive_dependents("ns")
        assert result.resources == ["secret", "release"]
        assert result.depth_reached == 2

    def test_transitive_dependencies_with_depth_limit(self) -> None:
        graph = DependencyGraph(_namespace_secret_release())
        result = graph.transitive_dependencies("release", max_depth=1)
        assert result.resources == ["secret"]
