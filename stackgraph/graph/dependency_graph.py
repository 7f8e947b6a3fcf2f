"""Dependency graph over the resource descriptors of one stack.

An edge ``A -> B`` means B depends on A: B lists A in ``depends_on`` or B's
configuration references an attribute of A.  The graph is validated on
construction and is read-only afterwards.
"""

from __future__ import annotations

from collections.abc import Iterable

from stackgraph.errors import CycleError, DuplicateResourceError, UnresolvedReferenceError
from stackgraph.graph.models import DependencyResult, EdgeType, GraphEdge
from stackgraph.graph.references import extract_references
from stackgraph.models.resources import ResourceDescriptor
from stackgraph.observability.logging import get_logger

_logger = get_logger("graph.dependency_graph")

_WHITE, _GREY, _BLACK = 0, 1, 2


class DependencyGraph:
    """Validated DAG of resource descriptors keyed by logical name."""

    def __init__(self, descriptors: Iterable[ResourceDescriptor]) -> None:
        self._nodes: dict[str, ResourceDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in self._nodes:
                raise DuplicateResourceError(descriptor.name)
            self._nodes[descriptor.name] = descriptor

        self._edges: list[GraphEdge] = []
        # name -> names it depends on / names that depend on it
        self._deps: dict[str, set[str]] = {name: set() for name in self._nodes}
        self._dependents: dict[str, set[str]] = {name: set() for name in self._nodes}

        for descriptor in self._nodes.values():
            for dep in sorted(descriptor.depends_on):
                self._add_edge(GraphEdge(source=dep, target=descriptor.name, edge_type=EdgeType.EXPLICIT))
            for ref in extract_references(descriptor.config):
                self._add_edge(
                    GraphEdge(
                        source=ref.resource,
                        target=descriptor.name,
                        edge_type=EdgeType.ATTRIBUTE_REFERENCE,
                        source_field=ref.source_field,
                    )
                )

        self._check_acyclic()
        _logger.debug("dependency_graph_built", nodes=self.node_count, edges=self.edge_count)

    def _add_edge(self, edge: GraphEdge) -> None:
        if edge.source not in self._nodes:
            raise UnresolvedReferenceError(edge.source, referenced_by=edge.target)
        if edge.source == edge.target:
            raise CycleError([edge.source, edge.target])
        self._edges.append(edge)
        self._deps[edge.target].add(edge.source)
        self._dependents[edge.source].add(edge.target)

    def _check_acyclic(self) -> None:
        """Iterative DFS; raises CycleError naming the first cycle found."""
        color = {name: _WHITE for name in self._nodes}
        for root in self._nodes:
            if color[root] != _WHITE:
                continue
            path: list[str] = [root]
            stack = [iter(sorted(self._dependents[root]))]
            color[root] = _GREY
            while stack:
                child = next(stack[-1], None)
                if child is None:
                    color[path.pop()] = _BLACK
                    stack.pop()
                    continue
                if color[child] == _GREY:
                    start = path.index(child)
                    raise CycleError([*path[start:], child])
                if color[child] == _WHITE:
                    color[child] = _GREY
                    path.append(child)
                    stack.append(iter(sorted(self._dependents[child])))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        return len(self._edges)

    @property
    def names(self) -> list[str]:
        """Resource names in declaration order."""
        return list(self._nodes)

    @property
    def edges(self) -> list[GraphEdge]:
        return list(self._edges)

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def descriptor(self, name: str) -> ResourceDescriptor:
        return self._nodes[name]

    def dependencies_of(self, name: str) -> set[str]:
        """Direct dependencies of *name*."""
        return set(self._deps[name])

    def dependents_of(self, name: str) -> set[str]:
        """Resources that directly depend on *name*."""
        return set(self._dependents[name])

    def transitive_dependents(self, name: str, max_depth: int | None = None) -> DependencyResult:
        return self._traverse(name, self._dependents, max_depth)

    def transitive_dependencies(self, name: str, max_depth: int | None = None) -> DependencyResult:
        return self._traverse(name, self._deps, max_depth)

    def _traverse(self, name: str, adjacency: dict[str, set[str]], max_depth: int | None) -> DependencyResult:
        result = DependencyResult()
        seen = {name}
        frontier = [name]
        depth = 0
        while frontier and (max_depth is None or depth < max_depth):
            depth += 1
            nxt: list[str] = []
            for current in frontier:
                for other in sorted(adjacency[current]):
                    if other in seen:
                        continue
                    seen.add(other)
                    nxt.append(other)
                    result.resources.append(other)
            if nxt:
                result.depth_reached = depth
            frontier = nxt
        reached = set(result.resources) | {name}
        result.edges = [e for e in self._edges if e.source in reached and e.target in reached]
        return result

    def subset_dependencies(self, names: Iterable[str], reverse: bool = False) -> dict[str, set[str]]:
        """Nearest dependencies of each name in *names* that are themselves in *names*.

        Paths through resources outside the subset still count, so with
        a <- b <- c and subset {a, c}, c depends on a.  A walk stops at the
        first subset member it meets.  With *reverse*, each name maps to its
        nearest dependents in the subset instead.
        """
        adjacency = self._dependents if reverse else self._deps
        subset = set(names)
        edges: dict[str, set[str]] = {}
        for name in self._nodes:
            if name not in subset:
                continue
            found: set[str] = set()
            seen = {name}
            stack = list(adjacency[name])
            while stack:
                other = stack.pop()
                if other in seen:
                    continue
                seen.add(other)
                if other in subset:
                    found.add(other)
                else:
                    stack.extend(adjacency[other])
            edges[name] = found
        return edges

    def levels(self, names: Iterable[str] | None = None, reverse: bool = False) -> list[list[str]]:
        """Kahn layering: each level depends only on earlier levels.

        When *names* is given, only that subset is layered, ordered by
        ``subset_dependencies``.  With *reverse*, edges are flipped so
        dependents come before their dependencies (teardown order).  Within
        a level, names keep declaration order.
        """
        if names is None:
            deps, dependents = (self._dependents, self._deps) if reverse else (self._deps, self._dependents)
        else:
            deps = self.subset_dependencies(names, reverse)
            dependents: dict[str, set[str]] = {name: set() for name in deps}
            for name, upstream in deps.items():
                for other in upstream:
                    dependents[other].add(name)
        order = [n for n in self._nodes if n in deps]
        remaining = {n: len(deps[n]) for n in order}
        levels: list[list[str]] = []
        ready = [n for n in order if remaining[n] == 0]
        while ready:
            levels.append(ready)
            unlocked: set[str] = set()
            for name in ready:
                for dependent in dependents[name]:
                    if dependent in remaining:
                        remaining[dependent] -= 1
                        if remaining[dependent] == 0:
                            unlocked.add(dependent)
            ready = [n for n in order if n in unlocked]
        return levels
