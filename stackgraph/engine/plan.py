"""Execution plans: topologically ordered batches of resource operations."""

from __future__ import annotations

from collections.abc import Collection, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from stackgraph.errors import StackGraphError
from stackgraph.graph.dependency_graph import DependencyGraph
from stackgraph.models.resources import ResourceDescriptor
from stackgraph.models.results import Operation


@dataclass(frozen=True)
class PlannedOperation:
    """One operation on one resource.

    ``waits_for`` holds the planned resources that must finish successfully
    first: dependencies on apply, dependents on destroy.
    """

    descriptor: ResourceDescriptor
    operation: Operation
    waits_for: frozenset[str] = frozenset()

    @property
    def name(self) -> str:
        return self.descriptor.name


@dataclass(frozen=True)
class ExecutionPlan:
    """Ordered batches of operations.  Immutable once built."""

    stack: str
    destroy: bool
    batches: tuple[tuple[PlannedOperation, ...], ...]
    _index: Mapping[str, PlannedOperation] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        index = {op.name: op for batch in self.batches for op in batch}
        object.__setattr__(self, "_index", MappingProxyType(index))

    def __iter__(self) -> Iterator[PlannedOperation]:
        for batch in self.batches:
            yield from batch

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def get(self, name: str) -> PlannedOperation:
        return self._index[name]

    @property
    def order(self) -> list[str]:
        """Flattened batch order (one valid linear extension)."""
        return [op.name for op in self]

    def describe(self) -> list[list[str]]:
        """Human-readable batches: ``["create kagent-ns", ...]`` per batch."""
        return [[f"{op.operation} {op.name}" for op in batch] for batch in self.batches]


def build_apply_plan(
    stack: str,
    graph: DependencyGraph,
    existing: Collection[str] = (),
) -> ExecutionPlan:
    """Plan create/update operations for every resource in *graph*.

    Resources named in *existing* (already recorded in state) are updated,
    all others are created.  Every descriptor is validated first so a bad
    configuration aborts before any operation runs.
    """
    for name in graph.names:
        graph.descriptor(name).validate()

    batches = []
    for level in graph.levels():
        batch = tuple(
            PlannedOperation(
                descriptor=graph.descriptor(name),
                operation=Operation.UPDATE if name in existing else Operation.CREATE,
                waits_for=frozenset(graph.dependencies_of(name)),
            )
            for name in level
        )
        batches.append(batch)
    return ExecutionPlan(stack=stack, destroy=False, batches=tuple(batches))


def build_destroy_plan(
    stack: str,
    graph: DependencyGraph,
    names: Collection[str] | None = None,
) -> ExecutionPlan:
    """Plan delete operations in reverse dependency order.

    Only resources in *names* are deleted (all of them when omitted); a
    resource waits for its planned dependents to be deleted first, including
    dependents reached through resources that are not being deleted.
    """
    selected = set(graph.names) if names is None else set(names)
    unknown = selected - set(graph.names)
    if unknown:
        raise StackGraphError(f"Cannot destroy undeclared resources: {sorted(unknown)}")

    waits = graph.subset_dependencies(selected, reverse=True)
    batches = []
    for level in graph.levels(selected, reverse=True):
        batch = tuple(
            PlannedOperation(
                descriptor=graph.descriptor(name),
                operation=Operation.DELETE,
                waits_for=frozenset(waits[name]),
            )
            for name in level
        )
        batches.append(batch)
    return ExecutionPlan(stack=stack, destroy=True, batches=tuple(batches))
