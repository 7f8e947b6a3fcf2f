"""Stack definition container."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from stackgraph.engine.outputs import Output
from stackgraph.models.resources import ResourceDescriptor
from stackgraph.settings import StackSettings


@dataclass(frozen=True)
class Stack:
    """One deployment unit: its resources and the outputs it exports."""

    name: str
    description: str
    resources: list[ResourceDescriptor] = field(default_factory=list)
    outputs: list[Output] = field(default_factory=list)


StackBuilder = Callable[[StackSettings], Stack]
