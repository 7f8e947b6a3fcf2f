"""Data structures for the resource dependency graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class EdgeType(StrEnum):
    """Why one resource depends on another."""

    EXPLICIT = "explicit"
    ATTRIBUTE_REFERENCE = "attribute_reference"


@dataclass(frozen=True)
class Reference:
    """A resource name found inside a descriptor's configuration."""

    resource: str
    attribute: str
    source_field: str  # dotted path of the config field holding the reference


@dataclass(frozen=True)
class GraphEdge:
    """A typed edge: ``target`` depends on ``source``."""

    source: str
    target: str
    edge_type: EdgeType
    source_field: str = ""  # config path for attribute references


@dataclass
class DependencyResult:
    """Result of a graph traversal query."""

    resources: list[str] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)
    depth_reached: int = 0
