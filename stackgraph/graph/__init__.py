"""Resource dependency graph.

Builds a validated DAG from the resource descriptors of one stack, using
explicit ``depends_on`` declarations and references inferred from each
descriptor's configuration.
"""

from stackgraph.graph.dependency_graph import DependencyGraph
from stackgraph.graph.models import DependencyResult, EdgeType, GraphEdge, Reference
from stackgraph.graph.references import extract_references, resolve_references

__all__ = [
    "DependencyGraph",
    "DependencyResult",
    "EdgeType",
    "GraphEdge",
    "Reference",
    "extract_references",
    "resolve_references",
]
