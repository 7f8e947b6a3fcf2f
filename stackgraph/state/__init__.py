"""Per-stack state persistence."""

from stackgraph.state.store import ResourceState, StackState, StateStore

__all__ = ["ResourceState", "StackState", "StateStore"]
