"""Workshop stack definitions, keyed by stack name."""

from __future__ import annotations

from stackgraph.errors import StackGraphError
from stackgraph.settings import StackSettings
from stackgraph.stacks import cluster, kagent, model_key, monitoring, remediation
from stackgraph.stacks.base import Stack, StackBuilder

STACKS: dict[str, StackBuilder] = {
    "model-key": model_key.build,
    "cluster": cluster.build,
    "monitoring": monitoring.build,
    "kagent": kagent.build,
    "remediation": remediation.build,
}


def build_stack(name: str, settings: StackSettings) -> Stack:
    """Build the named stack from *settings*.

    Raises:
        StackGraphError: if no stack has that name.
        SettingsError: if a required setting is missing.
    """
    try:
        builder = STACKS[name]
    except KeyError:
        raise StackGraphError(f"Unknown stack '{name}' (known: {', '.join(STACKS)})") from None
    return builder(settings)


__all__ = ["STACKS", "Stack", "StackBuilder", "build_stack"]
