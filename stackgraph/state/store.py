"""JSON state files, one per stack.

State records the attributes each resource returned when it was last
created or updated, plus the stack outputs.  Destroy reads it to know what
exists and which identifiers to delete.  SecretValues are stored as
``{"__secret__": <value>}`` and come back wrapped; files are written
atomically with mode 0600.
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from stackgraph.errors import StackGraphError
from stackgraph.models.resources import ResourceKind
from stackgraph.models.results import Operation, OutputValue, ResourceStatus, RunReport
from stackgraph.secrets import SecretValue

_log = structlog.get_logger(component="state.store")

STATE_VERSION = 1
_SECRET_KEY = "__secret__"


@dataclass
class ResourceState:
    kind: ResourceKind
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class StackState:
    stack: str
    resources: dict[str, ResourceState] = field(default_factory=dict)
    outputs: dict[str, OutputValue] = field(default_factory=dict)
    updated_at: str = ""

    def attributes(self) -> dict[str, dict[str, Any]]:
        return {name: state.attributes for name, state in self.resources.items()}

    def record(self, report: RunReport, declared: Collection[str] | None = None) -> None:
        """Fold a finished run into this state.

        An apply replaces only the outputs it computed, so outputs withheld by
        a failed or partial run keep their last recorded value.  Outputs not
        in *declared* are dropped.
        """
        for result in report.results.values():
            if result.status != ResourceStatus.SUCCEEDED:
                continue
            if result.operation == Operation.DELETE:
                self.resources.pop(result.name, None)
            else:
                self.resources[result.name] = ResourceState(kind=result.kind, attributes=dict(result.attributes))
        if report.operation == "destroy":
            if not self.resources:
                self.outputs = {}
        else:
            self.outputs.update(report.outputs)
        if declared is not None:
            self.outputs = {name: value for name, value in self.outputs.items() if name in declared}
        self.updated_at = datetime.now(tz=UTC).isoformat()


def encode(value: Any) -> Any:
    """Make *value* JSON-serialisable, tagging secrets."""
    if isinstance(value, SecretValue):
        return {_SECRET_KEY: encode(value.reveal())}
    if isinstance(value, dict):
        return {str(k): encode(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [encode(v) for v in value]
    return value


def decode(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {_SECRET_KEY}:
            return SecretValue(decode(value[_SECRET_KEY]))
        return {k: decode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode(v) for v in value]
    return value


class StateStore:
    """Reads and writes ``<directory>/<stack>.json``."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def path(self, stack: str) -> Path:
        return self._directory / f"{stack}.json"

    def load(self, stack: str) -> StackState:
        path = self.path(stack)
        if not path.exists():
            return StackState(stack=stack)
        with path.open(encoding="utf-8") as handle:
            raw = json.load(handle)
        if raw.get("version") != STATE_VERSION:
            raise StackGraphError(f"Unsupported state version {raw.get('version')!r} in {path}")
        return StackState(
            stack=stack,
            resources={
                name: ResourceState(kind=ResourceKind(entry["kind"]), attributes=decode(entry.get("attributes", {})))
                for name, entry in raw.get("resources", {}).items()
            },
            outputs={
                name: OutputValue(name=name, value=decode(entry["value"]), secret=bool(entry.get("secret")))
                for name, entry in raw.get("outputs", {}).items()
            },
            updated_at=raw.get("updated_at", ""),
        )

    def save(self, state: StackState) -> Path:
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self.path(state.stack)
        payload = {
            "version": STATE_VERSION,
            "stack": state.stack,
            "updated_at": state.updated_at,
            "resources": {
                name: {"kind": entry.kind.value, "attributes": encode(entry.attributes)}
                for name, entry in state.resources.items()
            },
            "outputs": {
                name: {"value": encode(out.value), "secret": out.secret} for name, out in state.outputs.items()
            },
        }
        fd, tmp = tempfile.mkstemp(dir=self._directory, prefix=f".{state.stack}-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=True)
            os.replace(tmp, path)
        except BaseException:
            os.unlink(tmp)
            raise
        _log.debug("state_saved", stack=state.stack, resources=len(state.resources), path=str(path))
        return path
