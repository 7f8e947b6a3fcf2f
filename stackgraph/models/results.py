"""Execution results and the run report."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from stackgraph.models.resources import ResourceKind
from stackgraph.secrets import redact


class Operation(StrEnum):
    """Operation applied to a resource."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ResourceStatus(StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunStatus(StrEnum):
    SUCCEEDED = "succeeded"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ResourceResult:
    """Final outcome of one resource's operation.  Written exactly once."""

    name: str
    kind: ResourceKind
    operation: Operation
    status: ResourceStatus
    attributes: dict[str, Any] = field(default_factory=dict)
    error: str = ""
    attempts: int = 0
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == ResourceStatus.SUCCEEDED


@dataclass(frozen=True)
class OutputValue:
    """A computed stack output."""

    name: str
    value: Any
    secret: bool = False

    def display(self) -> Any:
        """Value safe to print: secrets render as ``[secret]``."""
        return redact(self.value)


@dataclass(frozen=True)
class WithheldOutput:
    """An output that could not be computed."""

    name: str
    reason: str
    dependencies: list[str] = field(default_factory=list)


@dataclass
class RunReport:
    """Structured summary of one apply or destroy run."""

    stack: str
    operation: str
    results: dict[str, ResourceResult] = field(default_factory=dict)
    outputs: dict[str, OutputValue] = field(default_factory=dict)
    withheld: list[WithheldOutput] = field(default_factory=list)
    cancelled: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    finished_at: datetime | None = None

    def _with_status(self, status: ResourceStatus) -> list[ResourceResult]:
        return [r for r in self.results.values() if r.status == status]

    @property
    def succeeded(self) -> list[ResourceResult]:
        return self._with_status(ResourceStatus.SUCCEEDED)

    @property
    def failed(self) -> list[ResourceResult]:
        return self._with_status(ResourceStatus.FAILED)

    @property
    def skipped(self) -> list[ResourceResult]:
        return self._with_status(ResourceStatus.SKIPPED)

    @property
    def status(self) -> RunStatus:
        if self.cancelled:
            return RunStatus.CANCELLED
        if not self.failed and not self.skipped:
            return RunStatus.SUCCEEDED
        if self.succeeded:
            return RunStatus.PARTIAL_FAILURE
        return RunStatus.FAILED

    def raise_for_status(self) -> None:
        """Raise PartialFailure unless every resource succeeded."""
        from stackgraph.errors import PartialFailure

        if self.status != RunStatus.SUCCEEDED:
            raise PartialFailure(self)

    def summary(self) -> dict[str, Any]:
        """Plain, log-safe dictionary of the run."""
        return {
            "stack": self.stack,
            "operation": self.operation,
            "status": self.status.value,
            "succeeded": [r.name for r in self.succeeded],
            "failed": {r.name: r.error for r in self.failed},
            "skipped": {r.name: r.error for r in self.skipped},
            "outputs": {name: out.display() for name, out in self.outputs.items()},
            "withheld_outputs": {w.name: w.reason for w in self.withheld},
        }
