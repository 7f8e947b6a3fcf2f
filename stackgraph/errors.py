"""Exception hierarchy for stackgraph.

Graph and validation errors are raised before any operation runs.
Operation errors are local to one resource: the executor records them and
skips the resource's dependents instead of aborting the run.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from stackgraph.secrets import REDACTED, SecretValue

if TYPE_CHECKING:
    from stackgraph.models.results import RunReport


class StackGraphError(Exception):
    """Base class for every error raised by stackgraph."""


class SettingsError(StackGraphError):
    """A required stack setting is missing or malformed."""

    def __init__(self, key: str, message: str = "") -> None:
        super().__init__(message or f"Missing required setting '{key}'")
        self.key = key


class GraphError(StackGraphError):
    """The resource graph is invalid; nothing was executed."""


class DuplicateResourceError(GraphError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Resource name '{name}' is declared more than once")
        self.name = name


class CycleError(GraphError):
    """The dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}")
        self.cycle = cycle


class UnresolvedReferenceError(GraphError):
    """A resource depends on or references a name that is not declared."""

    def __init__(self, name: str, referenced_by: str) -> None:
        super().__init__(f"Resource '{referenced_by}' references undeclared resource '{name}'")
        self.name = name
        self.referenced_by = referenced_by


class ConfigValidationError(StackGraphError):
    """A descriptor's configuration failed validation at plan time."""

    def __init__(self, resource: str, message: str) -> None:
        super().__init__(f"Invalid configuration for '{resource}': {message}")
        self.resource = resource


class OperationFailed(StackGraphError):
    """A create/update/delete operation on one resource failed."""

    def __init__(self, resource: str, operation: str, message: str) -> None:
        super().__init__(f"{operation} of '{resource}' failed: {message}")
        self.resource = resource
        self.operation = operation
        self.message = message


class TransientOperationError(OperationFailed):
    """A failure worth retrying (rate limit, 5xx, dropped connection)."""


class ParseError(OperationFailed):
    """Structured output of an operation could not be decoded."""

    def __init__(self, resource: str, operation: str, raw_output: str | SecretValue[str], reason: str) -> None:
        shown = REDACTED if isinstance(raw_output, SecretValue) else raw_output
        super().__init__(resource, operation, f"could not parse output ({reason}): {shown!r}")
        self.raw_output = raw_output
        self.reason = reason


class DependencyFailed(StackGraphError):
    """An output could not be computed because a dependency did not succeed."""

    def __init__(self, output: str, dependencies: list[str]) -> None:
        super().__init__(f"Output '{output}' withheld: dependencies not available: {', '.join(dependencies)}")
        self.output = output
        self.dependencies = dependencies


class PartialFailure(StackGraphError):
    """Summary condition of a run where at least one resource did not succeed."""

    def __init__(self, report: RunReport) -> None:
        failed = [r.name for r in report.failed]
        skipped = [r.name for r in report.skipped]
        super().__init__(
            f"{report.operation} of stack '{report.stack}' finished with failures: "
            f"failed={failed} skipped={skipped}"
        )
        self.report = report
