"""Stack outputs.

An Output is computed after the executor returns, from the final results of
the resources it depends on.  Outputs whose dependencies did not succeed are
withheld with a reason; they never abort the run.  Secret outputs, and
outputs derived from any secret value, are stored as SecretValue.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from stackgraph.errors import DependencyFailed
from stackgraph.graph.references import extract_references, resolve_references
from stackgraph.models.results import OutputValue, ResourceResult, ResourceStatus, WithheldOutput
from stackgraph.secrets import SecretValue, contains_secret, reveal_all

_log = structlog.get_logger(component="engine.outputs")

OutputFn = Callable[[Mapping[str, Mapping[str, Any]]], Any]


@dataclass(frozen=True)
class Output:
    """A declared stack output.

    ``value`` is a literal, a ``Ref``, a string with ``${resource.attr}``
    references, a nested structure of those, or a callable receiving the
    attributes of every succeeded resource.  A callable must list the
    resources it reads in ``depends_on``.
    """

    name: str
    value: Any
    secret: bool = False
    depends_on: tuple[str, ...] = ()

    @property
    def dependencies(self) -> list[str]:
        names = set(self.depends_on)
        if not callable(self.value):
            names.update(ref.resource for ref in extract_references(self.value))
        return sorted(names)


class OutputExporter:
    """Computes declared outputs from a run's resource results."""

    def __init__(self, outputs: list[Output]) -> None:
        self._outputs = outputs

    def export(
        self,
        results: Mapping[str, ResourceResult],
    ) -> tuple[dict[str, OutputValue], list[WithheldOutput]]:
        """Return computed outputs and the ones withheld."""
        attributes = {
            name: result.attributes
            for name, result in results.items()
            if result.status == ResourceStatus.SUCCEEDED
        }
        computed: dict[str, OutputValue] = {}
        withheld: list[WithheldOutput] = []

        for output in self._outputs:
            try:
                computed[output.name] = self._compute(output, attributes)
            except DependencyFailed as exc:
                _log.warning("output_withheld", output=output.name, dependencies=exc.dependencies)
                withheld.append(WithheldOutput(name=output.name, reason=str(exc), dependencies=exc.dependencies))
            except (LookupError, TypeError, ValueError) as exc:
                _log.warning("output_computation_failed", output=output.name, error=repr(exc))
                withheld.append(WithheldOutput(name=output.name, reason=f"computation failed: {exc!r}"))
            else:
                _log.debug("output_computed", output=output.name, value=computed[output.name].display())
        return computed, withheld

    def _compute(
        self,
        output: Output,
        attributes: Mapping[str, Mapping[str, Any]],
    ) -> OutputValue:
        missing = [name for name in output.dependencies if name not in attributes]
        if missing:
            raise DependencyFailed(output.name, missing)

        if callable(output.value):
            value = output.value(attributes)
        else:
            value = resolve_references(output.value, attributes)

        secret = output.secret or contains_secret(value)
        if secret:
            value = SecretValue(reveal_all(value))
        return OutputValue(name=output.name, value=value, secret=secret)
