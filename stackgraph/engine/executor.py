"""Topological executor.

Runs the operations of a frozen ExecutionPlan on a bounded worker pool:

* an operation starts only after everything it waits for has succeeded;
* when an operation fails, every operation waiting on it (transitively) is
  reported ``skipped`` while independent branches keep running;
* idempotent operations are retried with exponential backoff on
  ``TransientOperationError``; everything else is attempted once;
* ``cancel()`` prevents new operations from starting, in-flight ones finish.

Each resource's result slot is written exactly once, by the task that owns
the resource, followed by setting that resource's completion event.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from typing import Any

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from stackgraph.engine.plan import ExecutionPlan, PlannedOperation
from stackgraph.errors import OperationFailed, TransientOperationError
from stackgraph.graph.references import resolve_references
from stackgraph.models.config import ExecutorConfig
from stackgraph.models.results import Operation, ResourceResult, ResourceStatus
from stackgraph.providers.base import ProviderRegistry, ResourceProvider

_log = structlog.get_logger(component="engine.executor")


class TopologicalExecutor:
    """Executes an ExecutionPlan respecting its dependency order."""

    def __init__(self, registry: ProviderRegistry, config: ExecutorConfig | None = None) -> None:
        self._registry = registry
        self._config = config or ExecutorConfig()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop starting new operations.  Operations already running finish."""
        if not self._cancelled:
            _log.warning("run_cancel_requested")
        self._cancelled = True

    async def run(
        self,
        plan: ExecutionPlan,
        prior: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> dict[str, ResourceResult]:
        """Execute *plan* and return one result per planned resource.

        Args:
            plan:  Frozen plan to execute.
            prior: Attributes recorded by a previous run, keyed by resource
                   name.  Used for updates, deletes, and resolving references
                   to resources that are not part of this plan.
        """
        prior = prior or {}
        results: dict[str, ResourceResult] = {}
        done: dict[str, asyncio.Event] = {op.name: asyncio.Event() for op in plan}
        workers = asyncio.Semaphore(self._config.max_workers)

        _log.info(
            "run_started",
            stack=plan.stack,
            destroy=plan.destroy,
            resources=len(plan),
            max_workers=self._config.max_workers,
        )

        async def _owner(op: PlannedOperation) -> None:
            # A result is always recorded, even if this task is cancelled
            result = _skipped(op, "execution interrupted")
            try:
                result = await self._execute(op, results, done, workers, prior)
            finally:
                results[op.name] = result
                done[op.name].set()

        await asyncio.gather(*(_owner(op) for op in plan))

        ordered = {name: results[name] for name in plan.order}
        _log.info(
            "run_finished",
            stack=plan.stack,
            destroy=plan.destroy,
            succeeded=sum(1 for r in ordered.values() if r.status == ResourceStatus.SUCCEEDED),
            failed=sum(1 for r in ordered.values() if r.status == ResourceStatus.FAILED),
            skipped=sum(1 for r in ordered.values() if r.status == ResourceStatus.SKIPPED),
            cancelled=self._cancelled,
        )
        return ordered

    async def _execute(
        self,
        op: PlannedOperation,
        results: dict[str, ResourceResult],
        done: dict[str, asyncio.Event],
        workers: asyncio.Semaphore,
        prior: Mapping[str, Mapping[str, Any]],
    ) -> ResourceResult:
        for name in sorted(op.waits_for):
            await done[name].wait()

        if self._cancelled:
            _log.info("operation_skipped", resource=op.name, operation=op.operation, reason="cancelled")
            return _skipped(op, "cancelled")

        blocked = sorted(name for name in op.waits_for if results[name].status != ResourceStatus.SUCCEEDED)
        if blocked:
            _log.info("operation_skipped", resource=op.name, operation=op.operation, blocked_by=blocked)
            return _skipped(op, f"blocked by {', '.join(blocked)}")

        async with workers:
            # Cancelled while queued for a worker
            if self._cancelled:
                _log.info("operation_skipped", resource=op.name, operation=op.operation, reason="cancelled")
                return _skipped(op, "cancelled")
            return await self._run_operation(op, results, prior)

    async def _run_operation(
        self,
        op: PlannedOperation,
        results: Mapping[str, ResourceResult],
        prior: Mapping[str, Mapping[str, Any]],
    ) -> ResourceResult:
        descriptor = op.descriptor
        started = time.monotonic()
        attempts = 0

        try:
            provider = self._registry.get(descriptor.kind)
            config = resolve_references(descriptor.config, _attribute_view(results, prior))
        except (LookupError, TypeError) as exc:
            return _failed(op, f"cannot prepare operation: {exc!r}", attempts, started)

        retryable = provider.idempotent if descriptor.retryable is None else descriptor.retryable
        max_attempts = self._config.max_attempts if retryable else 1

        _log.info("operation_started", resource=descriptor.name, kind=descriptor.kind, operation=op.operation)
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(TransientOperationError),
                stop=stop_after_attempt(max_attempts),
                wait=wait_exponential(
                    multiplier=self._config.backoff_min,
                    min=self._config.backoff_min,
                    max=self._config.backoff_max,
                ),
                before_sleep=_log_retry,
                reraise=True,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    attributes = await self._call(provider, op, config, prior.get(descriptor.name))
        except OperationFailed as exc:
            _log.error(
                "operation_failed",
                resource=descriptor.name,
                operation=op.operation,
                attempts=attempts,
                error=str(exc),
            )
            return _failed(op, str(exc), attempts, started)
        except Exception as exc:  # noqa: BLE001
            _log.error(
                "operation_unexpected_error",
                resource=descriptor.name,
                operation=op.operation,
                attempts=attempts,
                error=repr(exc),
            )
            return _failed(op, f"unexpected error: {exc!r}", attempts, started)

        duration_ms = (time.monotonic() - started) * 1000
        _log.info(
            "operation_succeeded",
            resource=descriptor.name,
            operation=op.operation,
            attempts=attempts,
            duration_ms=round(duration_ms, 1),
        )
        return ResourceResult(
            name=descriptor.name,
            kind=descriptor.kind,
            operation=op.operation,
            status=ResourceStatus.SUCCEEDED,
            attributes=attributes,
            attempts=attempts,
            duration_ms=duration_ms,
        )

    async def _call(
        self,
        provider: ResourceProvider,
        op: PlannedOperation,
        config: Any,
        prior: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        if op.operation == Operation.CREATE:
            return dict(await provider.create(op.descriptor, config))
        if op.operation == Operation.UPDATE:
            return dict(await provider.update(op.descriptor, config, dict(prior or {})))
        await provider.delete(op.descriptor, config, dict(prior) if prior is not None else None)
        return {}


def _attribute_view(
    results: Mapping[str, ResourceResult],
    prior: Mapping[str, Mapping[str, Any]],
) -> dict[str, Mapping[str, Any]]:
    """Attributes visible to reference resolution: this run's successes over prior state."""
    view: dict[str, Mapping[str, Any]] = dict(prior)
    for name, result in results.items():
        if result.status == ResourceStatus.SUCCEEDED and result.operation != Operation.DELETE:
            view[name] = result.attributes
    return view


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    _log.warning(
        "operation_retrying",
        attempt=retry_state.attempt_number,
        error=str(exc),
        sleep_seconds=round(retry_state.next_action.sleep, 2) if retry_state.next_action else 0,
    )


def _skipped(op: PlannedOperation, reason: str) -> ResourceResult:
    return ResourceResult(
        name=op.name,
        kind=op.descriptor.kind,
        operation=op.operation,
        status=ResourceStatus.SKIPPED,
        error=reason,
    )


def _failed(op: PlannedOperation, error: str, attempts: int, started: float) -> ResourceResult:
    return ResourceResult(
        name=op.name,
        kind=op.descriptor.kind,
        operation=op.operation,
        status=ResourceStatus.FAILED,
        error=error,
        attempts=attempts,
        duration_ms=(time.monotonic() - started) * 1000,
    )
