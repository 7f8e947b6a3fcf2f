"""Application wiring for stackgraph.

One run goes through the same pipeline for every command:
settings → stack builder → dependency graph → plan → executor → outputs →
state store → report.

Graph, settings and configuration errors surface before any provider is
called.  Provider failures never escape: they are recorded per resource in
the RunReport, and the state file is saved even for partial runs so a later
destroy knows what exists.
"""

from __future__ import annotations

import asyncio
import signal
import uuid
from datetime import UTC, datetime

import structlog

from stackgraph.config import load_config
from stackgraph.engine.executor import TopologicalExecutor
from stackgraph.engine.outputs import OutputExporter
from stackgraph.engine.plan import ExecutionPlan, build_apply_plan, build_destroy_plan
from stackgraph.errors import UnresolvedReferenceError
from stackgraph.graph.dependency_graph import DependencyGraph
from stackgraph.models.config import StackGraphConfig
from stackgraph.models.results import OutputValue, RunReport
from stackgraph.observability.logging import get_logger, setup_logging
from stackgraph.providers import build_provider_registry
from stackgraph.providers.base import ProviderRegistry
from stackgraph.settings import StackSettings
from stackgraph.stacks import Stack, build_stack
from stackgraph.state.store import StackState, StateStore


class StackGraphApp:
    """Application root.  Owns the configuration, the providers and the state store.

    ``registry`` and ``store`` may be injected; otherwise they are built
    from configuration on first use.  ``close()`` is safe to call repeatedly.
    """

    def __init__(
        self,
        config: StackGraphConfig | None = None,
        settings: StackSettings | None = None,
        registry: ProviderRegistry | None = None,
        store: StateStore | None = None,
    ) -> None:
        self.config = config or load_config()
        self.settings = settings or StackSettings.from_env()
        self._registry = registry
        self._store = store or StateStore(self.config.state.directory)
        self._executor: TopologicalExecutor | None = None
        self._cancel_requested = False
        self._log = get_logger("app")

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def registry(self) -> ProviderRegistry:
        if self._registry is None:
            self._registry = build_provider_registry(
                self.config,
                do_token=self.settings.get_secret("digitalocean:token"),
            )
        return self._registry

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def stack(self, name: str) -> Stack:
        return build_stack(name, self.settings)

    def preview(self, name: str, destroy: bool = False, all_resources: bool = False) -> ExecutionPlan:
        """Plan a run without calling any provider."""
        stack = self.stack(name)
        return self._plan(stack, self._store.load(stack.name), destroy, all_resources)

    def _plan(self, stack: Stack, state: StackState, destroy: bool, all_resources: bool) -> ExecutionPlan:
        graph = DependencyGraph(stack.resources)
        for output in stack.outputs:
            for dependency in output.dependencies:
                if dependency not in graph:
                    raise UnresolvedReferenceError(dependency, referenced_by=f"output {output.name}")
        if destroy:
            return build_destroy_plan(stack.name, graph, self._destroy_targets(graph, state, all_resources))
        return build_apply_plan(stack.name, graph, existing=state.resources.keys())

    def _destroy_targets(self, graph: DependencyGraph, state: StackState, all_resources: bool) -> list[str] | None:
        if all_resources:
            return None
        unknown = sorted(set(state.resources) - set(graph.names))
        if unknown:
            self._log.warning("state_resources_not_declared", stack=state.stack, resources=unknown)
        return [name for name in graph.names if name in state.resources]

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def up(self, name: str) -> RunReport:
        """Create or update every resource of the stack, then export its outputs."""
        stack = self.stack(name)
        state = self._store.load(stack.name)
        plan = self._plan(stack, state, destroy=False, all_resources=False)
        orphaned = sorted(set(state.resources) - set(plan.order))
        if orphaned:
            self._log.warning("state_resources_not_declared", stack=stack.name, resources=orphaned)
        return await self._run(stack, plan, state)

    async def destroy(self, name: str, all_resources: bool = False) -> RunReport:
        """Delete the stack's resources in reverse dependency order.

        Only resources recorded in state are deleted unless *all_resources*
        is set, in which case every declared resource is deleted.
        """
        stack = self.stack(name)
        state = self._store.load(stack.name)
        plan = self._plan(stack, state, destroy=True, all_resources=all_resources)
        return await self._run(stack, plan, state)

    def outputs(self, name: str) -> dict[str, OutputValue]:
        """Latest recorded value of each output, kept across failed or partial ``up`` runs."""
        return self._store.load(name).outputs

    async def _run(self, stack: Stack, plan: ExecutionPlan, state: StackState) -> RunReport:
        operation = "destroy" if plan.destroy else "apply"
        report = RunReport(stack=stack.name, operation=operation)
        executor = TopologicalExecutor(self.registry, self.config.executor)
        self._executor = executor
        if self._cancel_requested:
            executor.cancel()

        with structlog.contextvars.bound_contextvars(stack=stack.name, run_id=uuid.uuid4().hex[:12]):
            self._log.info("stack_run_started", operation=operation, batches=plan.describe())
            try:
                report.results = await executor.run(plan, prior=state.attributes())
            finally:
                self._executor = None

            if not plan.destroy:
                report.outputs, report.withheld = OutputExporter(stack.outputs).export(report.results)
            report.cancelled = executor.cancelled
            report.finished_at = datetime.now(tz=UTC)

            state.record(report, declared=[output.name for output in stack.outputs])
            path = self._store.save(state)
            self._log.info("stack_run_finished", state_file=str(path), **report.summary())
        return report

    def cancel(self) -> None:
        """Ask the running executor to stop starting new operations."""
        self._cancel_requested = True
        if self._executor is not None:
            self._executor.cancel()

    async def close(self) -> None:
        if self._registry is not None:
            await self._registry.close()


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def run_command(app: StackGraphApp, command: str, stack: str, all_resources: bool = False) -> RunReport:
    """Run ``up`` or ``destroy`` with SIGINT/SIGTERM wired to cancellation."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, app.cancel)
    try:
        if command == "destroy":
            return await app.destroy(stack, all_resources=all_resources)
        return await app.up(stack)
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)
        await app.close()


def create_app(settings: StackSettings | None = None) -> StackGraphApp:
    """Load configuration, set up logging and build the application."""
    config = load_config()
    setup_logging(config.log.level)
    return StackGraphApp(config=config, settings=settings)
