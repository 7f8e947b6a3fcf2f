"""Execution engine: plans, the topological executor and the output exporter."""

from stackgraph.engine.executor import TopologicalExecutor
from stackgraph.engine.outputs import Output, OutputExporter
from stackgraph.engine.plan import ExecutionPlan, PlannedOperation, build_apply_plan, build_destroy_plan

__all__ = [
    "ExecutionPlan",
    "Output",
    "OutputExporter",
    "PlannedOperation",
    "TopologicalExecutor",
    "build_apply_plan",
    "build_destroy_plan",
]
