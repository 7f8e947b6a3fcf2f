"""Workshop cluster: a DigitalOcean Kubernetes cluster sized for the agent platform."""

from __future__ import annotations

from stackgraph.engine.outputs import Output
from stackgraph.models.resources import ClusterSpec, Ref, resource
from stackgraph.settings import StackSettings
from stackgraph.stacks.base import Stack

CLUSTER_NAME = "cfgmgmtcamp-2026"


def build(settings: StackSettings) -> Stack:
    cluster = resource(
        "workshop-cluster",
        ClusterSpec(
            cluster_name=CLUSTER_NAME,
            region=settings.get("region", "fra1"),
            node_size=settings.get("nodeSize", "s-4vcpu-8gb"),
            node_count=settings.get_int("nodeCount", 2),
            version_prefix=settings.get("k8sVersion", "1.34"),
            labels={"workshop": CLUSTER_NAME, "purpose": "agentic-ai"},
            tags=("cfgmgmtcamp", "workshop", "2026"),
        ),
    )
    return Stack(
        name="cluster",
        description="Managed Kubernetes cluster for the workshop",
        resources=[cluster],
        outputs=[
            Output("clusterName", Ref("workshop-cluster", "name")),
            Output("clusterEndpoint", Ref("workshop-cluster", "endpoint")),
            Output("clusterUrn", Ref("workshop-cluster", "urn")),
            Output("kubeconfig", Ref("workshop-cluster", "kubeconfig"), secret=True),
        ],
    )
