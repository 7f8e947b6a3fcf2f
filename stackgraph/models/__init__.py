"""Core data structures for stackgraph."""

from stackgraph.models.config import StackGraphConfig
from stackgraph.models.resources import (
    ClusterSpec,
    CustomResourceSpec,
    DeploymentSpec,
    HelmReleaseSpec,
    NamespaceSpec,
    Ref,
    ResourceDescriptor,
    ResourceKind,
    ResourceSpec,
    SecretSpec,
    ShellCommandSpec,
    resource,
)
from stackgraph.models.results import (
    Operation,
    OutputValue,
    ResourceResult,
    ResourceStatus,
    RunReport,
    RunStatus,
    WithheldOutput,
)

__all__ = [
    "ClusterSpec",
    "CustomResourceSpec",
    "DeploymentSpec",
    "HelmReleaseSpec",
    "NamespaceSpec",
    "Operation",
    "OutputValue",
    "Ref",
    "ResourceDescriptor",
    "ResourceKind",
    "ResourceResult",
    "ResourceSpec",
    "ResourceStatus",
    "RunReport",
    "RunStatus",
    "SecretSpec",
    "ShellCommandSpec",
    "StackGraphConfig",
    "WithheldOutput",
    "resource",
]
