"""Resource descriptors and their per-kind configuration variants."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

from stackgraph.errors import ConfigValidationError

# RFC 1123 label: what Kubernetes accepts for namespace/object names
_RE_DNS_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_RE_VERSION_PREFIX = re.compile(r"^[0-9]+(\.[0-9]+)*$")


class ResourceKind(StrEnum):
    """Kinds of desired-state resources a stack can declare."""

    CLUSTER = "Cluster"
    NAMESPACE = "Namespace"
    SECRET = "Secret"
    HELM_RELEASE = "HelmRelease"
    CUSTOM_RESOURCE = "CustomResource"
    DEPLOYMENT = "Deployment"
    SHELL_COMMAND = "ShellCommand"


@dataclass(frozen=True)
class Ref:
    """Reference to an attribute of another resource's result.

    ``attribute`` is a dotted path into the result attributes, e.g.
    ``Ref("kagent-ns", "name")`` or ``Ref("model-key", "json.api_key_info.uuid")``.
    """

    resource: str
    attribute: str = "name"

    def __str__(self) -> str:
        return f"${{{self.resource}.{self.attribute}}}"


def _require_label(resource: str, field_name: str, value: object) -> None:
    if isinstance(value, Ref):
        return
    if not isinstance(value, str) or not _RE_DNS_LABEL.match(value):
        raise ConfigValidationError(resource, f"{field_name} must be a DNS-1123 label, got {value!r}")


class ResourceSpec:
    """Base class for per-kind configuration variants."""

    kind: ClassVar[ResourceKind]

    def validate(self, resource: str) -> None:
        """Raise ConfigValidationError if the configuration is unusable."""


@dataclass(frozen=True)
class ClusterSpec(ResourceSpec):
    """Managed Kubernetes cluster."""

    kind: ClassVar[ResourceKind] = ResourceKind.CLUSTER

    cluster_name: str
    region: str
    node_size: str
    node_count: int = 2
    version_prefix: str = ""
    node_pool_name: str = "default-pool"
    labels: dict[str, str] = field(default_factory=dict)
    tags: tuple[str, ...] = ()

    def validate(self, resource: str) -> None:
        _require_label(resource, "cluster_name", self.cluster_name)
        if not self.region:
            raise ConfigValidationError(resource, "region must not be empty")
        if not self.node_size:
            raise ConfigValidationError(resource, "node_size must not be empty")
        if self.node_count < 1:
            raise ConfigValidationError(resource, f"node_count must be >= 1, got {self.node_count}")
        if self.version_prefix and not _RE_VERSION_PREFIX.match(self.version_prefix):
            raise ConfigValidationError(resource, f"invalid version_prefix {self.version_prefix!r}")


@dataclass(frozen=True)
class NamespaceSpec(ResourceSpec):
    kind: ClassVar[ResourceKind] = ResourceKind.NAMESPACE

    namespace: str
    labels: dict[str, str] = field(default_factory=dict)

    def validate(self, resource: str) -> None:
        _require_label(resource, "namespace", self.namespace)


@dataclass(frozen=True)
class SecretSpec(ResourceSpec):
    """Opaque Kubernetes Secret populated from ``string_data``."""

    kind: ClassVar[ResourceKind] = ResourceKind.SECRET

    secret_name: str
    namespace: str | Ref
    string_data: dict[str, Any] = field(default_factory=dict)
    type: str = "Opaque"

    def validate(self, resource: str) -> None:
        _require_label(resource, "secret_name", self.secret_name)
        _require_label(resource, "namespace", self.namespace)
        if not self.string_data:
            raise ConfigValidationError(resource, "string_data must not be empty")


@dataclass(frozen=True)
class HelmReleaseSpec(ResourceSpec):
    """A chart installed with upsert semantics (``helm upgrade --install``)."""

    kind: ClassVar[ResourceKind] = ResourceKind.HELM_RELEASE

    chart: str
    namespace: str | Ref
    version: str = ""
    values: dict[str, Any] = field(default_factory=dict)
    repository: str = ""
    release_name: str = ""
    timeout: int = 600

    def validate(self, resource: str) -> None:
        if not self.chart:
            raise ConfigValidationError(resource, "chart must not be empty")
        if self.chart.startswith("oci://") and self.repository:
            raise ConfigValidationError(resource, "repository cannot be combined with an oci:// chart")
        _require_label(resource, "namespace", self.namespace)
        if self.release_name:
            _require_label(resource, "release_name", self.release_name)
        if self.timeout <= 0:
            raise ConfigValidationError(resource, "timeout must be positive")


@dataclass(frozen=True)
class CustomResourceSpec(ResourceSpec):
    """A typed custom object, keyed by (apiVersion, kind, namespace, name)."""

    kind: ClassVar[ResourceKind] = ResourceKind.CUSTOM_RESOURCE

    api_version: str
    resource_kind: str
    resource_name: str
    namespace: str | Ref
    spec: dict[str, Any] = field(default_factory=dict)
    plural: str = ""

    @property
    def group(self) -> str:
        return self.api_version.partition("/")[0]

    @property
    def group_version(self) -> str:
        return self.api_version.partition("/")[2]

    @property
    def resource_plural(self) -> str:
        return self.plural or f"{self.resource_kind.lower()}s"

    def validate(self, resource: str) -> None:
        group, sep, version = self.api_version.partition("/")
        if not sep or not group or not version:
            raise ConfigValidationError(resource, f"api_version must be 'group/version', got {self.api_version!r}")
        if not self.resource_kind:
            raise ConfigValidationError(resource, "resource_kind must not be empty")
        _require_label(resource, "resource_name", self.resource_name)
        _require_label(resource, "namespace", self.namespace)


@dataclass(frozen=True)
class DeploymentSpec(ResourceSpec):
    kind: ClassVar[ResourceKind] = ResourceKind.DEPLOYMENT

    deployment_name: str
    namespace: str | Ref
    spec: dict[str, Any] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    wait_ready: bool = True
    timeout: int = 300

    def validate(self, resource: str) -> None:
        _require_label(resource, "deployment_name", self.deployment_name)
        _require_label(resource, "namespace", self.namespace)
        if "template" not in self.spec:
            raise ConfigValidationError(resource, "spec.template is required")
        if self.timeout <= 0:
            raise ConfigValidationError(resource, "timeout must be positive")


@dataclass(frozen=True)
class ShellCommandSpec(ResourceSpec):
    """A pair of imperative commands managed as one resource.

    ``environment`` values may be SecretValues; they are passed to the
    commands through the process environment and never through argv.
    ``create`` and ``delete`` become SecretValues when they interpolate a
    secret reference.
    """

    kind: ClassVar[ResourceKind] = ResourceKind.SHELL_COMMAND

    create: str
    delete: str = ""
    environment: dict[str, Any] = field(default_factory=dict)
    parse_json: bool = False
    secret_outputs: bool = False
    timeout: int = 120

    def validate(self, resource: str) -> None:
        if not self.create.strip():
            raise ConfigValidationError(resource, "create command must not be empty")
        if self.timeout <= 0:
            raise ConfigValidationError(resource, "timeout must be positive")


@dataclass(frozen=True)
class ResourceDescriptor:
    """Immutable declaration of one desired-state resource.

    ``depends_on`` lists logical names only; implicit dependencies are
    inferred from ``Ref`` objects and ``${name.attr}`` strings in ``config``.
    ``retryable`` overrides the provider's idempotence flag when set.
    """

    kind: ResourceKind
    name: str
    config: ResourceSpec
    depends_on: frozenset[str] = frozenset()
    retryable: bool | None = None

    def __post_init__(self) -> None:
        # Accept any iterable of names for convenience
        if not isinstance(self.depends_on, frozenset):
            object.__setattr__(self, "depends_on", frozenset(self.depends_on))

    def validate(self) -> None:
        if not self.name:
            raise ConfigValidationError("<unnamed>", "resource name must not be empty")
        if self.config.kind != self.kind:
            raise ConfigValidationError(
                self.name,
                f"{type(self.config).__name__} cannot configure a {self.kind} resource",
            )
        self.config.validate(self.name)


def resource(name: str, config: ResourceSpec, depends_on: tuple[str, ...] = (), retryable: bool | None = None) -> ResourceDescriptor:
    """Build a descriptor whose kind is taken from its config variant."""
    return ResourceDescriptor(
        kind=config.kind,
        name=name,
        config=config,
        depends_on=frozenset(depends_on),
        retryable=retryable,
    )
