"""Shared fixtures: an in-memory cloud with one fake provider per resource kind.

The fake providers keep the attribute shapes of the real ones so stacks,
outputs and the state store can be exercised end to end without a cluster,
helm or the DigitalOcean API.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import pytest

from stackgraph.app import StackGraphApp
from stackgraph.errors import OperationFailed
from stackgraph.models.config import ExecutorConfig, StackGraphConfig, StateConfig
from stackgraph.models.resources import ResourceDescriptor, ResourceKind
from stackgraph.providers.base import ProviderRegistry, ResourceProvider
from stackgraph.secrets import SecretValue
from stackgraph.settings import StackSettings

WORKSHOP_SETTINGS = {
    "digitalocean:token": "dop_v1_test",
    "llmApiKey": "sk-do-test",
    "pulumiAccessToken": "pul-test",
    "pulumiOrg": "workshop-org",
}

MODEL_KEY_RESPONSE = {"api_key_info": {"uuid": "key-uuid-1", "name": "cfgmgmtcamp", "secret_key": "sk-live-123"}}


class FakeCloud:
    """Tracks which resources exist and every provider call, in call order."""

    def __init__(self, fail: Iterable[str] = ()) -> None:
        self.fail = set(fail)
        self.existing: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self.configs: dict[str, Any] = {}
        self.priors: dict[str, dict[str, Any] | None] = {}

    def registry(self) -> ProviderRegistry:
        return ProviderRegistry([FakeProvider(kind, self) for kind in ResourceKind])

    def names(self, operation: str) -> list[str]:
        return [name for op, name in self.calls if op == operation]


def _attributes(kind: ResourceKind, descriptor: ResourceDescriptor, config: Any) -> dict[str, Any]:
    if kind == ResourceKind.CLUSTER:
        return {
            "id": "c-1",
            "name": config.cluster_name,
            "endpoint": "https://c-1.k8s.example",
            "urn": "do:kubernetes:c-1",
            "kubeconfig": SecretValue("apiVersion: v1\n"),
        }
    if kind == ResourceKind.NAMESPACE:
        return {"name": config.namespace, "uid": f"uid-{config.namespace}"}
    if kind == ResourceKind.SECRET:
        return {"name": config.secret_name, "namespace": config.namespace, "keys": sorted(config.string_data)}
    if kind == ResourceKind.HELM_RELEASE:
        return {
            "name": config.release_name or descriptor.name,
            "namespace": config.namespace,
            "chart": config.chart,
            "version": config.version,
            "revision": 1,
            "status": "deployed",
        }
    if kind == ResourceKind.CUSTOM_RESOURCE:
        return {"name": config.resource_name, "namespace": config.namespace, "kind": config.resource_kind}
    if kind == ResourceKind.DEPLOYMENT:
        return {"name": config.deployment_name, "namespace": config.namespace, "ready_replicas": 0}
    stdout = json.dumps(MODEL_KEY_RESPONSE)
    attrs: dict[str, Any] = {"stdout": stdout, "json": MODEL_KEY_RESPONSE}
    if config.secret_outputs:
        attrs = {key: SecretValue(value) for key, value in attrs.items()}
    return attrs


class FakeProvider(ResourceProvider):
    """Provider for one kind, backed by a shared FakeCloud."""

    def __init__(self, kind: ResourceKind, cloud: FakeCloud) -> None:
        self._kind = kind
        self._cloud = cloud

    @property
    def kind(self) -> ResourceKind:
        return self._kind

    def _record(self, descriptor: ResourceDescriptor, operation: str, config: Any) -> None:
        self._cloud.calls.append((operation, descriptor.name))
        self._cloud.configs[descriptor.name] = config
        if descriptor.name in self._cloud.fail:
            raise OperationFailed(descriptor.name, operation, "simulated outage")

    async def create(self, descriptor: ResourceDescriptor, config: Any) -> dict[str, Any]:
        self._record(descriptor, "create", config)
        attrs = _attributes(self._kind, descriptor, config)
        self._cloud.existing[descriptor.name] = attrs
        return attrs

    async def update(self, descriptor: ResourceDescriptor, config: Any, prior: dict[str, Any]) -> dict[str, Any]:
        self._record(descriptor, "update", config)
        self._cloud.priors[descriptor.name] = prior
        attrs = _attributes(self._kind, descriptor, config)
        self._cloud.existing[descriptor.name] = attrs
        return attrs

    async def delete(self, descriptor: ResourceDescriptor, config: Any, prior: dict[str, Any] | None) -> None:
        self._record(descriptor, "delete", config)
        self._cloud.priors[descriptor.name] = prior
        self._cloud.existing.pop(descriptor.name, None)


@pytest.fixture
def cloud() -> FakeCloud:
    return FakeCloud()


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    return tmp_path / "state"


@pytest.fixture
def make_app(cloud: FakeCloud, state_dir: Path) -> Callable[..., StackGraphApp]:
    """Factory for a StackGraphApp wired to the fake cloud and a temporary state directory."""

    def _make(settings: dict[str, str] | None = None) -> StackGraphApp:
        config = StackGraphConfig(
            executor=ExecutorConfig(max_workers=4, max_attempts=2, backoff_min=0.0, backoff_max=0.0),
            state=StateConfig(directory=str(state_dir)),
        )
        return StackGraphApp(
            config=config,
            settings=StackSettings(WORKSHOP_SETTINGS if settings is None else settings),
            registry=cloud.registry(),
        )

    return _make
