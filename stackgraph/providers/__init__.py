"""Resource providers: adapters between descriptors and external systems.

Exports:
    ResourceProvider      -- Abstract base for every provider.
    ProviderRegistry      -- Kind -> provider lookup used by the executor.
    ClusterProvider       -- DigitalOcean Kubernetes clusters over httpx.
    HelmReleaseProvider   -- Helm releases via the helm CLI.
    ShellCommandProvider  -- Create/delete command pairs.
    build_kubernetes_providers -- Namespace, Secret, CustomResource and
                                  Deployment providers over kubernetes-asyncio.
    build_provider_registry    -- Factory used by the application.
"""

from __future__ import annotations

from stackgraph.models.config import StackGraphConfig
from stackgraph.providers.base import ProviderRegistry, ResourceProvider
from stackgraph.providers.cluster import ClusterProvider
from stackgraph.providers.helm import HelmCli, HelmReleaseProvider
from stackgraph.providers.kubernetes import build_kubernetes_providers
from stackgraph.providers.shell import ShellCommandProvider
from stackgraph.secrets import SecretValue

__all__ = [
    "ClusterProvider",
    "HelmReleaseProvider",
    "ProviderRegistry",
    "ResourceProvider",
    "ShellCommandProvider",
    "build_kubernetes_providers",
    "build_provider_registry",
]


def build_provider_registry(
    config: StackGraphConfig,
    do_token: SecretValue[str] | None = None,
) -> ProviderRegistry:
    """Build a registry with a provider for every resource kind."""
    registry = ProviderRegistry(
        [
            ClusterProvider(config=config.digitalocean, token=do_token),
            HelmReleaseProvider(HelmCli(config.helm)),
            ShellCommandProvider(config.shell),
        ]
    )
    for provider in build_kubernetes_providers(config.kubernetes):
        registry.register(provider)
    return registry
