"""Provider interface: one adapter per resource kind.

A provider turns a resolved resource configuration into calls against an
external system and returns the resource's result attributes.  Providers
raise ``OperationFailed`` (or a subclass) on failure; the executor records
the failure and skips dependents.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from stackgraph.models.resources import ResourceDescriptor, ResourceKind, ResourceSpec


class ResourceProvider(ABC):
    """Abstract base class for every resource provider.

    ``idempotent`` marks operations that are safe to retry after a
    ``TransientOperationError``; non-idempotent providers are attempted once.
    """

    idempotent: bool = True

    @property
    @abstractmethod
    def kind(self) -> ResourceKind:
        """The resource kind this provider manages."""

    @abstractmethod
    async def create(self, descriptor: ResourceDescriptor, config: ResourceSpec) -> dict[str, Any]:
        """Create the resource and return its attributes."""

    async def update(
        self,
        descriptor: ResourceDescriptor,
        config: ResourceSpec,
        prior: dict[str, Any],
    ) -> dict[str, Any]:
        """Update the resource.  Defaults to create, for upsert-style APIs."""
        return await self.create(descriptor, config)

    @abstractmethod
    async def delete(
        self,
        descriptor: ResourceDescriptor,
        config: ResourceSpec,
        prior: dict[str, Any] | None,
    ) -> None:
        """Delete the resource.  Must succeed if it is already absent."""

    async def close(self) -> None:  # noqa: B027
        """Release clients and connection pools."""


class ProviderRegistry:
    """Maps each resource kind to its provider."""

    def __init__(self, providers: list[ResourceProvider] | None = None) -> None:
        self._providers: dict[ResourceKind, ResourceProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: ResourceProvider) -> None:
        self._providers[provider.kind] = provider

    def get(self, kind: ResourceKind) -> ResourceProvider:
        try:
            return self._providers[kind]
        except KeyError:
            raise LookupError(f"No provider registered for resource kind '{kind}'") from None

    def __contains__(self, kind: object) -> bool:
        return kind in self._providers

    async def close(self) -> None:
        for provider in {id(p): p for p in self._providers.values()}.values():
            await provider.close()
