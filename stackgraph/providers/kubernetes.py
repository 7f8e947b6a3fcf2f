"""Kubernetes API providers: Namespace, Secret, CustomResource, Deployment.

All four share one kubernetes-asyncio ApiClient, created lazily from the
in-cluster service account or a kubeconfig.  Creates fall back to replace on
409 Conflict (upsert); deletes treat 404 Not Found as success.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from stackgraph.errors import OperationFailed, TransientOperationError
from stackgraph.models.config import KubernetesConfig
from stackgraph.models.resources import (
    CustomResourceSpec,
    DeploymentSpec,
    NamespaceSpec,
    ResourceDescriptor,
    ResourceKind,
    SecretSpec,
)
from stackgraph.providers.base import ResourceProvider
from stackgraph.secrets import reveal_all

_log = structlog.get_logger(component="providers.kubernetes")

_READY_POLL_SECONDS = 2.0
_MANAGED_BY = {"app.kubernetes.io/managed-by": "stackgraph"}


class KubernetesApis:
    """Lazily-initialised kubernetes-asyncio API handles."""

    def __init__(self, config: KubernetesConfig | None = None) -> None:
        self._config = config or KubernetesConfig()
        self._api_client: Any = None
        self._lock = asyncio.Lock()

    async def _client(self) -> Any:
        async with self._lock:
            if self._api_client is None:
                # Import lazily: kubernetes-asyncio is only needed when a
                # stack actually touches the cluster.
                from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
                from kubernetes_asyncio import config as k8s_config  # type: ignore[import-untyped]

                if self._config.kubeconfig:
                    self._api_client = await k8s_config.new_client_from_config(
                        config_file=self._config.kubeconfig,
                        context=self._config.context or None,
                    )
                    _log.info("k8s_client_configured", source="kubeconfig", path=self._config.kubeconfig)
                else:
                    try:
                        k8s_config.load_incluster_config()
                        _log.info("k8s_client_configured", source="in_cluster")
                    except k8s_config.ConfigException:
                        await k8s_config.load_kube_config(context=self._config.context or None)
                        _log.info("k8s_client_configured", source="default_kubeconfig")
                    self._api_client = k8s_client.ApiClient()
            return self._api_client

    async def core(self) -> Any:
        from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

        return k8s_client.CoreV1Api(await self._client())

    async def apps(self) -> Any:
        from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

        return k8s_client.AppsV1Api(await self._client())

    async def custom(self) -> Any:
        from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

        return k8s_client.CustomObjectsApi(await self._client())

    async def close(self) -> None:
        if self._api_client is not None:
            await self._api_client.close()
            self._api_client = None


def _status(exc: BaseException) -> int | None:
    """HTTP status of a kubernetes-asyncio ApiException, or None for other errors."""
    status = getattr(exc, "status", None)
    return status if isinstance(status, int) else None


def _translate(exc: Exception, resource: str, operation: str) -> OperationFailed:
    status = _status(exc)
    if status is None:
        if isinstance(exc, OSError | TimeoutError):
            return TransientOperationError(resource, operation, f"connection error: {exc}")
        return OperationFailed(resource, operation, repr(exc))
    reason = getattr(exc, "reason", "") or ""
    if status == 429 or status >= 500:
        return TransientOperationError(resource, operation, f"API returned {status} {reason}")
    return OperationFailed(resource, operation, f"API returned {status} {reason}")


def _uid(obj: Any) -> str:
    if isinstance(obj, dict):
        return str(obj.get("metadata", {}).get("uid", ""))
    metadata = getattr(obj, "metadata", None)
    return str(getattr(metadata, "uid", "") or "")


class _KubernetesProvider(ResourceProvider):
    def __init__(self, apis: KubernetesApis) -> None:
        self._apis = apis

    async def close(self) -> None:
        await self._apis.close()

    async def _delete_ignoring_absent(self, resource: str, call: Any) -> None:
        try:
            await call
        except Exception as exc:
            if _status(exc) == 404:
                _log.info("k8s_delete_already_absent", resource=resource)
                return
            raise _translate(exc, resource, "delete") from exc


class NamespaceProvider(_KubernetesProvider):
    @property
    def kind(self) -> ResourceKind:
        return ResourceKind.NAMESPACE

    async def create(self, descriptor: ResourceDescriptor, config: NamespaceSpec) -> dict[str, Any]:  # type: ignore[override]
        core = await self._apis.core()
        labels = {**_MANAGED_BY, **config.labels}
        body = {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": config.namespace, "labels": labels}}
        try:
            obj = await core.create_namespace(body=body)
        except Exception as exc:
            if _status(exc) != 409:
                raise _translate(exc, descriptor.name, "create") from exc
            try:
                obj = await core.patch_namespace(name=config.namespace, body={"metadata": {"labels": labels}})
            except Exception as patch_exc:
                raise _translate(patch_exc, descriptor.name, "update") from patch_exc
        return {"name": config.namespace, "uid": _uid(obj)}

    async def delete(  # type: ignore[override]
        self,
        descriptor: ResourceDescriptor,
        config: NamespaceSpec,
        prior: dict[str, Any] | None,
    ) -> None:
        core = await self._apis.core()
        await self._delete_ignoring_absent(descriptor.name, core.delete_namespace(name=config.namespace))


class SecretProvider(_KubernetesProvider):
    @property
    def kind(self) -> ResourceKind:
        return ResourceKind.SECRET

    async def create(self, descriptor: ResourceDescriptor, config: SecretSpec) -> dict[str, Any]:  # type: ignore[override]
        core = await self._apis.core()
        namespace = str(config.namespace)
        body = {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {"name": config.secret_name, "namespace": namespace, "labels": dict(_MANAGED_BY)},
            "type": config.type,
            # Plaintext exists only inside the request body
            "stringData": {k: str(v) for k, v in reveal_all(config.string_data).items()},
        }
        try:
            obj = await core.create_namespaced_secret(namespace=namespace, body=body)
        except Exception as exc:
            if _status(exc) != 409:
                raise _translate(exc, descriptor.name, "create") from exc
            try:
                obj = await core.replace_namespaced_secret(name=config.secret_name, namespace=namespace, body=body)
            except Exception as replace_exc:
                raise _translate(replace_exc, descriptor.name, "update") from replace_exc
        return {
            "name": config.secret_name,
            "namespace": namespace,
            "keys": sorted(config.string_data),
            "uid": _uid(obj),
        }

    async def delete(  # type: ignore[override]
        self,
        descriptor: ResourceDescriptor,
        config: SecretSpec,
        prior: dict[str, Any] | None,
    ) -> None:
        core = await self._apis.core()
        await self._delete_ignoring_absent(
            descriptor.name,
            core.delete_namespaced_secret(name=config.secret_name, namespace=str(config.namespace)),
        )


class CustomResourceProvider(_KubernetesProvider):
    """Custom objects such as kagent ``Agent`` and ``RemoteMCPServer``."""

    @property
    def kind(self) -> ResourceKind:
        return ResourceKind.CUSTOM_RESOURCE

    async def create(self, descriptor: ResourceDescriptor, config: CustomResourceSpec) -> dict[str, Any]:  # type: ignore[override]
        custom = await self._apis.custom()
        namespace = str(config.namespace)
        key = {
            "group": config.group,
            "version": config.group_version,
            "namespace": namespace,
            "plural": config.resource_plural,
        }
        body: dict[str, Any] = {
            "apiVersion": config.api_version,
            "kind": config.resource_kind,
            "metadata": {"name": config.resource_name, "namespace": namespace, "labels": dict(_MANAGED_BY)},
            "spec": reveal_all(config.spec),
        }
        try:
            obj = await custom.create_namespaced_custom_object(body=body, **key)
        except Exception as exc:
            if _status(exc) != 409:
                raise _translate(exc, descriptor.name, "create") from exc
            try:
                current = await custom.get_namespaced_custom_object(name=config.resource_name, **key)
                body["metadata"]["resourceVersion"] = current["metadata"]["resourceVersion"]
                obj = await custom.replace_namespaced_custom_object(name=config.resource_name, body=body, **key)
            except Exception as replace_exc:
                raise _translate(replace_exc, descriptor.name, "update") from replace_exc
        return {
            "name": config.resource_name,
            "namespace": namespace,
            "api_version": config.api_version,
            "kind": config.resource_kind,
            "uid": _uid(obj),
        }

    async def delete(  # type: ignore[override]
        self,
        descriptor: ResourceDescriptor,
        config: CustomResourceSpec,
        prior: dict[str, Any] | None,
    ) -> None:
        custom = await self._apis.custom()
        await self._delete_ignoring_absent(
            descriptor.name,
            custom.delete_namespaced_custom_object(
                group=config.group,
                version=config.group_version,
                namespace=str(config.namespace),
                plural=config.resource_plural,
                name=config.resource_name,
            ),
        )


class DeploymentProvider(_KubernetesProvider):
    @property
    def kind(self) -> ResourceKind:
        return ResourceKind.DEPLOYMENT

    async def create(self, descriptor: ResourceDescriptor, config: DeploymentSpec) -> dict[str, Any]:  # type: ignore[override]
        apps = await self._apis.apps()
        namespace = str(config.namespace)
        body = {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {
                "name": config.deployment_name,
                "namespace": namespace,
                "labels": {**_MANAGED_BY, **config.labels},
                "annotations": dict(config.annotations),
            },
            "spec": reveal_all(config.spec),
        }
        try:
            obj = await apps.create_namespaced_deployment(namespace=namespace, body=body)
        except Exception as exc:
            if _status(exc) != 409:
                raise _translate(exc, descriptor.name, "create") from exc
            try:
                obj = await apps.replace_namespaced_deployment(
                    name=config.deployment_name, namespace=namespace, body=body
                )
            except Exception as replace_exc:
                raise _translate(replace_exc, descriptor.name, "update") from replace_exc

        ready = 0
        if config.wait_ready:
            ready = await self._wait_ready(descriptor.name, apps, config)
        else:
            _log.info("deployment_readiness_not_awaited", resource=descriptor.name)
        return {
            "name": config.deployment_name,
            "namespace": namespace,
            "uid": _uid(obj),
            "ready_replicas": ready,
        }

    async def _wait_ready(self, resource: str, apps: Any, config: DeploymentSpec) -> int:
        wanted = int(config.spec.get("replicas", 1))
        loop = asyncio.get_running_loop()
        deadline = loop.time() + config.timeout
        while True:
            try:
                obj = await apps.read_namespaced_deployment_status(
                    name=config.deployment_name, namespace=str(config.namespace)
                )
            except Exception as exc:
                raise _translate(exc, resource, "create") from exc
            ready = int(getattr(getattr(obj, "status", None), "ready_replicas", 0) or 0)
            if ready >= wanted:
                return ready
            if loop.time() >= deadline:
                raise OperationFailed(
                    resource,
                    "create",
                    f"deployment not ready after {config.timeout}s ({ready}/{wanted} replicas)",
                )
            await asyncio.sleep(_READY_POLL_SECONDS)

    async def delete(  # type: ignore[override]
        self,
        descriptor: ResourceDescriptor,
        config: DeploymentSpec,
        prior: dict[str, Any] | None,
    ) -> None:
        apps = await self._apis.apps()
        await self._delete_ignoring_absent(
            descriptor.name,
            apps.delete_namespaced_deployment(name=config.deployment_name, namespace=str(config.namespace)),
        )


def build_kubernetes_providers(config: KubernetesConfig) -> list[ResourceProvider]:
    """Create the four providers sharing one API handle."""
    apis = KubernetesApis(config)
    return [
        NamespaceProvider(apis),
        SecretProvider(apis),
        CustomResourceProvider(apis),
        DeploymentProvider(apis),
    ]
