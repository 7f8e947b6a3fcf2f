"""Managed Kubernetes cluster provider (DigitalOcean Kubernetes).

Talks to the DigitalOcean REST API with httpx:

    GET    /v2/kubernetes/options                 -- available versions
    POST   /v2/kubernetes/clusters                -- create
    GET    /v2/kubernetes/clusters[/{id}]         -- list / read (poll until running)
    PUT    /v2/kubernetes/clusters/{id}/node_pools/{pool_id}
    GET    /v2/kubernetes/clusters/{id}/kubeconfig
    DELETE /v2/kubernetes/clusters/{id}

The cluster id returned by create is kept in state and used on delete;
lookup by name is only the fallback when no id was recorded.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from stackgraph.errors import OperationFailed, TransientOperationError
from stackgraph.models.config import DigitalOceanConfig
from stackgraph.models.resources import ClusterSpec, ResourceDescriptor, ResourceKind
from stackgraph.providers.base import ResourceProvider
from stackgraph.secrets import SecretValue

_log = structlog.get_logger(component="providers.cluster")

_CLUSTERS = "/v2/kubernetes/clusters"


def _version_key(version: str) -> tuple[int, ...]:
    parts = []
    for part in version.split("."):
        digits = "".join(ch for ch in part if ch.isdigit())
        parts.append(int(digits or 0))
    return tuple(parts)


def latest_version(versions: list[dict[str, Any]], prefix: str) -> str:
    """Return the slug of the newest version whose number matches *prefix*.

    ``1.34`` matches ``1.34.1`` but not ``1.340.0``.  An empty prefix matches
    everything.
    """
    matching = [
        v
        for v in versions
        if not prefix
        or v.get("kubernetes_version", "") == prefix
        or v.get("kubernetes_version", "").startswith(prefix + ".")
    ]
    if not matching:
        raise LookupError(f"no Kubernetes version matches prefix {prefix!r}")
    newest = max(matching, key=lambda v: _version_key(v.get("kubernetes_version", "")))
    return str(newest["slug"])


class ClusterProvider(ResourceProvider):
    """Provisions DOKS clusters.  Upserts by name, so retries are safe."""

    def __init__(
        self,
        config: DigitalOceanConfig | None = None,
        token: SecretValue[str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or DigitalOceanConfig()
        self._token = token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def kind(self) -> ResourceKind:
        return ResourceKind.CLUSTER

    def _http(self, resource: str, operation: str) -> httpx.AsyncClient:
        if self._token is None or not self._token.reveal():
            raise OperationFailed(resource, operation, "no DigitalOcean API token configured (digitalocean:token)")
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.api_base,
                timeout=self._config.request_timeout,
                headers={
                    "Authorization": f"Bearer {self._token.reveal()}",
                    "Content-Type": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        resource: str,
        operation: str,
        method: str,
        url: str,
        json: dict[str, Any] | None = None,
        allow_404: bool = False,
    ) -> httpx.Response | None:
        client = self._http(resource, operation)
        try:
            response = await client.request(method, url, json=json)
        except httpx.TimeoutException as exc:
            raise TransientOperationError(resource, operation, f"{method} {url} timed out") from exc
        except httpx.TransportError as exc:
            raise TransientOperationError(resource, operation, f"{method} {url} failed: {exc}") from exc

        if response.status_code == 404 and allow_404:
            return None
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientOperationError(resource, operation, f"{method} {url} returned {response.status_code}")
        if not response.is_success:
            raise OperationFailed(
                resource,
                operation,
                f"{method} {url} returned {response.status_code}: {response.text[:200]}",
            )
        return response

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create(self, descriptor: ResourceDescriptor, config: ClusterSpec) -> dict[str, Any]:  # type: ignore[override]
        existing = await self._find_by_name(descriptor.name, "create", config.cluster_name)
        if existing is not None:
            _log.info("cluster_adopted", resource=descriptor.name, cluster_id=existing["id"])
            return await self._reconcile(descriptor.name, "create", existing, config)

        version = await self._resolve_version(descriptor.name, config.version_prefix)
        body = {
            "name": config.cluster_name,
            "region": config.region,
            "version": version,
            "node_pools": [
                {
                    "name": config.node_pool_name,
                    "size": config.node_size,
                    "count": config.node_count,
                    "labels": dict(config.labels),
                }
            ],
            "tags": list(config.tags),
        }
        response = await self._request(descriptor.name, "create", "POST", _CLUSTERS, json=body)
        assert response is not None
        cluster = response.json()["kubernetes_cluster"]
        _log.info("cluster_creating", resource=descriptor.name, cluster_id=cluster["id"], version=version)
        cluster = await self._wait_running(descriptor.name, "create", cluster["id"])
        return await self._attributes(descriptor.name, "create", cluster)

    async def update(  # type: ignore[override]
        self,
        descriptor: ResourceDescriptor,
        config: ClusterSpec,
        prior: dict[str, Any],
    ) -> dict[str, Any]:
        cluster = None
        if prior.get("id"):
            response = await self._request(
                descriptor.name, "update", "GET", f"{_CLUSTERS}/{prior['id']}", allow_404=True
            )
            cluster = response.json()["kubernetes_cluster"] if response is not None else None
        if cluster is None:
            _log.warning("cluster_missing_recreating", resource=descriptor.name, cluster_id=prior.get("id"))
            return await self.create(descriptor, config)
        return await self._reconcile(descriptor.name, "update", cluster, config)

    async def delete(  # type: ignore[override]
        self,
        descriptor: ResourceDescriptor,
        config: ClusterSpec,
        prior: dict[str, Any] | None,
    ) -> None:
        cluster_id = (prior or {}).get("id")
        if not cluster_id:
            found = await self._find_by_name(descriptor.name, "delete", config.cluster_name)
            cluster_id = found["id"] if found else None
        if not cluster_id:
            _log.info("cluster_already_absent", resource=descriptor.name, cluster_name=config.cluster_name)
            return
        response = await self._request(
            descriptor.name, "delete", "DELETE", f"{_CLUSTERS}/{cluster_id}", allow_404=True
        )
        if response is None:
            _log.info("cluster_already_absent", resource=descriptor.name, cluster_id=cluster_id)
        else:
            _log.info("cluster_deleted", resource=descriptor.name, cluster_id=cluster_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _resolve_version(self, resource: str, prefix: str) -> str:
        response = await self._request(resource, "create", "GET", "/v2/kubernetes/options")
        assert response is not None
        versions = response.json().get("options", {}).get("versions", [])
        try:
            return latest_version(versions, prefix)
        except LookupError as exc:
            raise OperationFailed(resource, "create", str(exc)) from exc

    async def _find_by_name(self, resource: str, operation: str, name: str) -> dict[str, Any] | None:
        response = await self._request(resource, operation, "GET", f"{_CLUSTERS}?per_page=200")
        assert response is not None
        for cluster in response.json().get("kubernetes_clusters", []):
            if cluster.get("name") == name:
                return dict(cluster)
        return None

    async def _reconcile(
        self,
        resource: str,
        operation: str,
        cluster: dict[str, Any],
        config: ClusterSpec,
    ) -> dict[str, Any]:
        pools = cluster.get("node_pools", [])
        pool = next((p for p in pools if p.get("name") == config.node_pool_name), None)
        if pool is not None and pool.get("count") != config.node_count:
            _log.info(
                "cluster_node_pool_resize",
                resource=resource,
                pool=config.node_pool_name,
                current=pool.get("count"),
                wanted=config.node_count,
            )
            await self._request(
                resource,
                operation,
                "PUT",
                f"{_CLUSTERS}/{cluster['id']}/node_pools/{pool['id']}",
                json={"name": config.node_pool_name, "count": config.node_count},
            )
        cluster = await self._wait_running(resource, operation, cluster["id"])
        return await self._attributes(resource, operation, cluster)

    async def _wait_running(self, resource: str, operation: str, cluster_id: str) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.create_timeout
        while True:
            response = await self._request(resource, operation, "GET", f"{_CLUSTERS}/{cluster_id}")
            assert response is not None
            cluster: dict[str, Any] = response.json()["kubernetes_cluster"]
            state = cluster.get("status", {}).get("state", "")
            if state == "running":
                return cluster
            if state in ("errored", "invalid", "deleted"):
                raise OperationFailed(resource, operation, f"cluster {cluster_id} entered state '{state}'")
            if loop.time() >= deadline:
                raise OperationFailed(
                    resource,
                    operation,
                    f"cluster {cluster_id} not running after {self._config.create_timeout}s (state '{state}')",
                )
            _log.debug("cluster_waiting", resource=resource, cluster_id=cluster_id, state=state)
            await asyncio.sleep(self._config.poll_interval)

    async def _attributes(self, resource: str, operation: str, cluster: dict[str, Any]) -> dict[str, Any]:
        response = await self._request(resource, operation, "GET", f"{_CLUSTERS}/{cluster['id']}/kubeconfig")
        assert response is not None
        return {
            "id": cluster["id"],
            "name": cluster.get("name", ""),
            "region": cluster.get("region", ""),
            "version": cluster.get("version", ""),
            "endpoint": cluster.get("endpoint", ""),
            "urn": f"do:kubernetes:{cluster['id']}",
            "kubeconfig": SecretValue(response.text),
        }
