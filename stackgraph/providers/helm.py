"""Helm release provider.

Drives the ``helm`` CLI: ``upgrade --install`` gives upsert semantics, and
``uninstall`` treats an already-removed release as success.  Values are
written to a private temporary file so secrets never appear in argv.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from typing import Any

import structlog

from stackgraph.errors import OperationFailed, ParseError, TransientOperationError
from stackgraph.models.config import HelmConfig
from stackgraph.models.resources import HelmReleaseSpec, ResourceDescriptor, ResourceKind
from stackgraph.providers.base import ResourceProvider
from stackgraph.secrets import reveal_all

_log = structlog.get_logger(component="providers.helm")

_TRANSIENT_MARKERS = (
    "another operation (install/upgrade/rollback) is in progress",
    "connection refused",
    "i/o timeout",
    "tls handshake timeout",
    "the server is currently unable to handle the request",
)
_STDERR_TAIL = 500


class HelmCli:
    """Runs helm subcommands and returns ``(returncode, stdout, stderr)``."""

    def __init__(self, config: HelmConfig | None = None) -> None:
        self._config = config or HelmConfig()

    async def run(self, args: list[str], timeout: float) -> tuple[int, str, str]:
        if self._config.kube_context:
            args = [*args, "--kube-context", self._config.kube_context]
        proc = await asyncio.create_subprocess_exec(
            self._config.binary,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            out, err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            raise
        return proc.returncode or 0, out.decode("utf-8", errors="replace"), err.decode("utf-8", errors="replace")


class HelmReleaseProvider(ResourceProvider):
    def __init__(self, cli: HelmCli | None = None) -> None:
        self._cli = cli or HelmCli()

    @property
    def kind(self) -> ResourceKind:
        return ResourceKind.HELM_RELEASE

    async def create(self, descriptor: ResourceDescriptor, config: HelmReleaseSpec) -> dict[str, Any]:  # type: ignore[override]
        release = config.release_name or descriptor.name
        namespace = str(config.namespace)

        fd, values_path = tempfile.mkstemp(prefix=f"{release}-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(reveal_all(config.values), handle)

            args = [
                "upgrade",
                "--install",
                release,
                config.chart,
                "--namespace",
                namespace,
                "--values",
                values_path,
                "--wait",
                "--timeout",
                f"{config.timeout}s",
                "--output",
                "json",
            ]
            if config.version:
                args += ["--version", config.version]
            if config.repository:
                args += ["--repo", config.repository]

            _log.info("helm_upgrade", resource=descriptor.name, release=release, chart=config.chart, version=config.version)
            stdout = await self._run(descriptor.name, "create", args, config.timeout)
        finally:
            os.unlink(values_path)

        try:
            info = json.loads(stdout)
        except json.JSONDecodeError as exc:
            raise ParseError(descriptor.name, "create", stdout, reason=str(exc)) from exc

        return {
            "name": info.get("name", release),
            "namespace": info.get("namespace", namespace),
            "chart": config.chart,
            "version": config.version,
            "revision": info.get("version", 0),
            "status": info.get("info", {}).get("status", "unknown"),
        }

    async def delete(  # type: ignore[override]
        self,
        descriptor: ResourceDescriptor,
        config: HelmReleaseSpec,
        prior: dict[str, Any] | None,
    ) -> None:
        release = (prior or {}).get("name") or config.release_name or descriptor.name
        namespace = (prior or {}).get("namespace") or str(config.namespace)
        try:
            await self._run(
                descriptor.name,
                "delete",
                ["uninstall", release, "--namespace", namespace, "--wait", "--timeout", f"{config.timeout}s"],
                config.timeout,
            )
        except OperationFailed as exc:
            if "not found" in exc.message.lower():
                _log.info("helm_release_already_absent", resource=descriptor.name, release=release)
                return
            raise

    async def _run(self, resource: str, operation: str, args: list[str], timeout: int) -> str:
        # Give helm's own --timeout a head start before we give up on the process
        try:
            code, stdout, stderr = await self._cli.run(args, timeout=timeout + 60)
        except TimeoutError:
            raise TransientOperationError(resource, operation, "helm did not finish in time") from None
        except OSError as exc:
            raise OperationFailed(resource, operation, f"cannot run helm: {exc}") from exc

        if code != 0:
            message = stderr.strip()[-_STDERR_TAIL:]
            if any(marker in message.lower() for marker in _TRANSIENT_MARKERS):
                raise TransientOperationError(resource, operation, message)
            raise OperationFailed(resource, operation, message or f"helm exited with status {code}")
        return stdout
