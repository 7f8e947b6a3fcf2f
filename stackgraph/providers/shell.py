"""Shell-command resources.

Wraps a create command and a delete command as one managed resource.  The
create command's stdout is captured (and parsed as JSON when requested) so
dependents can reference fields of it, e.g.
``Ref("create-model-access-key", "json.api_key_info.secret_key")``.

The stdout of create is persisted with the resource's state and handed to
the delete command as ``$CREATE_STDOUT``, so delete can use the identifier
returned at creation instead of looking the resource up by name.  Delete
commands must exit 0 when the resource is already gone.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import os
from typing import Any

import structlog

from stackgraph.errors import OperationFailed, ParseError
from stackgraph.models.config import ShellConfig
from stackgraph.models.resources import ResourceDescriptor, ResourceKind, ShellCommandSpec
from stackgraph.providers.base import ResourceProvider
from stackgraph.secrets import REDACTED, SecretValue, is_secret, reveal

_log = structlog.get_logger(component="providers.shell")

_STDERR_TAIL = 500


class ShellCommandProvider(ResourceProvider):
    """Runs create/delete commands through ``/bin/sh -c``.

    Commands may have side effects outside our control, so they are never
    retried automatically.
    """

    idempotent = False

    def __init__(self, config: ShellConfig | None = None) -> None:
        self._config = config or ShellConfig()

    @property
    def kind(self) -> ResourceKind:
        return ResourceKind.SHELL_COMMAND

    async def create(self, descriptor: ResourceDescriptor, config: ShellCommandSpec) -> dict[str, Any]:  # type: ignore[override]
        stdout = await self._run(descriptor.name, "create", config.create, config)
        stdout = stdout.strip()

        attributes: dict[str, Any] = {"fingerprint": fingerprint(config)}
        # Output of a command built from a secret is as sensitive as the secret
        wrap = SecretValue if config.secret_outputs or is_secret(config.create) else _identity
        attributes["stdout"] = wrap(stdout)
        if config.parse_json:
            try:
                parsed = json.loads(stdout)
            except json.JSONDecodeError as exc:
                raise ParseError(descriptor.name, "create", wrap(stdout), reason=str(exc)) from exc
            attributes["json"] = wrap(parsed)
        return attributes

    async def update(  # type: ignore[override]
        self,
        descriptor: ResourceDescriptor,
        config: ShellCommandSpec,
        prior: dict[str, Any],
    ) -> dict[str, Any]:
        if prior.get("fingerprint") == fingerprint(config):
            _log.debug("shell_command_unchanged", resource=descriptor.name)
            return prior
        _log.info("shell_command_replaced", resource=descriptor.name)
        await self.delete(descriptor, config, prior)
        return await self.create(descriptor, config)

    async def delete(  # type: ignore[override]
        self,
        descriptor: ResourceDescriptor,
        config: ShellCommandSpec,
        prior: dict[str, Any] | None,
    ) -> None:
        if not str(reveal(config.delete)).strip():
            _log.debug("shell_command_no_delete", resource=descriptor.name)
            return
        create_stdout = reveal((prior or {}).get("stdout", ""))
        await self._run(
            descriptor.name,
            "delete",
            config.delete,
            config,
            extra_env={"CREATE_STDOUT": str(create_stdout)},
        )

    async def _run(
        self,
        resource: str,
        operation: str,
        command: Any,
        config: ShellCommandSpec,
        extra_env: dict[str, str] | None = None,
    ) -> str:
        env = dict(os.environ)
        env.update({key: str(reveal(value)) for key, value in config.environment.items()})
        env.update(extra_env or {})
        secrets = [str(v.reveal()) for v in config.environment.values() if isinstance(v, SecretValue)]

        _log.debug("shell_command_started", resource=resource, operation=operation)
        try:
            proc = await asyncio.create_subprocess_exec(
                self._config.shell,
                "-c",
                str(reveal(command)),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as exc:
            raise OperationFailed(resource, operation, f"cannot start shell: {exc}") from exc

        try:
            out, err = await asyncio.wait_for(proc.communicate(), timeout=config.timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            raise OperationFailed(resource, operation, f"command timed out after {config.timeout}s") from None

        stdout = out.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            stderr = _scrub(err.decode("utf-8", errors="replace")[-_STDERR_TAIL:], secrets)
            if is_secret(command):
                # Any part of the output may echo the secret
                stderr = REDACTED
            raise OperationFailed(resource, operation, f"command exited with status {proc.returncode}: {stderr.strip()}")
        return stdout


def fingerprint(config: ShellCommandSpec) -> str:
    """Stable digest of what the commands do.

    The digest is stored in plaintext state, so secret material contributes
    only a marker: rotating a secret does not replace the resource, while
    adding, removing or un-marking a secret does.
    """
    material = json.dumps(
        {
            "create": _material(config.create),
            "delete": _material(config.delete),
            "environment": {k: _material(v) for k, v in sorted(config.environment.items())},
            "parse_json": config.parse_json,
        },
        sort_keys=True,
    )
    return hashlib.sha256(material.encode()).hexdigest()


def _material(value: Any) -> str:
    if isinstance(value, SecretValue):
        return REDACTED
    return str(value)


def _scrub(text: str, secrets: list[str]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    return text


def _identity(value: Any) -> Any:
    return value
