"""Stack settings: the per-stack configuration source.

Stack builders read their inputs (region, node count, API tokens, ...) from a
``StackSettings`` instance.  By default values come from environment
variables named ``STACKGRAPH_CFG_<KEY>``, where the key is upper-cased and
``:``, ``-`` and ``.`` become ``_``::

    digitalocean:token  ->  STACKGRAPH_CFG_DIGITALOCEAN_TOKEN
    nodeCount           ->  STACKGRAPH_CFG_NODECOUNT

Secret settings are returned wrapped in ``SecretValue``.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping

from stackgraph.errors import SettingsError
from stackgraph.secrets import SecretValue

_ENV_PREFIX = "STACKGRAPH_CFG_"
_RE_KEY_SEPARATORS = re.compile(r"[:.\-]")


def env_key(key: str) -> str:
    """Map a setting key to its environment variable name."""
    return _ENV_PREFIX + _RE_KEY_SEPARATORS.sub("_", key).upper()


class StackSettings:
    """Read-only key/value settings for stack builders."""

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(values or {})

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> StackSettings:
        """Collect every ``STACKGRAPH_CFG_*`` variable."""
        environ = os.environ if environ is None else environ
        return cls({k: v for k, v in environ.items() if k.startswith(_ENV_PREFIX)})

    def _lookup(self, key: str) -> str | None:
        # Explicit keys win over their environment-style spelling
        if key in self._values:
            return self._values[key]
        return self._values.get(env_key(key))

    def get(self, key: str, default: str = "") -> str:
        value = self._lookup(key)
        return default if value in (None, "") else value  # type: ignore[return-value]

    def require(self, key: str) -> str:
        value = self._lookup(key)
        if not value:
            raise SettingsError(key, f"Missing required setting '{key}' (set {env_key(key)})")
        return value

    def get_int(self, key: str, default: int) -> int:
        value = self._lookup(key)
        if not value:
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise SettingsError(key, f"Setting '{key}' must be an integer, got {value!r}") from exc

    def get_secret(self, key: str, default: str | None = None) -> SecretValue[str] | None:
        value = self._lookup(key)
        if not value:
            return None if default is None else SecretValue(default)
        return SecretValue(value)

    def require_secret(self, key: str) -> SecretValue[str]:
        return SecretValue(self.require(key))
