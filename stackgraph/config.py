"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from stackgraph.models.config import (
    DigitalOceanConfig,
    ExecutorConfig,
    HelmConfig,
    KubernetesConfig,
    LogConfig,
    ShellConfig,
    StackGraphConfig,
    StateConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"STACKGRAPH_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> StackGraphConfig:
    """Load configuration from STACKGRAPH_* environment variables."""
    backoff_min = _env_float("EXECUTOR_BACKOFF_MIN", 1.0, min_val=0.0)
    return StackGraphConfig(
        executor=ExecutorConfig(
            max_workers=_env_int("EXECUTOR_MAX_WORKERS", 4, min_val=1, max_val=32),
            max_attempts=_env_int("EXECUTOR_MAX_ATTEMPTS", 3, min_val=1, max_val=10),
            backoff_min=backoff_min,
            backoff_max=_env_float("EXECUTOR_BACKOFF_MAX", 30.0, min_val=backoff_min),
        ),
        state=StateConfig(
            directory=_env("STATE_DIR", ".stackgraph"),
        ),
        kubernetes=KubernetesConfig(
            kubeconfig=_env("KUBECONFIG", os.environ.get("KUBECONFIG", "")),
            context=_env("KUBE_CONTEXT", ""),
        ),
        helm=HelmConfig(
            binary=_env("HELM_BINARY", "helm"),
            kube_context=_env("KUBE_CONTEXT", ""),
        ),
        digitalocean=DigitalOceanConfig(
            api_base=_env("DO_API_BASE", "https://api.digitalocean.com").rstrip("/"),
            request_timeout=_env_float("DO_REQUEST_TIMEOUT", 30.0, min_val=1.0),
            poll_interval=_env_float("DO_POLL_INTERVAL", 15.0, min_val=0.0),
            create_timeout=_env_int("DO_CREATE_TIMEOUT", 1800, min_val=60, max_val=7200),
        ),
        shell=ShellConfig(
            shell=_env("SHELL", "/bin/sh"),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
