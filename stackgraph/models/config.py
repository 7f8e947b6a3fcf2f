"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ExecutorConfig:
    """Topological executor configuration."""

    max_workers: int = 4
    max_attempts: int = 3
    backoff_min: float = 1.0
    backoff_max: float = 30.0


@dataclass
class StateConfig:
    """Where per-stack state files live."""

    directory: str = ".stackgraph"


@dataclass
class KubernetesConfig:
    """Kubernetes API client configuration."""

    kubeconfig: str = ""
    context: str = ""


@dataclass
class HelmConfig:
    """Helm CLI configuration."""

    binary: str = "helm"
    kube_context: str = ""


@dataclass
class DigitalOceanConfig:
    """DigitalOcean API configuration."""

    api_base: str = "https://api.digitalocean.com"
    request_timeout: float = 30.0
    poll_interval: float = 15.0
    create_timeout: int = 1800


@dataclass
class ShellConfig:
    """Shell-command resource configuration."""

    shell: str = "/bin/sh"


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class StackGraphConfig:
    """Top-level stackgraph configuration."""

    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    state: StateConfig = field(default_factory=StateConfig)
    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)
    helm: HelmConfig = field(default_factory=HelmConfig)
    digitalocean: DigitalOceanConfig = field(default_factory=DigitalOceanConfig)
    shell: ShellConfig = field(default_factory=ShellConfig)
    log: LogConfig = field(default_factory=LogConfig)
