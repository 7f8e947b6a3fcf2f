"""Tests for StackSettings and engine configuration loading."""

from __future__ import annotations

import pytest

from stackgraph.config import load_config
from stackgraph.errors import SettingsError
from stackgraph.secrets import SecretValue
from stackgraph.settings import StackSettings, env_key


class TestEnvKey:
    def test_namespaced_key(self) -> None:
        assert env_key("digitalocean:token") == "STACKGRAPH_CFG_DIGITALOCEAN_TOKEN"

    def test_camel_case_key(self) -> None:
        assert env_key("nodeCount") == "STACKGRAPH_CFG_NODECOUNT"

    def test_dashes_and_dots(self) -> None:
        assert env_key("llm-api.key") == "STACKGRAPH_CFG_LLM_API_KEY"


class TestStackSettings:
    def test_from_env_only_keeps_prefixed_variables(self) -> None:
        settings = StackSettings.from_env({"STACKGRAPH_CFG_REGION": "ams3", "HOME": "/root"})
        assert settings.get("region") == "ams3"
        assert settings.get("HOME") == ""

    def test_explicit_key_wins(self) -> None:
        settings = StackSettings({"region": "nyc1", "STACKGRAPH_CFG_REGION": "ams3"})
        assert settings.get("region") == "nyc1"

    def test_get_default_for_missing_and_empty(self) -> None:
        settings = StackSettings({"region": ""})
        assert settings.get("region", "fra1") == "fra1"
        assert settings.get("other", "x") == "x"

    def test_require_missing_raises_with_env_name(self) -> None:
        with pytest.raises(SettingsError, match="STACKGRAPH_CFG_PULUMIORG") as exc_info:
            StackSettings().require("pulumiOrg")
        assert exc_info.value.key == "pulumiOrg"

    def test_get_int(self) -> None:
        settings = StackSettings({"nodeCount": "3"})
        assert settings.get_int("nodeCount", 2) == 3
        assert settings.get_int("missing", 2) == 2

    def test_get_int_rejects_garbage(self) -> None:
        with pytest.raises(SettingsError, match="integer"):
            StackSettings({"nodeCount": "three"}).get_int("nodeCount", 2)

    def test_secrets_are_wrapped(self) -> None:
        settings = StackSettings({"llmApiKey": "sk-123"})
        value = settings.require_secret("llmApiKey")
        assert isinstance(value, SecretValue)
        assert value.reveal() == "sk-123"

    def test_get_secret_default(self) -> None:
        settings = StackSettings()
        assert settings.get_secret("grafanaAdminPassword") is None
        default = settings.get_secret("grafanaAdminPassword", "workshop-admin")
        assert isinstance(default, SecretValue)
        assert default.reveal() == "workshop-admin"


class TestLoadConfig:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("KUBECONFIG", raising=False)
        config = load_config()
        assert config.executor.max_workers == 4
        assert config.executor.max_attempts == 3
        assert config.state.directory == ".stackgraph"
        assert config.helm.binary == "helm"
        assert config.digitalocean.api_base == "https://api.digitalocean.com"
        assert config.log.level == "info"

    def test_integers_are_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STACKGRAPH_EXECUTOR_MAX_WORKERS", "500")
        monkeypatch.setenv("STACKGRAPH_EXECUTOR_MAX_ATTEMPTS", "0")
        monkeypatch.setenv("STACKGRAPH_DO_CREATE_TIMEOUT", "5")
        config = load_config()
        assert config.executor.max_workers == 32
        assert config.executor.max_attempts == 1
        assert config.digitalocean.create_timeout == 60

    def test_backoff_max_not_below_min(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STACKGRAPH_EXECUTOR_BACKOFF_MIN", "5")
        monkeypatch.setenv("STACKGRAPH_EXECUTOR_BACKOFF_MAX", "1")
        config = load_config()
        assert config.executor.backoff_max == 5.0

    def test_kubeconfig_falls_back_to_standard_variable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBECONFIG", "/tmp/kubeconfig")
        assert load_config().kubernetes.kubeconfig == "/tmp/kubeconfig"

    def test_invalid_log_level_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STACKGRAPH_LOG_LEVEL", "verbose")
        with pytest.raises(ValueError, match="Invalid log level"):
            load_config()

    def test_log_level_is_lowercased(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STACKGRAPH_LOG_LEVEL", "DEBUG")
        assert load_config().log.level == "debug"
