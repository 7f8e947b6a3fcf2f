"""Integration tests for the full run pipeline.

Each test drives StackGraphApp end to end: settings -> stack -> graph ->
plan -> executor -> outputs -> state store -> report, against the in-memory
fake cloud from ``tests/conftest.py``.
"""

from __future__ import annotations

import json

import pytest

from stackgraph.models.results import Operation, ResourceStatus, RunStatus
from stackgraph.secrets import SecretValue

pytestmark = pytest.mark.integration


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


class TestApply:
    """Fresh apply, re-apply and reference resolution."""

    async def test_kagent_apply_resolves_references(self, make_app, cloud) -> None:
        report = await make_app().up("kagent")

        assert report.status == RunStatus.SUCCEEDED
        assert cloud.names("create")[0] == "kagent-ns"
        assert cloud.names("create")[-1] == "kagent"
        assert cloud.configs["kagent-openai"].namespace == "kagent"
        api_key = cloud.configs["kagent-openai"].string_data["OPENAI_API_KEY"]
        assert isinstance(api_key, SecretValue)
        assert api_key.reveal() == "sk-do-test"
        openai = cloud.configs["kagent"].values["providers"]["openAI"]
        assert openai["apiKeySecretRef"] == "kagent-openai"
        assert report.outputs["kagentReleaseStatus"].value == "deployed"

    async def test_second_apply_updates(self, make_app, cloud) -> None:
        app = make_app()
        await app.up("monitoring")
        report = await app.up("monitoring")

        assert report.status == RunStatus.SUCCEEDED
        assert {r.operation for r in report.results.values()} == {Operation.UPDATE}
        assert len(cloud.names("update")) == 5

    async def test_state_persisted_with_private_secrets(self, make_app, state_dir) -> None:
        await make_app().up("model-key")

        raw = json.loads((state_dir / "model-key.json").read_text())
        assert set(raw["resources"]) == {"create-model-access-key"}
        assert raw["outputs"]["llmApiKey"]["secret"] is True
        assert raw["outputs"]["llmApiKey"]["value"] == {"__secret__": "sk-live-123"}

        outputs = make_app().outputs("model-key")
        assert outputs["llmApiKey"].value.reveal() == "sk-live-123"
        assert outputs["llmModel"].value == "anthropic-claude-opus-4.5"

    async def test_summary_never_shows_secrets(self, make_app) -> None:
        report = await make_app().up("model-key")
        summary = json.dumps(report.summary())
        assert "sk-live-123" not in summary
        assert report.summary()["outputs"]["openaiApiKey"] == "[secret]"

    async def test_templated_output(self, make_app) -> None:
        report = await make_app().up("remediation")
        instructions = report.outputs["demoInstructions"].value
        assert "${" not in instructions
        assert "orchestrator-agent" in instructions
        assert "apps" in instructions


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestPartialFailure:
    """A failed resource skips its dependents and withholds their outputs."""

    async def test_failure_isolated_to_dependents(self, make_app, cloud, state_dir) -> None:
        cloud.fail.add("kube-prometheus-stack")
        report = await make_app().up("monitoring")

        assert report.status == RunStatus.PARTIAL_FAILURE
        assert report.results["kube-prometheus-stack"].status == ResourceStatus.FAILED
        assert report.results["podinfo"].status == ResourceStatus.SKIPPED
        assert report.results["metrics-server"].status == ResourceStatus.SUCCEEDED
        assert "podinfo" not in cloud.names("create")

        withheld = {w.name for w in report.withheld}
        assert withheld == {"prometheusStackStatus", "podinfoStatus"}
        assert report.outputs["metricsServerStatus"].value == "deployed"

        raw = json.loads((state_dir / "monitoring.json").read_text())
        assert set(raw["resources"]) == {"monitoring-ns", "apps-ns", "metrics-server"}

    async def test_retry_after_partial_failure(self, make_app, cloud) -> None:
        cloud.fail.add("kagent-crds")
        first = await make_app().up("kagent")
        assert first.status == RunStatus.PARTIAL_FAILURE

        cloud.fail.clear()
        second = await make_app().up("kagent")
        assert second.status == RunStatus.SUCCEEDED
        assert second.results["kagent-ns"].operation == Operation.UPDATE
        assert second.results["kagent-crds"].operation == Operation.CREATE
        assert second.results["kagent"].operation == Operation.CREATE

    async def test_failed_reapply_keeps_recorded_outputs(self, make_app, cloud) -> None:
        await make_app().up("cluster")
        before = make_app().outputs("cluster")
        assert set(before) == {"clusterEndpoint", "clusterName", "clusterUrn", "kubeconfig"}

        cloud.fail.add("workshop-cluster")
        report = await make_app().up("cluster")
        assert report.status == RunStatus.FAILED

        after = make_app().outputs("cluster")
        assert set(after) == set(before)
        assert after["kubeconfig"].value.reveal() == "apiVersion: v1\n"
        assert after["clusterEndpoint"].value == "https://c-1.k8s.example"

    async def test_missing_setting_runs_nothing(self, make_app, cloud) -> None:
        from stackgraph.errors import SettingsError

        with pytest.raises(SettingsError):
            await make_app({}).up("remediation")
        assert cloud.calls == []

    async def test_cancel_before_start(self, make_app, cloud) -> None:
        app = make_app()
        app.cancel()
        report = await app.up("kagent")
        assert report.status == RunStatus.CANCELLED
        assert cloud.calls == []
        assert all(r.status == ResourceStatus.SKIPPED for r in report.results.values())
        assert {r.error for r in report.results.values()} == {"cancelled"}


# ---------------------------------------------------------------------------
# Destroy
# ---------------------------------------------------------------------------


class TestDestroy:
    """Teardown order, state cleanup and repeated destroys."""

    async def test_destroy_reverses_apply_order(self, make_app, cloud, state_dir) -> None:
        app = make_app()
        await app.up("remediation")
        report = await app.destroy("remediation")

        assert report.status == RunStatus.SUCCEEDED
        deleted = cloud.names("delete")
        assert deleted.index("orchestrator-agent") < deleted.index("pulumi-agent")
        assert deleted.index("pulumi-agent") < deleted.index("pulumi-remote-mcp")
        assert deleted.index("pulumi-remote-mcp") < deleted.index("pulumi-access-token")
        assert cloud.existing == {}

        raw = json.loads((state_dir / "remediation.json").read_text())
        assert raw["resources"] == {}
        assert raw["outputs"] == {}

    async def test_destroy_only_touches_recorded_resources(self, make_app, cloud) -> None:
        cloud.fail.add("kagent-crds")
        await make_app().up("kagent")
        cloud.fail.clear()
        cloud.calls.clear()

        await make_app().destroy("kagent")
        assert sorted(cloud.names("delete")) == ["kagent-ns", "kagent-openai"]

    async def test_second_destroy_is_a_no_op(self, make_app, cloud) -> None:
        app = make_app()
        await app.up("cluster")
        await app.destroy("cluster")
        cloud.calls.clear()

        report = await app.destroy("cluster")
        assert report.status == RunStatus.SUCCEEDED
        assert report.results == {}
        assert cloud.calls == []

    async def test_destroy_all_includes_unrecorded(self, make_app, cloud) -> None:
        report = await make_app().destroy("cluster", all_resources=True)
        assert report.status == RunStatus.SUCCEEDED
        assert cloud.names("delete") == ["workshop-cluster"]

    async def test_destroy_all_cannot_resolve_references_without_state(self, make_app, cloud) -> None:
        report = await make_app().destroy("monitoring", all_resources=True)
        assert report.results["metrics-server"].status == ResourceStatus.SUCCEEDED
        assert report.results["podinfo"].status == ResourceStatus.FAILED
        assert "cannot prepare operation" in report.results["podinfo"].error
        assert report.results["apps-ns"].status == ResourceStatus.SKIPPED
        assert "podinfo" not in cloud.names("delete")

    async def test_delete_receives_prior_attributes(self, make_app, cloud) -> None:
        app = make_app()
        await app.up("model-key")
        await app.destroy("model-key")
        assert cloud.names("delete") == ["create-model-access-key"]
        stdout = cloud.priors["create-model-access-key"]["stdout"]
        assert isinstance(stdout, SecretValue)
        assert "key-uuid-1" in stdout.reveal()
