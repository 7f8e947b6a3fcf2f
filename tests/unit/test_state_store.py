"""Tests for the JSON state store."""

from __future__ import annotations

import json
import stat
from pathlib import Path

import pytest

from stackgraph.errors import StackGraphError
from stackgraph.models.resources import ResourceKind
from stackgraph.models.results import Operation, OutputValue, ResourceResult, ResourceStatus, RunReport
from stackgraph.secrets import SecretValue
from stackgraph.state.store import ResourceState, StackState, StateStore, decode, encode


def _result(name: str, /, operation: Operation, status: ResourceStatus = ResourceStatus.SUCCEEDED, **attrs) -> ResourceResult:
    return ResourceResult(
        name=name,
        kind=ResourceKind.NAMESPACE,
        operation=operation,
        status=status,
        attributes=attrs,
    )


class TestEncoding:
    def test_secrets_are_tagged_and_restored(self) -> None:
        value = {"plain": 1, "token": SecretValue("t"), "nested": [SecretValue({"k": "v"})]}
        encoded = encode(value)
        assert encoded["token"] == {"__secret__": "t"}
        restored = decode(json.loads(json.dumps(encoded)))
        assert restored["plain"] == 1
        assert isinstance(restored["token"], SecretValue)
        assert restored["token"].reveal() == "t"
        assert restored["nested"][0].reveal() == {"k": "v"}


class TestStateStore:
    def test_missing_state_is_empty(self, tmp_path: Path) -> None:
        state = StateStore(tmp_path).load("kagent")
        assert state.stack == "kagent"
        assert state.resources == {}

    def test_save_and_load(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path / "state")
        state = StackState(
            stack="cluster",
            resources={"c": ResourceState(kind=ResourceKind.CLUSTER, attributes={"id": "1", "kubeconfig": SecretValue("kc")})},
            outputs={"kubeconfig": OutputValue("kubeconfig", SecretValue("kc"), secret=True)},
        )
        path = store.save(state)
        assert path == tmp_path / "state" / "cluster.json"
        raw = json.loads(path.read_text())
        assert raw["version"] == 1
        assert raw["outputs"]["kubeconfig"] == {"value": {"__secret__": "kc"}, "secret": True}

        loaded = store.load("cluster")
        assert loaded.resources["c"].kind == ResourceKind.CLUSTER
        assert loaded.resources["c"].attributes["kubeconfig"].reveal() == "kc"
        assert loaded.outputs["kubeconfig"].secret
        assert loaded.outputs["kubeconfig"].value.reveal() == "kc"

    def test_state_file_is_private(self, tmp_path: Path) -> None:
        path = StateStore(tmp_path).save(StackState(stack="s"))
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_unknown_version_rejected(self, tmp_path: Path) -> None:
        (tmp_path / "s.json").write_text(json.dumps({"version": 99}))
        with pytest.raises(StackGraphError, match="Unsupported state version"):
            StateStore(tmp_path).load("s")


class TestRecord:
    def test_apply_stores_successes_and_outputs(self) -> None:
        state = StackState(stack="s")
        report = RunReport(
            stack="s",
            operation="apply",
            results={
                "a": _result("a", Operation.CREATE, name="a"),
                "b": _result("b", Operation.CREATE, ResourceStatus.FAILED),
            },
            outputs={"out": OutputValue("out", "v")},
        )
        state.record(report)
        assert set(state.resources) == {"a"}
        assert state.outputs["out"].value == "v"
        assert state.updated_at

    def test_failed_update_keeps_previous_attributes(self) -> None:
        state = StackState(stack="s", resources={"a": ResourceState(ResourceKind.NAMESPACE, {"v": 1})})
        state.record(
            RunReport(stack="s", operation="apply", results={"a": _result("a", Operation.UPDATE, ResourceStatus.FAILED)})
        )
        assert state.resources["a"].attributes == {"v": 1}

    def test_failed_apply_keeps_withheld_outputs(self) -> None:
        state = StackState(
            stack="s",
            resources={"a": ResourceState(ResourceKind.NAMESPACE, {"v": 1})},
            outputs={"out": OutputValue("out", "old"), "gone": OutputValue("gone", "x")},
        )
        state.record(
            RunReport(
                stack="s",
                operation="apply",
                results={"a": _result("a", Operation.UPDATE, ResourceStatus.FAILED)},
                outputs={"fresh": OutputValue("fresh", "new")},
            ),
            declared=["out", "fresh"],
        )
        assert state.outputs["out"].value == "old"
        assert state.outputs["fresh"].value == "new"
        assert "gone" not in state.outputs

    def test_destroy_removes_deleted_and_clears_outputs_when_empty(self) -> None:
        state = StackState(
            stack="s",
            resources={
                "a": ResourceState(ResourceKind.NAMESPACE, {}),
                "b": ResourceState(ResourceKind.NAMESPACE, {}),
            },
            outputs={"out": OutputValue("out", "v")},
        )
        state.record(
            RunReport(
                stack="s",
                operation="destroy",
                results={
                    "a": _result("a", Operation.DELETE),
                    "b": _result("b", Operation.DELETE, ResourceStatus.FAILED),
                },
            )
        )
        assert set(state.resources) == {"b"}
        assert "out" in state.outputs

        state.record(RunReport(stack="s", operation="destroy", results={"b": _result("b", Operation.DELETE)}))
        assert state.resources == {}
        assert state.outputs == {}
