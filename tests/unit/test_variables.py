"""Tests for VariableNamespaces — publish once, resolve references."""

from __future__ import annotations

import pytest

from crossdeploy.core.variables import (
    NamespaceConflictError,
    UnresolvedVariableError,
    VariableNamespaces,
)


@pytest.fixture
def variables() -> VariableNamespaces:
    ns = VariableNamespaces()
    ns.publish(
        "Deploy_Application_Ns",
        {"KinesisInputStreamName": "input-stream", "FirehoseOutputBucket": "output-bucket"},
    )
    return ns


class TestPublish:
    def test_get(self, variables: VariableNamespaces):
        assert variables.get("Deploy_Application_Ns", "KinesisInputStreamName") == "input-stream"

    def test_namespace_is_write_once(self, variables: VariableNamespaces):
        with pytest.raises(NamespaceConflictError):
            variables.publish("Deploy_Application_Ns", {"Other": "x"})

    def test_values_must_be_strings(self):
        with pytest.raises(TypeError):
            VariableNamespaces().publish("Ns", {"Count": 3})

    def test_snapshot_is_a_copy(self, variables: VariableNamespaces):
        snap = variables.snapshot()
        snap["Deploy_Application_Ns"]["KinesisInputStreamName"] = "changed"
        assert variables.get("Deploy_Application_Ns", "KinesisInputStreamName") == "input-stream"


class TestResolve:
    def test_resolves_nested_payload(self, variables: VariableNamespaces):
        payload = {
            "KinesisInputStreamName": "#{Deploy_Application_Ns.KinesisInputStreamName}",
            "nested": ["s3://#{Deploy_Application_Ns.FirehoseOutputBucket}/out"],
            "waitSeconds": "30",
            "record_count": 1000,
        }
        assert variables.resolve(payload) == {
            "KinesisInputStreamName": "input-stream",
            "nested": ["s3://output-bucket/out"],
            "waitSeconds": "30",
            "record_count": 1000,
        }

    def test_unknown_key(self, variables: VariableNamespaces):
        with pytest.raises(UnresolvedVariableError, match="Missing"):
            variables.resolve("#{Deploy_Application_Ns.Missing}")

    def test_unknown_namespace(self, variables: VariableNamespaces):
        with pytest.raises(UnresolvedVariableError):
            variables.resolve({"x": "#{Nowhere.Key}"})

    def test_lookup_is_case_sensitive(self, variables: VariableNamespaces):
        with pytest.raises(UnresolvedVariableError):
            variables.get("deploy_application_ns", "KinesisInputStreamName")

    def test_plain_strings_pass_through(self, variables: VariableNamespaces):
        assert variables.resolve("no refs here") == "no refs here"

    def test_unresolved_error_message(self, variables: VariableNamespaces):
        with pytest.raises(UnresolvedVariableError) as excinfo:
            variables.get("Nowhere", "Key")
        assert str(excinfo.value).startswith("#{Nowhere.Key} is not published")
