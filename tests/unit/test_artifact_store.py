"""Tests for the VersionedArtifactStore — versions, integrity, key binding."""

from __future__ import annotations

from pathlib import Path

import pytest

from crossdeploy.core.artifact_store import (
    ArtifactIntegrityError,
    ArtifactStoreKeyMismatchError,
    VersionedArtifactStore,
)

KEY = "arn:aws:kms:us-east-1:111111111111:key/1234abcd-12ab-34cd-56ef-1234567890ab"


@pytest.fixture
def store(tmp_path: Path) -> VersionedArtifactStore:
    return VersionedArtifactStore(
        tmp_path / "store", bucket_name="artifacts", key_arn=KEY, pipeline_name="Pipe"
    )


class TestPut:
    def test_put_returns_artifact(self, store: VersionedArtifactStore):
        artifact = store.put("SourceOutput", {"a.txt": b"hello"}, producing_stage="Source")
        assert artifact.name == "SourceOutput"
        assert artifact.producing_stage == "Source"
        assert artifact.bucket == "artifacts"
        assert artifact.key_prefix == f"Pipe/SourceOutput/{artifact.version_id}"
        assert artifact.location == f"s3://artifacts/Pipe/SourceOutput/{artifact.version_id}"
        assert artifact.files["a.txt"].startswith("sha256:")

    def test_new_version_supersedes(self, store: VersionedArtifactStore):
        v1 = store.put("CdkBuildOutput", {"t.json": b"1"}, producing_stage="Build")
        v2 = store.put("CdkBuildOutput", {"t.json": b"2"}, producing_stage="Build")
        assert v1.version_id != v2.version_id
        assert store.latest("CdkBuildOutput") == v2
        assert store.versions("CdkBuildOutput") == [v1, v2]

    def test_old_versions_stay_readable(self, store: VersionedArtifactStore):
        v1 = store.put("CdkBuildOutput", {"t.json": b"1"}, producing_stage="Build")
        store.put("CdkBuildOutput", {"t.json": b"2"}, producing_stage="Build")
        assert store.get_file(v1, "t.json") == b"1"

    def test_identical_content_shares_object(self, store: VersionedArtifactStore):
        v1 = store.put("A", {"x": b"same"}, producing_stage="Build")
        v2 = store.put("B", {"y": b"same"}, producing_stage="Build")
        assert v1.files["x"] == v2.files["y"]

    def test_latest_of_unknown_name(self, store: VersionedArtifactStore):
        assert store.latest("nothing") is None
        assert store.versions("nothing") == []


class TestRead:
    def test_read_files_round_trip(self, store: VersionedArtifactStore):
        files = {"ApplicationStack.template.json": b"{}", "IntegTestSfnStack.template.json": b"[]"}
        artifact = store.put("CdkBuildOutput", files, producing_stage="Build")
        assert store.read_files(artifact) == files

    def test_unlisted_file_is_key_error(self, store: VersionedArtifactStore):
        artifact = store.put("CdkBuildOutput", {"a": b"1"}, producing_stage="Build")
        with pytest.raises(KeyError, match="manifest lists"):
            store.get_file(artifact, "missing.template.json")

    def test_corrupt_object_detected(self, store: VersionedArtifactStore, tmp_path: Path):
        artifact = store.put("CdkBuildOutput", {"a": b"original"}, producing_stage="Build")
        digest = artifact.files["a"].removeprefix("sha256:")
        path = tmp_path / "store" / "objects" / digest[:2] / digest[2:4] / f"{digest}.dat"
        path.write_bytes(b"tampered")
        with pytest.raises(ArtifactIntegrityError):
            store.get_file(artifact, "a")
        assert store.verify(artifact) is False


class TestManifest:
    def test_verify_clean_artifact(self, store: VersionedArtifactStore):
        artifact = store.put("CdkBuildOutput", {"a": b"1"}, producing_stage="Build")
        assert store.verify(artifact) is True

    def test_manifest_hash_depends_on_files(self, store: VersionedArtifactStore):
        a = store.put("X", {"a": b"1"}, producing_stage="Build")
        b = store.put("X", {"a": b"2"}, producing_stage="Build")
        assert store.manifest(a).manifest_hash != store.manifest(b).manifest_hash

    def test_forged_file_list_fails_verification(self, store: VersionedArtifactStore):
        artifact = store.put("X", {"a": b"1"}, producing_stage="Build")
        forged = artifact.model_copy(update={"files": {**artifact.files, "extra": artifact.files["a"]}})
        assert store.verify(forged) is False


class TestPersistence:
    def test_index_reloaded_from_disk(self, tmp_path: Path):
        first = VersionedArtifactStore(tmp_path / "s", bucket_name="b", key_arn=KEY)
        v1 = first.put("SourceOutput", {"a": b"1"}, producing_stage="Source")
        v2 = first.put("SourceOutput", {"a": b"2"}, producing_stage="Source")

        second = VersionedArtifactStore(tmp_path / "s", bucket_name="b", key_arn=KEY)
        assert second.latest("SourceOutput").version_id == v2.version_id
        assert [a.version_id for a in second.versions("SourceOutput")] == [
            v1.version_id,
            v2.version_id,
        ]


class TestKeyBinding:
    def test_encryption_key(self, store: VersionedArtifactStore):
        assert store.encryption_key_arn == KEY
        store.ensure_key(KEY)

    def test_other_key_rejected(self, store: VersionedArtifactStore):
        with pytest.raises(ArtifactStoreKeyMismatchError):
            store.ensure_key(KEY.replace("1234abcd", "ffffffff"))
