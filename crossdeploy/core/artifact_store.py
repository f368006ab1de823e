"""Versioned artifact store bound to the pipeline's encryption key.

File contents are content-addressed and immutable::

    {base_path}/objects/{sha256[0:2]}/{sha256[2:4]}/{sha256}.dat

Each ``put`` writes a new version of a named artifact; the manifest for that
version lives at ``{base_path}/manifests/{name}/{version_id}.json``.  The
newest version of a name wins; older versions stay readable.  There is no
delete.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from pathlib import Path

from crossdeploy.core.hasher import content_address, sha256_hex
from crossdeploy.models.artifacts import Artifact, ArtifactManifest

logger = logging.getLogger(__name__)


class ArtifactIntegrityError(RuntimeError):
    """Raised when stored bytes no longer match their content address."""


class ArtifactStoreKeyMismatchError(ValueError):
    """Raised when a consumer expects the store to be sealed with a different key."""


class VersionedArtifactStore:
    """One artifact bucket, one encryption key, many versioned artifacts.

    Parameters
    ----------
    base_path:
        Root directory standing in for the bucket.
    bucket_name:
        Name of the artifact bucket; recorded on every artifact.
    key_arn:
        ARN of the single key every artifact in this store is encrypted with.
    pipeline_name:
        Key prefix for artifact versions.
    """

    def __init__(
        self,
        base_path: Path,
        *,
        bucket_name: str,
        key_arn: str,
        pipeline_name: str = "pipeline",
    ) -> None:
        self._base = Path(base_path)
        self._objects = self._base / "objects"
        self._manifests = self._base / "manifests"
        self._objects.mkdir(parents=True, exist_ok=True)
        self._manifests.mkdir(parents=True, exist_ok=True)

        self.bucket_name = bucket_name
        self.pipeline_name = pipeline_name
        self._key_arn = key_arn
        self._lock = threading.Lock()
        self._versions: dict[str, list[Artifact]] = {}
        self._load_index()

    @property
    def encryption_key_arn(self) -> str:
        return self._key_arn

    def ensure_key(self, key_arn: str) -> None:
        """Refuse to serve a pipeline whose key differs from the store's key."""
        if key_arn != self._key_arn:
            raise ArtifactStoreKeyMismatchError(
                f"Artifact store {self.bucket_name} is encrypted with "
                f"{self._key_arn}, not {key_arn}"
            )

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def _object_path(self, digest: str) -> Path:
        return self._objects / digest[:2] / digest[2:4] / f"{digest}.dat"

    def _manifest_path(self, name: str, version_id: str) -> Path:
        return self._manifests / name / f"{version_id}.json"

    def _load_index(self) -> None:
        """Rebuild the in-memory version index from manifests on disk."""
        for path in self._manifests.glob("*/*.json"):
            record = json.loads(path.read_text(encoding="utf-8"))
            artifact = Artifact.model_validate(record["artifact"])
            self._versions.setdefault(artifact.name, []).append(artifact)
        for versions in self._versions.values():
            versions.sort(key=lambda a: (a.created_at, a.version_id))
        if self._versions:
            logger.debug(
                "Loaded %d artifact name(s) from %s", len(self._versions), self._base
            )

    def _write_object(self, data: bytes) -> str:
        digest = sha256_hex(data)
        path = self._object_path(digest)
        if path.exists():
            if sha256_hex(path.read_bytes()) != digest:
                raise ArtifactIntegrityError(
                    f"Existing object {digest} failed integrity check"
                )
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        return f"sha256:{digest}"

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def put(
        self,
        name: str,
        files: dict[str, bytes],
        *,
        producing_stage: str,
        run_id: str = "",
    ) -> Artifact:
        """Store ``files`` as a new version of artifact ``name``."""
        with self._lock:
            addresses = {fname: self._write_object(data) for fname, data in files.items()}
            sequence = len(self._versions.get(name, [])) + 1
            version_id = f"{sequence:06d}-{uuid.uuid4().hex[:8]}"
            artifact = Artifact(
                name=name,
                producing_stage=producing_stage,
                bucket=self.bucket_name,
                key_prefix=f"{self.pipeline_name}/{name}/{version_id}",
                version_id=version_id,
                run_id=run_id,
                files=addresses,
            )
            manifest = self.manifest(artifact)
            path = self._manifest_path(name, version_id)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps(
                    {
                        "artifact": artifact.model_dump(mode="json"),
                        "manifest_hash": manifest.manifest_hash,
                        "key_arn": self._key_arn,
                    },
                    indent=2,
                    sort_keys=True,
                ),
                encoding="utf-8",
            )
            self._versions.setdefault(name, []).append(artifact)

        logger.info(
            "Stored %s version %s (%d file(s)) from %s",
            name,
            version_id,
            len(files),
            producing_stage,
        )
        return artifact

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def latest(self, name: str) -> Artifact | None:
        versions = self._versions.get(name)
        return versions[-1] if versions else None

    def versions(self, name: str) -> list[Artifact]:
        """All versions of ``name``, oldest first."""
        return list(self._versions.get(name, []))

    def get_file(self, artifact: Artifact, filename: str) -> bytes:
        """Read one file of an artifact by name, verifying its content address.

        Raises
        ------
        KeyError
            If the artifact's manifest does not list ``filename``.
        ArtifactIntegrityError
            If the stored bytes do not hash to the recorded address.
        """
        if filename not in artifact.files:
            raise KeyError(
                f"{artifact.name}@{artifact.version_id} has no file {filename!r}; "
                f"manifest lists {artifact.file_names}"
            )
        address = artifact.files[filename]
        digest = address.removeprefix("sha256:")
        path = self._object_path(digest)
        if not path.exists():
            raise FileNotFoundError(f"Object not found: {address}")
        data = path.read_bytes()
        if sha256_hex(data) != digest:
            raise ArtifactIntegrityError(f"{filename} in {artifact.name} is corrupt")
        return data

    def read_files(self, artifact: Artifact) -> dict[str, bytes]:
        return {name: self.get_file(artifact, name) for name in artifact.file_names}

    # ------------------------------------------------------------------
    # Manifests and verification
    # ------------------------------------------------------------------

    @staticmethod
    def manifest(artifact: Artifact) -> ArtifactManifest:
        """The artifact's file set with a hash over names and content addresses."""
        return ArtifactManifest(
            artifact_name=artifact.name,
            version_id=artifact.version_id,
            files=dict(artifact.files),
            manifest_hash=content_address(
                {"artifact": artifact.name, "files": artifact.files}
            ),
        )

    def verify(self, artifact: Artifact) -> bool:
        """Re-hash every file and compare the stored manifest hash."""
        path = self._manifest_path(artifact.name, artifact.version_id)
        if not path.exists():
            return False
        record = json.loads(path.read_text(encoding="utf-8"))
        if record.get("manifest_hash") != self.manifest(artifact).manifest_hash:
            return False
        for address in artifact.files.values():
            object_path = self._object_path(address.removeprefix("sha256:"))
            if not object_path.exists():
                return False
            if f"sha256:{sha256_hex(object_path.read_bytes())}" != address:
                return False
        return True
