"""Versioned artifact models (immutable once written)."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class Artifact(BaseModel):
    """A named bundle of files produced by one stage and consumed by the next.

    ``files`` maps each file name to the content address of its bytes in the
    artifact store.  A newer version of the same name supersedes this one;
    this one is never modified.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    producing_stage: str
    bucket: str
    key_prefix: str
    version_id: str
    run_id: str = ""
    files: dict[str, str] = {}
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def file_names(self) -> list[str]:
        return sorted(self.files)

    @property
    def location(self) -> str:
        return f"s3://{self.bucket}/{self.key_prefix}"


class ArtifactManifest(BaseModel):
    """The file set an artifact carries, with a hash over names and contents."""

    model_config = ConfigDict(frozen=True)

    artifact_name: str
    version_id: str
    files: dict[str, str]
    manifest_hash: str = ""
