"""Hashing for the run ledger, artifact manifests and graph fingerprints.

Everything hashed here goes through one canonical JSON encoding, so equal
values always give equal digests regardless of key order.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_bytes(obj: Any) -> bytes:
    """Sorted keys, compact separators, ASCII-only, UTF-8."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def content_address(obj: Any) -> str:
    """``sha256:<hex>`` of the canonical encoding of ``obj``."""
    return f"sha256:{sha256_hex(canonical_bytes(obj))}"


def action_digest(stage_id: str, action_name: str, side: str, values: dict[str, Any]) -> str:
    """Digest of what an action consumed (``side="inputs"``) or produced (``"outputs"``).

    The input digest covers the artifact versions handed to the action, so two
    runs that feed an action the same versions record the same input hash.
    """
    return sha256_hex(
        canonical_bytes({"stage_id": stage_id, "action": action_name, side: values})
    )


def seal(entry_dict: dict[str, Any]) -> str:
    """Hash of a ledger entry over every field except ``entry_hash``."""
    return sha256_hex(
        canonical_bytes({k: v for k, v in entry_dict.items() if k != "entry_hash"})
    )
