"""Run ledger — every stage and action transition of every run, in order.

The run report and the monitor are both read from here.  Entries are only
ever appended, and each one is sealed with a hash that also covers the seal
of the entry before it in the same run, so editing, dropping or reordering an
entry is detected by ``verify_chain``.

Run history lives in process with the orchestrator; the artifact store is
the only durable state of the pipeline.
"""

from __future__ import annotations

import threading

from crossdeploy.core.hasher import seal
from crossdeploy.models.ledger import LedgerEntry


class LedgerIntegrityError(RuntimeError):
    """Raised when a run's hash chain does not verify."""


class RunLedger:
    """Per-run hash chains of ``LedgerEntry`` records.  Safe to append from worker threads."""

    def __init__(self) -> None:
        self._entries: dict[str, list[LedgerEntry]] = {}
        self._lock = threading.Lock()

    def append(self, entry: LedgerEntry) -> LedgerEntry:
        """Link ``entry`` to the tail of its run and return the sealed copy."""
        with self._lock:
            chain = self._entries.setdefault(entry.run_id, [])
            linked = entry.model_copy(
                update={
                    "previous_entry_hash": chain[-1].entry_hash if chain else "",
                    "entry_hash": "",
                }
            )
            sealed = linked.model_copy(
                update={"entry_hash": seal(linked.model_dump(mode="json"))}
            )
            chain.append(sealed)
        return sealed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_latest(self, run_id: str) -> LedgerEntry | None:
        chain = self._entries.get(run_id)
        return chain[-1] if chain else None

    def get_stage_history(self, run_id: str, stage_id: str) -> list[LedgerEntry]:
        """Stage-level and action-level entries of one stage."""
        return [e for e in self.get_run_entries(run_id) if e.stage_id == stage_id]

    def get_run_entries(self, run_id: str) -> list[LedgerEntry]:
        with self._lock:
            return list(self._entries.get(run_id, ()))

    def get_all_run_ids(self) -> list[str]:
        """Run ids, newest first."""
        with self._lock:
            return list(reversed(self._entries))

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_chain(self, run_id: str) -> bool:
        """Re-seal every entry of a run and check each link.

        Returns True for an intact chain.

        Raises
        ------
        LedgerIntegrityError
            Naming the first entry whose link or seal does not match.
        """
        expected_previous = ""
        for position, entry in enumerate(self.get_run_entries(run_id)):
            if entry.previous_entry_hash != expected_previous:
                raise LedgerIntegrityError(
                    f"Run {run_id}: entry {position} ({entry.entry_id}) is not linked "
                    f"to its predecessor"
                )
            if seal(entry.model_dump(mode="json")) != entry.entry_hash:
                raise LedgerIntegrityError(
                    f"Run {run_id}: entry {position} ({entry.entry_id}) was modified "
                    f"after it was sealed"
                )
            expected_previous = entry.entry_hash
        return True
