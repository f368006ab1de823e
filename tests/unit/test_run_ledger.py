"""Tests for the RunLedger — append-only, hash-chained, tamper-evident."""

from __future__ import annotations

import threading

from crossdeploy.core.run_ledger import RunLedger
from crossdeploy.models.ledger import LedgerEntry


def _entry(run_id: str = "run-1", stage_id: str = "Source", transition: str = "pending->running", **kw):
    return LedgerEntry(run_id=run_id, stage_id=stage_id, state_transition=transition, **kw)


class TestRunLedger:
    def test_append_sets_entry_hash(self, ledger: RunLedger):
        sealed = ledger.append(_entry())
        assert sealed.entry_hash != ""
        assert sealed.previous_entry_hash == ""  # first entry

    def test_hash_chain_links(self, ledger: RunLedger):
        e1 = ledger.append(_entry())
        e2 = ledger.append(_entry(transition="running->succeeded"))
        assert e2.previous_entry_hash == e1.entry_hash

    def test_chains_are_per_run(self, ledger: RunLedger):
        ledger.append(_entry(run_id="run-1"))
        other = ledger.append(_entry(run_id="run-2"))
        assert other.previous_entry_hash == ""

    def test_verify_chain_valid(self, ledger: RunLedger):
        ledger.append(_entry(stage_id="Source"))
        ledger.append(_entry(stage_id="Build"))
        assert ledger.verify_chain("run-1") is True

    def test_verify_chain_empty(self, ledger: RunLedger):
        assert ledger.verify_chain("nonexistent") is True

    def test_get_latest(self, ledger: RunLedger):
        ledger.append(_entry(stage_id="Source"))
        e2 = ledger.append(_entry(stage_id="Build"))
        latest = ledger.get_latest("run-1")
        assert latest is not None
        assert latest.entry_id == e2.entry_id
        assert ledger.get_latest("nonexistent") is None

    def test_get_stage_history(self, ledger: RunLedger):
        ledger.append(_entry(stage_id="Source"))
        ledger.append(_entry(stage_id="Build"))
        ledger.append(_entry(stage_id="Source", action_name="CodeCommit_Source"))
        history = ledger.get_stage_history("run-1", "Source")
        assert len(history) == 2

    def test_get_run_entries(self, ledger: RunLedger):
        ledger.append(_entry(run_id="run-1"))
        ledger.append(_entry(run_id="run-2"))
        assert len(ledger.get_run_entries("run-1")) == 1

    def test_get_run_entries_is_a_copy(self, ledger: RunLedger):
        ledger.append(_entry())
        ledger.get_run_entries("run-1").clear()
        assert len(ledger.get_run_entries("run-1")) == 1

    def test_get_all_run_ids_most_recent_first(self, ledger: RunLedger):
        ledger.append(_entry(run_id="run-1"))
        ledger.append(_entry(run_id="run-2"))
        assert ledger.get_all_run_ids() == ["run-2", "run-1"]

    def test_to_state(self):
        assert _entry(transition="running->failed").to_state == "failed"

    def test_concurrent_appends_keep_chain_valid(self, ledger: RunLedger):
        def worker(n: int) -> None:
            for i in range(20):
                ledger.append(_entry(stage_id=f"stage-{n}", reason=str(i)))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(ledger.get_run_entries("run-1")) == 80
        assert ledger.verify_chain("run-1") is True
