"""Run ledger entry model (append-only, hash-chained).

One entry per state transition of a stage or an action.  The monitor and the
run report are projections of these entries.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class LedgerEntry(BaseModel):
    """A single transition recorded in the run ledger."""

    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    run_id: str
    stage_id: str
    action_name: str = ""  # empty for stage-level transitions
    state_transition: str  # "from_state->to_state", e.g. "pending->running"
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    reason: str = ""
    input_hash: str = ""
    output_hash: str = ""
    artifact_references: list[str] = []
    previous_entry_hash: str = ""
    entry_hash: str = ""  # computed on append, seals this entry

    @property
    def to_state(self) -> str:
        return self.state_transition.split("->", 1)[-1]
