"""Run monitor — read-only projection over the run ledger.

The monitor never keeps state of its own.  Every snapshot re-reads the
ledger.

Modules
-------
projection
    ``MonitorProjection`` replays ledger entries into a frozen
    ``MonitorSnapshot`` of one run.
renderer
    ``MonitorRenderer`` draws a ``MonitorSnapshot`` with Rich.
"""
