"""
Exceptions raised by the prediction/reconciliation engine.

Disagreement between client and server is not an error; it is the normal
trigger for a correction. These cover the hazards of the mechanism itself.
"""


class ReconciliationError(Exception):
    """Base class for reconciliation failures."""


class StaleTickError(ReconciliationError):
    """A correction or replay referenced a tick evicted from the history."""

    def __init__(self, tick_id: int, next_id: int, capacity: int):
        self.tick_id = tick_id
        self.next_id = next_id
        self.capacity = capacity
        super().__init__(
            f"Tick {tick_id} is no longer in history "
            f"(next id {next_id}, capacity {capacity})"
        )


class HandoffConflictError(ReconciliationError):
    """A correction arrived while another was still waiting to be consumed."""

    def __init__(self, pending_id: int, incoming_id: int):
        self.pending_id = pending_id
        self.incoming_id = incoming_id
        super().__init__(
            f"Correction for tick {incoming_id} arrived while correction "
            f"for tick {pending_id} is still pending"
        )
