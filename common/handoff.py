"""
Pending-correction handoff between server tasks and the client loop.

Server tasks call offer() from their own threads; the client loop calls
take() once per iteration. Both run under one lock, so the loop's
read-then-clear can never interleave with a concurrent offer.
"""

import threading
from collections import deque

from common.config import DEFAULT_HANDOFF_POLICY
from common.errors import HandoffConflictError
from common.update import TickUpdate


class HandoffPolicy:
    """What to do when a correction arrives while another is unconsumed."""
    REPLACE = 'replace'   # Keep the correction for the newer tick
    QUEUE   = 'queue'     # FIFO, drained one per take()
    REJECT  = 'reject'    # Raise HandoffConflictError

    ALL = (REPLACE, QUEUE, REJECT)


class CorrectionMailbox:
    """
    Thread-safe holder for the correction(s) awaiting reconciliation.

    Under REPLACE the slot holds at most one correction. Server position is
    cumulative, so a correction for a later tick subsumes an earlier one and
    wins regardless of arrival order.
    """

    def __init__(self, policy: str = DEFAULT_HANDOFF_POLICY, on_conflict=None):
        if policy not in HandoffPolicy.ALL:
            raise ValueError(f"Unknown handoff policy: {policy!r}")
        self.policy = policy
        self.on_conflict = on_conflict   # callable(HandoffConflictError)
        self._lock = threading.Lock()
        self._pending = deque()

        # Statistics
        self.offered = 0
        self.conflicts = 0

    def offer(self, correction: TickUpdate):
        """Post a correction from the server side."""
        conflict = None
        with self._lock:
            self.offered += 1
            if not self._pending or self.policy == HandoffPolicy.QUEUE:
                if self._pending:
                    self.conflicts += 1
                self._pending.append(correction)
                return

            current = self._pending[0]
            conflict = HandoffConflictError(current.id, correction.id)
            self.conflicts += 1
            if self.policy == HandoffPolicy.REJECT:
                raise conflict
            if correction.id >= current.id:
                self._pending[0] = correction

        if self.on_conflict is not None:
            self.on_conflict(conflict)

    def take(self) -> TickUpdate:
        """Atomically remove and return the next correction, or None."""
        with self._lock:
            if not self._pending:
                return None
            return self._pending.popleft()

    def peek(self) -> TickUpdate:
        with self._lock:
            return self._pending[0] if self._pending else None

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)
