"""
Authoritative simulation owned by the server.
Recomputes the entity's position from the client's own deltas and
answers with a correction whenever the two disagree.
"""

import threading

from common.config import SERVER_SPEED
from common.update import TickUpdate, UpdateState


class AuthoritativeSimulator:
    """
    The single source of truth for the entity's position.

    process_update() runs on whatever task the channel delivers from;
    accumulate-and-compare is serialized so concurrently finishing
    deliveries never interleave on server_position.
    """

    def __init__(self, speed: int = SERVER_SPEED, verbose: bool = True):
        self.speed = speed
        self.verbose = verbose
        self.server_position = 0
        self._lock = threading.Lock()

        # Statistics
        self.processed = 0
        self.corrections_sent = 0

    def _log(self, msg: str):
        if self.verbose:
            print(msg, flush=True)

    def process_update(self, update: TickUpdate) -> TickUpdate:
        """
        Apply one client update to the authoritative state.

        Returns a correction carrying the server's position for
        ``update.id`` if it differs from the client's, otherwise None.
        """
        with self._lock:
            move_distance = update.delta_time * self.speed
            self.server_position += move_distance
            self.processed += 1
            server_position = self.server_position

            if server_position == update.position:
                self._log(f"[SERVER] Update #{update.id}: client and server "
                          f"agree at {server_position}. No correction necessary")
                return None

            self.corrections_sent += 1

        self._log(f"[SERVER] Update #{update.id}: client says {update.position}, "
                  f"server computed {server_position}. Sending correction")
        return TickUpdate(update.id, update.delta_time, server_position,
                          UpdateState.MOVING)
