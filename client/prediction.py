"""
Client-side prediction: advance the entity every tick without waiting for
the server, and fold corrections back in by replaying history.
"""

from common.clock import Stopwatch
from common.config import CLIENT_SPEED, HISTORY_CAPACITY
from common.history import UpdateHistory
from common.update import TickUpdate, UpdateState
from client.reconciliation import check_retained, replay


class PredictiveSimulator:
    """
    Owns the predicted position and the tick history.
    Only the loop thread touches client_position.
    """

    def __init__(self, channel=None, speed: int = CLIENT_SPEED,
                 capacity: int = HISTORY_CAPACITY, clock=None,
                 guard_stale: bool = False, verbose: bool = True):
        self.channel = channel
        self.speed = speed
        self.guard_stale = guard_stale
        self.verbose = verbose

        self.history = UpdateHistory(capacity)
        self.timer = Stopwatch(clock)
        self.client_position = 0
        self.next_id = 0

    def _log(self, msg: str):
        if self.verbose:
            print(msg, flush=True)

    @property
    def bootstrapped(self) -> bool:
        return self.next_id > 0

    def bootstrap(self) -> TickUpdate:
        """Record the starting update (id 0, position 0)."""
        if self.bootstrapped:
            raise RuntimeError("Client simulation already bootstrapped")
        update = TickUpdate(self.next_id, 0, self.client_position,
                            UpdateState.MOVING)
        self.history.record(update)
        self.next_id += 1
        self.timer.restart()
        return update

    def advance_tick(self, elapsed_ms: int) -> TickUpdate:
        """
        Predict one tick of movement and send it to the server.

        The update is dispatched fire-and-forget: the returned future from
        the channel is not waited on.
        """
        if elapsed_ms < 0:
            raise ValueError(f"Elapsed time must be non-negative, got {elapsed_ms}")

        move_distance = elapsed_ms * self.speed
        self.client_position += move_distance

        self._log(f"[CLIENT] Processing update #{self.next_id}: "
                  f"moved {move_distance}, position {self.client_position}")

        update = TickUpdate(self.next_id, elapsed_ms, self.client_position,
                            UpdateState.MOVING)
        self.history.record(update)
        if self.channel is not None:
            self.channel.send(update)

        self.next_id += 1
        self.timer.restart()
        return update

    def reconcile(self, correction: TickUpdate):
        """
        Adopt the server's position for ``correction.id`` and replay every
        later tick on top of it. Returns a ReplayResult.
        """
        if correction.id < 0 or correction.id >= self.next_id:
            raise ValueError(
                f"Correction for tick {correction.id} outside "
                f"[0, {self.next_id})"
            )
        if self.guard_stale:
            check_retained(self.history, correction.id, self.next_id)

        self._log(f"[CLIENT] Correction for update #{correction.id} while at "
                  f"update #{self.next_id}: server position {correction.position}")

        result = replay(self.history, correction, self.next_id, self.speed)
        self.client_position = result.final_position

        for update in result.replayed:
            self._log(f"[CLIENT]   replayed update #{update.id}: "
                      f"position {update.position}")
        self._log(f"[CLIENT] Done correcting. Current position: "
                  f"{self.client_position}")
        return result
