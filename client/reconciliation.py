"""
Server reconciliation: rebase the predicted position on an authoritative
correction and replay every later tick recorded in history.
"""

from common.errors import StaleTickError


class ReplayResult:
    """Outcome of one reconciliation pass."""

    __slots__ = ('corrected_id', 'predicted_position', 'corrected_position',
                 'replayed', 'final_position')

    def __init__(self, corrected_id: int, predicted_position: int,
                 corrected_position: int, replayed: list, final_position: int):
        self.corrected_id = corrected_id
        self.predicted_position = predicted_position
        self.corrected_position = corrected_position
        self.replayed = replayed            # TickUpdates rewritten by the replay
        self.final_position = final_position

    @property
    def error(self) -> int:
        """How far the prediction was from the authority at the corrected tick."""
        if self.predicted_position is None:
            return 0
        return abs(self.corrected_position - self.predicted_position)

    def to_dict(self) -> dict:
        return {
            'corrected_id': self.corrected_id,
            'predicted_position': self.predicted_position,
            'corrected_position': self.corrected_position,
            'replayed_ids': [u.id for u in self.replayed],
            'final_position': self.final_position,
        }


def check_retained(history, first_id: int, next_id: int):
    """Raise StaleTickError if any tick in [first_id, next_id) was evicted."""
    for tick_id in range(first_id, next_id):
        if not history.valid_for(tick_id, next_id):
            raise StaleTickError(tick_id, next_id, history.capacity)


def replay(history, correction, next_id: int, speed: int) -> ReplayResult:
    """
    Rewrite history from ``correction`` onwards.

    The corrected slot takes the authoritative position, then each later
    tick's stored delta_time is re-applied at ``speed`` and the running
    position is written back into that tick's slot.
    """
    previous = history.get(correction.id)
    predicted = previous.position if previous is not None else None

    history.overwrite_position(correction.id, correction.position)
    position = correction.position

    replayed = []
    for tick_id in range(correction.id + 1, next_id):
        past_update = history.get(tick_id)
        position += past_update.delta_time * speed
        replayed.append(history.overwrite_position(tick_id, position))

    return ReplayResult(correction.id, predicted, correction.position,
                        replayed, position)
