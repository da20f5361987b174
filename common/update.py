"""
Tick updates: the unit of state history exchanged between client and server.
"""

from enum import Enum


class UpdateState(Enum):
    """Activity tag carried by every update."""
    MOVING = "Moving"


class TickUpdate:
    """
    Immutable snapshot of the entity after one simulation tick.
    Corrections from the server use the same type.
    """

    __slots__ = ('id', 'delta_time', 'position', 'state')

    def __init__(self, id: int, delta_time: int = 0, position: int = 0,
                 state: UpdateState = UpdateState.MOVING):
        object.__setattr__(self, 'id', id)
        object.__setattr__(self, 'delta_time', delta_time)
        object.__setattr__(self, 'position', position)
        object.__setattr__(self, 'state', state)

    def __setattr__(self, name, value):
        raise AttributeError(f"TickUpdate is immutable (tried to set {name!r})")

    def with_position(self, position: int) -> 'TickUpdate':
        """Return a copy of this update carrying a different position."""
        return TickUpdate(self.id, self.delta_time, position, self.state)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'delta_time': self.delta_time,
            'position': self.position,
            'state': self.state.value,
        }

    def __eq__(self, other):
        if not isinstance(other, TickUpdate):
            return NotImplemented
        return (self.id, self.delta_time, self.position, self.state) == \
               (other.id, other.delta_time, other.position, other.state)

    def __hash__(self):
        return hash((self.id, self.delta_time, self.position, self.state))

    def __repr__(self):
        return (f"TickUpdate(id={self.id}, dt={self.delta_time}, "
                f"pos={self.position}, state={self.state.value})")
