"""
Fixed-capacity update history.

One TickUpdate per tick, stored at slot ``id % capacity``. Slots are reused
as ids grow, so a tick older than ``next_id - capacity`` silently reads back
whatever newer tick now occupies its slot. ``get`` keeps that behavior;
``valid_for`` and ``get_checked`` make it detectable.
"""

from common.config import HISTORY_CAPACITY
from common.errors import StaleTickError
from common.update import TickUpdate


class UpdateHistory:
    """Ring buffer of recent tick updates keyed by tick id."""

    def __init__(self, capacity: int = HISTORY_CAPACITY):
        if capacity <= 0:
            raise ValueError(f"History capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._slots = [None] * capacity

    def record(self, update: TickUpdate):
        """Store an update in its slot, replacing any previous occupant."""
        self._slots[update.id % self.capacity] = update

    def get(self, tick_id: int) -> TickUpdate:
        """
        Return the update stored in the slot for ``tick_id``.

        No eviction check: if ``tick_id`` has been overwritten by
        wraparound, the newer occupant is returned. Never-written slots
        return None.
        """
        return self._slots[tick_id % self.capacity]

    def valid_for(self, tick_id: int, next_id: int) -> bool:
        """True if ``tick_id`` is still retained given the next id to assign."""
        if tick_id < 0 or tick_id >= next_id or tick_id < next_id - self.capacity:
            return False
        entry = self._slots[tick_id % self.capacity]
        return entry is not None and entry.id == tick_id

    def get_checked(self, tick_id: int, next_id: int) -> TickUpdate:
        """Like get(), but raises StaleTickError for evicted ticks."""
        if not self.valid_for(tick_id, next_id):
            raise StaleTickError(tick_id, next_id, self.capacity)
        return self._slots[tick_id % self.capacity]

    def overwrite_position(self, tick_id: int, new_position: int) -> TickUpdate:
        """Replace the slot's entry with a copy carrying ``new_position``."""
        index = tick_id % self.capacity
        entry = self._slots[index]
        if entry is None:
            raise KeyError(f"No update recorded in slot for tick {tick_id}")
        self._slots[index] = entry.with_position(new_position)
        return self._slots[index]

    def ids(self) -> list:
        """Tick ids currently held, ascending."""
        return sorted(e.id for e in self._slots if e is not None)

    def __len__(self):
        return sum(1 for e in self._slots if e is not None)
