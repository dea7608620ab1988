import copy
import time
from typing import Callable


class LeaderboardCache:
    """
    Holds the last computed leaderboard for ttl_seconds.

    One instance lives on app.state; every write that can change a score
    calls invalidate() once its transaction has committed. The clock is
    injectable so tests don't have to sleep.

    A rebuild takes the generation before reading and passes it to set().
    If an invalidate() landed in between, the rebuilt board may predate
    that write and is dropped.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: list[dict] | None = None
        self._stored_at: float | None = None
        self.generation = 0

    def get(self) -> list[dict] | None:
        if self._entries is None or self._stored_at is None:
            return None
        if self._clock() - self._stored_at >= self.ttl_seconds:
            self._entries = None
            self._stored_at = None
            return None
        return copy.deepcopy(self._entries)

    def set(self, entries: list[dict], generation: int | None = None) -> bool:
        """Store entries. Returns False when they were computed before the last invalidate()."""
        if generation is not None and generation != self.generation:
            return False
        self._entries = copy.deepcopy(entries)
        self._stored_at = self._clock()
        return True

    def invalidate(self) -> None:
        self._entries = None
        self._stored_at = None
        self.generation += 1
