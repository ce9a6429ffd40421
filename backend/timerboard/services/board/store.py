from typing import Dict, Iterable, List, Optional

from timerboard.models import Timer


class TimerStore:
    """Authoritative id -> Timer mapping.

    Not thread-safe; callers hold the board lock. Mutations only touch the
    map, persistence and broadcast are the caller's job.
    """

    def __init__(self) -> None:
        self._timers: Dict[int, Timer] = {}

    def __contains__(self, timer_id: int) -> bool:
        return timer_id in self._timers

    def __len__(self) -> int:
        return len(self._timers)

    def get(self, timer_id: int) -> Optional[Timer]:
        return self._timers.get(timer_id)

    def get_all(self) -> List[Timer]:
        return [self._timers[k] for k in sorted(self._timers)]

    def ids(self) -> List[int]:
        return sorted(self._timers)

    def upsert(self, timer: Timer) -> None:
        self._timers[timer.id] = timer

    def delete(self, timer_id: int) -> Optional[Timer]:
        return self._timers.pop(timer_id, None)

    def clear(self) -> None:
        self._timers.clear()

    def replace_all(self, timers: Iterable[Timer]) -> None:
        self._timers = {t.id: t for t in timers}
