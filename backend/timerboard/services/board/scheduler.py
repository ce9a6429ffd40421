import itertools
import logging
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class CountdownScheduler:
    """Keeps at most one live tick handle per timer id.

    A handle is a generation number. Workers re-check their generation after
    every sleep, so cancelling or restarting a countdown silently retires the
    old worker instead of letting it fire a stale tick.

    - ``on_tick(timer_id, generation)`` is called once per ``interval``
    - ``start_background_task`` / ``sleep`` come from Flask-SocketIO; when
      ``start_background_task`` is None no worker is spawned and ticks are
      driven by the caller (tests)
    """

    def __init__(
        self,
        on_tick: Callable[[int, int], None],
        start_background_task: Optional[Callable] = None,
        sleep: Optional[Callable[[float], None]] = None,
        interval: float = 1.0,
    ) -> None:
        self._on_tick = on_tick
        self._start_background_task = start_background_task
        self._sleep = sleep
        self.interval = interval
        self._handles: Dict[int, int] = {}
        self._counter = itertools.count(1)

    def start(self, timer_id: int) -> int:
        self.cancel(timer_id)
        generation = next(self._counter)
        self._handles[timer_id] = generation
        if self._start_background_task is not None:
            self._start_background_task(self._worker, timer_id, generation)
        logger.debug(f"[tick-start] timer={timer_id} generation={generation}")
        return generation

    def cancel(self, timer_id: int) -> bool:
        generation = self._handles.pop(timer_id, None)
        if generation is not None:
            logger.debug(f"[tick-cancel] timer={timer_id} generation={generation}")
        return generation is not None

    def cancel_all(self) -> None:
        self._handles.clear()

    def is_active(self, timer_id: int) -> bool:
        return timer_id in self._handles

    def generation(self, timer_id: int) -> Optional[int]:
        return self._handles.get(timer_id)

    def is_current(self, timer_id: int, generation: int) -> bool:
        return self._handles.get(timer_id) == generation

    def active_ids(self) -> List[int]:
        return sorted(self._handles)

    def _worker(self, timer_id: int, generation: int) -> None:
        while self.is_current(timer_id, generation):
            self._sleep(self.interval)
            if not self.is_current(timer_id, generation):
                return
            try:
                self._on_tick(timer_id, generation)
            except Exception:
                # next tick recomputes from endTime
                logger.exception(f"[tick-error] timer={timer_id} generation={generation}")
