import logging
import threading
import time
from typing import Any, Callable, Hashable, List, Optional

from timerboard.models import (
    Timer,
    TimerValidationError,
    format_timestamp,
    parse_minutes,
    parse_timer_id,
    remaining_seconds,
)
from .broadcast import Broadcaster, INIT_TIMERS, TIMER_ADDED, TIMER_DELETED, TIMER_UPDATED
from .scheduler import CountdownScheduler
from .snapshot import Snapshotter
from .store import TimerStore

logger = logging.getLogger(__name__)

_UNSET = object()


class TimerBoard:
    """The shared timer board: the single owner of store, countdowns and sessions.

    Every mutation runs under one re-entrant lock, so commands, countdown
    ticks and snapshot reads never interleave, and broadcasts for an id go
    out in the order the state changed. Snapshots are written after the lock
    is released; ``save`` must never be called while holding ``_lock``.
    """

    def __init__(
        self,
        broadcaster: Broadcaster,
        snapshotter: Optional[Snapshotter] = None,
        clock: Callable[[], float] = time.time,
        max_id: int = 64,
        start_background_task: Optional[Callable] = None,
        sleep: Optional[Callable[[float], None]] = None,
        tick_interval: float = 1.0,
    ) -> None:
        self._lock = threading.RLock()
        self._save_lock = threading.Lock()
        self._store = TimerStore()
        self._broadcaster = broadcaster
        self._snapshotter = snapshotter
        self._clock = clock
        self._stopped = False
        self.max_id = max_id
        self._scheduler = CountdownScheduler(
            self.tick,
            start_background_task=start_background_task,
            sleep=sleep or time.sleep,
            interval=tick_interval,
        )

    # ---- reads ----

    def __len__(self) -> int:
        return len(self._store)

    def get(self, timer_id: Any) -> Optional[Timer]:
        """One timer, reconciled against the clock like ``get_all``."""
        tid = self._coerce_id(timer_id)
        with self._lock:
            expired = self._sync_clock()
            timer = self._store.get(tid) if tid is not None else None
            result = timer.copy() if timer else None
        if expired:
            self.save()
        return result

    def get_all(self) -> List[Timer]:
        """Every timer in id order, running ones reconciled against the clock."""
        with self._lock:
            expired = self._sync_clock()
            timers = [t.copy() for t in self._store.get_all()]
        if expired:
            self.save()
        return timers

    def is_counting(self, timer_id: int) -> bool:
        return self._scheduler.is_active(timer_id)

    def active_countdowns(self) -> List[int]:
        return self._scheduler.active_ids()

    def countdown_generation(self, timer_id: int) -> Optional[int]:
        return self._scheduler.generation(timer_id)

    # ---- sessions ----

    def connect(self, session: Hashable) -> None:
        with self._lock:
            self._broadcaster.register(session)
            expired = self._sync_clock()
            self._send_all(session)
        if expired:
            self.save()

    def disconnect(self, session: Hashable) -> None:
        with self._lock:
            self._broadcaster.unregister(session)

    def refresh(self, session: Hashable) -> None:
        with self._lock:
            expired = self._sync_clock()
            self._send_all(session)
        if expired:
            self.save()

    def session_count(self) -> int:
        return len(self._broadcaster)

    # ---- commands ----

    def add_timer(self, timer_id: Any, minutes: Any = None, spawn_point: Any = None, memo: Any = None) -> Optional[Timer]:
        """Create an idle timer. An id that is already on the board is rejected."""
        tid = parse_timer_id(timer_id, self.max_id)
        parsed_minutes = parse_minutes(minutes)
        with self._lock:
            if tid in self._store:
                logger.info(f"[timer-add] rejected timer={tid}: id already exists")
                return None
            timer = Timer(id=tid, minutes=parsed_minutes, spawn_point=spawn_point, memo=memo)
            self._store.upsert(timer)
            logger.info(f"[timer-add] timer={tid} minutes={parsed_minutes}")
            self._broadcaster.broadcast(TIMER_ADDED, {'timer': timer.to_dict()})
            result = timer.copy()
        self.save()
        return result

    def start_timer(self, timer_id: Any, minutes: Any = _UNSET, spawn_point: Any = _UNSET, memo: Any = _UNSET) -> Optional[Timer]:
        """(Re)start the countdown for an existing timer.

        ``minutes`` overrides the configured duration when given; otherwise the
        stored value is used. A timer without a positive duration cannot start.
        """
        tid = self._coerce_id(timer_id)
        with self._lock:
            timer = self._store.get(tid) if tid is not None else None
            if timer is None:
                logger.debug(f"[timer-start] ignored unknown timer={timer_id!r}")
                return None
            new_minutes = timer.minutes
            if minutes is not _UNSET and minutes is not None and minutes != '':
                new_minutes = parse_minutes(minutes)
            if not new_minutes:
                raise TimerValidationError(f"timer {tid} has no duration configured")
            timer.minutes = new_minutes
            self._apply_metadata(timer, spawn_point, memo)
            duration = timer.duration_seconds
            result = self._start_countdown(timer, duration, self._clock() + duration)
        self.save()
        return result

    def start_countdown(self, timer_id: int, duration_seconds: int, end_time: float) -> Optional[Timer]:
        """Install a countdown ending at ``end_time`` for an existing timer."""
        with self._lock:
            timer = self._store.get(timer_id)
            if timer is None:
                return None
            result = self._start_countdown(timer, duration_seconds, end_time)
        self.save()
        return result

    def reset_timer(self, timer_id: Any, spawn_point: Any = _UNSET, memo: Any = _UNSET) -> Optional[Timer]:
        tid = self._coerce_id(timer_id)
        with self._lock:
            timer = self._store.get(tid) if tid is not None else None
            if timer is None:
                logger.debug(f"[timer-reset] ignored unknown timer={timer_id!r}")
                return None
            self._scheduler.cancel(tid)
            timer.mark_idle()
            self._apply_metadata(timer, spawn_point, memo)
            logger.info(f"[timer-reset] timer={tid}")
            self._broadcaster.broadcast(TIMER_UPDATED, {'timer': timer.to_dict()})
            result = timer.copy()
        self.save()
        return result

    def delete_timer(self, timer_id: Any) -> bool:
        tid = self._coerce_id(timer_id)
        with self._lock:
            if tid is None or tid not in self._store:
                logger.debug(f"[timer-delete] ignored unknown timer={timer_id!r}")
                return False
            self._scheduler.cancel(tid)
            self._store.delete(tid)
            logger.info(f"[timer-delete] timer={tid}")
            self._broadcaster.broadcast(TIMER_DELETED, {'id': tid})
        self.save()
        return True

    def update_timer(
        self,
        timer_id: Any,
        new_id: Any = None,
        minutes: Any = _UNSET,
        spawn_point: Any = _UNSET,
        memo: Any = _UNSET,
    ) -> Optional[Timer]:
        """Edit a timer's configuration.

        ``new_id`` and ``minutes`` may only change while the timer is idle;
        metadata may change at any time. Reassigning an id announces the old
        id as deleted and the new one as added.
        """
        tid = self._coerce_id(timer_id)
        with self._lock:
            timer = self._store.get(tid) if tid is not None else None
            if timer is None:
                logger.debug(f"[timer-update] ignored unknown timer={timer_id!r}")
                return None
            target = tid if new_id in (None, '') else parse_timer_id(new_id, self.max_id)
            new_minutes = timer.minutes if minutes is _UNSET else parse_minutes(minutes)
            reassign = target != tid
            if timer.is_running and (reassign or new_minutes != timer.minutes):
                raise TimerValidationError(f"timer {tid} is running; stop it before changing id or minutes")
            if reassign and target in self._store:
                raise TimerValidationError(f"timer id {target} is already in use")

            timer.minutes = new_minutes
            self._apply_metadata(timer, spawn_point, memo)
            if reassign:
                self._store.delete(tid)
                timer.id = target
                self._store.upsert(timer)
                logger.info(f"[timer-update] timer={tid} renumbered to {target}")
                self._broadcaster.broadcast(TIMER_DELETED, {'id': tid})
                self._broadcaster.broadcast(TIMER_ADDED, {'timer': timer.to_dict()})
            else:
                logger.info(f"[timer-update] timer={tid} minutes={new_minutes}")
                self._broadcaster.broadcast(TIMER_UPDATED, {'timer': timer.to_dict()})
            result = timer.copy()
        self.save()
        return result

    def clear(self) -> None:
        with self._lock:
            self._scheduler.cancel_all()
            self._store.clear()
            logger.info("[board-clear] all timers removed")
            self._broadcaster.broadcast(INIT_TIMERS, {'timers': []})
        self.save()

    # ---- countdown ----

    def tick(self, timer_id: int, generation: Optional[int] = None) -> Optional[Timer]:
        """One countdown step. Ticks from a superseded schedule are dropped."""
        expired = False
        with self._lock:
            if generation is None:
                if not self._scheduler.is_active(timer_id):
                    return None
            elif not self._scheduler.is_current(timer_id, generation):
                return None
            timer = self._store.get(timer_id)
            if timer is None or not timer.is_running or timer.end_time is None:
                self._scheduler.cancel(timer_id)
                return None
            left = remaining_seconds(timer.end_time, self._clock())
            if left <= 0:
                self._expire(timer)
                expired = True
            else:
                timer.time_left = left
                self._broadcaster.broadcast(TIMER_UPDATED, {'timer': timer.to_dict()})
            result = timer.copy()
        if expired:
            self.save()
        return result

    # ---- persistence ----

    def load(self) -> int:
        """Seed the board from the last snapshot and resume surviving countdowns."""
        if self._snapshotter is None:
            return 0
        with self._lock:
            self._scheduler.cancel_all()
            self._store.replace_all(self._snapshotter.load(self._clock()))
            for timer in self._store.get_all():
                if timer.is_running:
                    self._scheduler.start(timer.id)
            return len(self._store)

    def save(self) -> bool:
        if self._snapshotter is None:
            return False
        with self._save_lock:
            with self._lock:
                timers = [t.copy() for t in self._store.get_all()]
            return self._snapshotter.save(timers)

    def snapshot_worker(self, interval: float, sleep: Callable[[float], None]) -> None:
        """Background loop writing a snapshot every ``interval`` seconds until shutdown."""
        while not self._stopped:
            sleep(interval)
            if self._stopped:
                return
            self.save()

    def shutdown(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self.save()
        self._scheduler.cancel_all()
        logger.info("[board-shutdown] final snapshot written")

    # ---- internals ----

    def _start_countdown(self, timer: Timer, duration_seconds: int, end_time: float) -> Timer:
        # Unrepresentable end times are refused before any state changes
        format_timestamp(end_time)
        self._scheduler.cancel(timer.id)
        left = remaining_seconds(end_time, self._clock())
        if left <= 0:
            timer.mark_idle()
            logger.info(f"[timer-start] timer={timer.id} already elapsed, left idle")
        else:
            timer.is_running = True
            timer.end_time = end_time
            timer.time_left = left
            self._store.upsert(timer)
            self._scheduler.start(timer.id)
            logger.info(f"[timer-start] timer={timer.id} duration={duration_seconds}s time_left={left}s")
        self._broadcaster.broadcast(TIMER_UPDATED, {'timer': timer.to_dict()})
        return timer.copy()

    def _expire(self, timer: Timer) -> None:
        self._scheduler.cancel(timer.id)
        timer.mark_idle()
        logger.info(f"[timer-expire] timer={timer.id}")
        self._broadcaster.broadcast(TIMER_UPDATED, {'timer': timer.to_dict()})

    def _sync_clock(self) -> bool:
        now = self._clock()
        expired = False
        for timer in self._store.get_all():
            if not timer.is_running or timer.end_time is None:
                continue
            left = remaining_seconds(timer.end_time, now)
            if left <= 0:
                self._expire(timer)
                expired = True
            else:
                timer.time_left = left
        return expired

    def _send_all(self, session: Hashable) -> None:
        self._broadcaster.send(session, INIT_TIMERS, {'timers': [t.to_dict() for t in self._store.get_all()]})

    def _coerce_id(self, timer_id: Any) -> Optional[int]:
        try:
            return parse_timer_id(timer_id, self.max_id)
        except TimerValidationError:
            return None

    @staticmethod
    def _apply_metadata(timer: Timer, spawn_point: Any, memo: Any) -> None:
        if spawn_point is not _UNSET:
            timer.spawn_point = spawn_point
        if memo is not _UNSET:
            timer.memo = memo
