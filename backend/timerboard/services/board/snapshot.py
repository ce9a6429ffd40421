import json
import logging
import os
import tempfile
from typing import Iterable, List

from timerboard.models import Timer, remaining_seconds

logger = logging.getLogger(__name__)


def reconcile(timer: Timer, now: float) -> Timer:
    """Recompute a running timer's timeLeft from endTime; expire it if due.

    A timer whose end passed while nobody was ticking it (downtime, drift)
    comes back idle, never with a negative countdown.
    """
    if not timer.is_running or timer.end_time is None:
        timer.mark_idle()
        return timer
    left = remaining_seconds(timer.end_time, now)
    if left <= 0:
        timer.mark_idle()
    else:
        timer.time_left = left
    return timer


class Snapshotter:
    """Whole-board JSON snapshot at ``path``: ``{"<id>": {Timer}, ...}``."""

    def __init__(self, path: str, max_id: int = 64) -> None:
        self.path = path
        self.max_id = max_id

    def save(self, timers: Iterable[Timer]) -> bool:
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp = None
        try:
            payload = {str(t.id): t.to_dict() for t in timers}
            os.makedirs(directory, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix='.timers-', suffix='.tmp', dir=directory)
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
            tmp = None
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"[snapshot-save] failed path={self.path}: {e}")
            return False
        finally:
            if tmp is not None:
                try:
                    os.unlink(tmp)
                except OSError:
                    pass
        logger.debug(f"[snapshot-save] path={self.path} timers={len(payload)}")
        return True

    def load(self, now: float) -> List[Timer]:
        """Read and reconcile the last snapshot. Never raises."""
        if not os.path.exists(self.path):
            logger.info(f"[snapshot-load] no snapshot at {self.path}, starting empty")
            return []
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"[snapshot-load] unreadable snapshot {self.path}: {e}")
            return []
        if not isinstance(data, dict):
            logger.error(f"[snapshot-load] unexpected snapshot layout in {self.path}")
            return []

        timers = {}
        for key, record in data.items():
            if not isinstance(record, dict):
                logger.warning(f"[snapshot-load] skipping entry {key!r}: not an object")
                continue
            record = dict(record)
            record.setdefault('id', key)
            try:
                timer = Timer.from_dict(record, self.max_id)
            except (ValueError, OverflowError, TypeError) as e:
                logger.warning(f"[snapshot-load] skipping entry {key!r}: {e}")
                continue
            if timer.id in timers:
                logger.warning(f"[snapshot-load] duplicate id {timer.id}, keeping first")
                continue
            timers[timer.id] = reconcile(timer, now)
        logger.info(
            f"[snapshot-load] path={self.path} timers={len(timers)} "
            f"running={sum(1 for t in timers.values() if t.is_running)}"
        )
        return [timers[k] for k in sorted(timers)]
