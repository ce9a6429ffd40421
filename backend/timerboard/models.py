from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import math

# Longest configurable countdown: one year
MAX_MINUTES = 60 * 24 * 365


class TimerBoardError(Exception):
    """Base class for timer board errors."""


class TimerValidationError(TimerBoardError, ValueError):
    """A viewer supplied a value the board cannot accept."""


def parse_timer_id(value: Any, max_id: int = 64) -> int:
    """Coerce a wire id (int or numeric string) into a board id in 1..max_id."""
    if isinstance(value, bool) or value is None:
        raise TimerValidationError(f"invalid timer id: {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise TimerValidationError(f"invalid timer id: {value!r}")
        value = int(value)
    if isinstance(value, str):
        value = value.strip()
        if not value.isdecimal():
            raise TimerValidationError(f"invalid timer id: {value!r}")
        value = int(value)
    if not isinstance(value, int):
        raise TimerValidationError(f"invalid timer id: {value!r}")
    if not 1 <= value <= max_id:
        raise TimerValidationError(f"timer id {value} outside 1..{max_id}")
    return value


def parse_minutes(value: Any) -> Optional[float]:
    """Coerce a configured duration. Empty string / None mean "not configured"."""
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise TimerValidationError(f"invalid minutes: {value!r}")
    try:
        minutes = float(value)
    except (TypeError, ValueError):
        raise TimerValidationError(f"invalid minutes: {value!r}")
    if math.isnan(minutes) or math.isinf(minutes) or minutes < 0:
        raise TimerValidationError(f"invalid minutes: {value!r}")
    if minutes > MAX_MINUTES:
        raise TimerValidationError(f"minutes {value!r} exceeds {MAX_MINUTES}")
    return int(minutes) if minutes.is_integer() else minutes


def format_timestamp(ts: Optional[float]) -> Optional[str]:
    """Epoch seconds -> ISO-8601 UTC with millisecond precision (``...Z``)."""
    if ts is None:
        return None
    try:
        dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        raise TimerValidationError(f"timestamp out of range: {ts!r}")
    return dt.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def parse_timestamp(value: Any) -> Optional[float]:
    """Accept an ISO-8601 string or epoch milliseconds/seconds; return epoch seconds."""
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise TimerValidationError(f"invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            raise TimerValidationError(f"invalid timestamp: {value!r}")
        # Large values are JS-style milliseconds
        ts = value / 1000.0 if abs(value) > 1e11 else float(value)
        format_timestamp(ts)
        return ts
    if isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            raise TimerValidationError(f"invalid timestamp: {value!r}")
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.timestamp()
    raise TimerValidationError(f"invalid timestamp: {value!r}")


def remaining_seconds(end_time: float, now: float) -> int:
    return max(0, int(round(end_time - now)))


@dataclass
class Timer:
    id: int
    minutes: Optional[float] = None
    time_left: int = 0
    is_running: bool = False
    end_time: Optional[float] = None
    spawn_point: Any = None
    memo: Any = None
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def duration_seconds(self) -> int:
        return int(round((self.minutes or 0) * 60))

    def copy(self, **changes) -> 'Timer':
        return replace(self, extra=dict(self.extra), **changes)

    def mark_idle(self) -> None:
        self.is_running = False
        self.end_time = None
        self.time_left = 0

    def to_dict(self):
        data = {
            'id': self.id,
            'minutes': self.minutes if self.minutes is not None else '',
            'timeLeft': self.time_left,
            'isRunning': self.is_running,
            'endTime': format_timestamp(self.end_time),
            'spawnPoint': self.spawn_point,
            'memo': self.memo,
        }
        for key, value in self.extra.items():
            data.setdefault(key, value)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], max_id: int = 64) -> 'Timer':
        """Build a Timer from its wire/snapshot form. Unknown keys are kept verbatim."""
        known = {'id', 'minutes', 'timeLeft', 'isRunning', 'endTime', 'spawnPoint', 'memo'}
        time_left = data.get('timeLeft') or 0
        try:
            time_left = max(0, int(time_left))
        except (TypeError, ValueError, OverflowError):
            time_left = 0
        return cls(
            id=parse_timer_id(data.get('id'), max_id),
            minutes=parse_minutes(data.get('minutes')),
            time_left=time_left,
            is_running=bool(data.get('isRunning')),
            end_time=parse_timestamp(data.get('endTime')),
            spawn_point=data.get('spawnPoint'),
            memo=data.get('memo'),
            extra={k: v for k, v in data.items() if k not in known},
        )
