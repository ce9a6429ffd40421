"""Timer board domain services: record store, countdowns, snapshots, fan-out.

Everything here is transport-agnostic. The Socket.IO handlers and HTTP
routes talk to a single ``TimerBoard`` which owns the other pieces.
"""

from .board import TimerBoard
from .broadcast import Broadcaster, INIT_TIMERS, TIMER_ADDED, TIMER_DELETED, TIMER_UPDATED
from .scheduler import CountdownScheduler
from .snapshot import Snapshotter, reconcile
from .store import TimerStore

__all__ = [
    'TimerBoard',
    'Broadcaster',
    'CountdownScheduler',
    'Snapshotter',
    'TimerStore',
    'reconcile',
    'INIT_TIMERS',
    'TIMER_ADDED',
    'TIMER_DELETED',
    'TIMER_UPDATED',
]
