import logging
from typing import Any, Callable, Dict, Hashable, List, Optional, Set

logger = logging.getLogger(__name__)

INIT_TIMERS = 'init-timers'
TIMER_UPDATED = 'timer-updated'
TIMER_ADDED = 'timer-added'
TIMER_DELETED = 'timer-deleted'


class Broadcaster:
    """Best-effort fan-out of board events to every registered session.

    ``emit(kind, payload, sid)`` does the actual send; ``is_ready(sid)``
    reports whether that session's transport can take a message.
    """

    def __init__(
        self,
        emit: Callable[[str, Dict[str, Any], Hashable], None],
        is_ready: Optional[Callable[[Hashable], bool]] = None,
    ) -> None:
        self._emit = emit
        self._is_ready = is_ready
        self._sessions: Set[Hashable] = set()

    def __len__(self) -> int:
        return len(self._sessions)

    def register(self, sid: Hashable) -> None:
        self._sessions.add(sid)

    def unregister(self, sid: Hashable) -> None:
        self._sessions.discard(sid)

    def sessions(self) -> List[Hashable]:
        return list(self._sessions)

    def send(self, sid: Hashable, kind: str, payload: Dict[str, Any]) -> bool:
        if self._is_ready is not None and not self._is_ready(sid):
            return False
        message = dict(payload, type=kind)
        try:
            self._emit(kind, message, sid)
        except Exception as e:
            logger.warning(f"[broadcast] send {kind} to {sid} failed: {e}")
            return False
        return True

    def broadcast(self, kind: str, payload: Dict[str, Any]) -> int:
        delivered = 0
        # Sessions may (de)register while we send
        for sid in list(self._sessions):
            if self.send(sid, kind, payload):
                delivered += 1
        logger.debug(f"[broadcast] {kind} delivered={delivered}")
        return delivered
