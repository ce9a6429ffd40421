from flask import current_app, request
from timerboard import socketio, get_board
from timerboard.models import TimerBoardError
from timerboard.services.board import Broadcaster
from typing import Any, Dict, Tuple
import json

NAMESPACE = '/ws'

_METADATA_KEYS = (('spawnPoint', 'spawn_point'), ('memo', 'memo'))


# ---- transport glue for the board's broadcaster ----

def _emit(kind: str, payload: Dict[str, Any], session: Tuple[str, str]) -> None:
    namespace, sid = session
    socketio.emit(kind, payload, to=sid, namespace=namespace)


def _is_ready(session: Tuple[str, str]) -> bool:
    namespace, sid = session
    server = socketio.server
    if server is None:
        return False
    return server.manager.is_connected(sid, namespace)


def make_broadcaster() -> Broadcaster:
    return Broadcaster(_emit, _is_ready)


def _session() -> Tuple[str, str]:
    # type: ignore: request.sid / request.namespace exist in Socket.IO context
    return (request.namespace, request.sid)  # type: ignore


def _metadata(data: Dict[str, Any]) -> Dict[str, Any]:
    return {kwarg: data[key] for key, kwarg in _METADATA_KEYS if key in data}


# ---- connection lifecycle ----

def handle_connect(auth=None):
    get_board().connect(_session())
    current_app.logger.debug(f"[session-open] sid={request.sid} sessions={get_board().session_count()}")


def handle_disconnect(reason=None):
    get_board().disconnect(_session())
    current_app.logger.debug(f"[session-close] sid={request.sid} reason={reason}")


# ---- viewer commands ----

def handle_start_timer(data=None):
    data = data or {}
    kwargs = _metadata(data)
    if 'minutes' in data:
        kwargs['minutes'] = data.get('minutes')
    # endTime from the viewer is advisory; the server clock decides
    get_board().start_timer(data.get('id'), **kwargs)


def handle_reset_timer(data=None):
    data = data or {}
    get_board().reset_timer(data.get('id'), **_metadata(data))


def handle_add_timer(data=None):
    data = data or {}
    timer = data.get('timer')
    if not isinstance(timer, dict):
        current_app.logger.info("[timer-add] ignored: payload has no timer object")
        return
    get_board().add_timer(
        timer.get('id'),
        minutes=timer.get('minutes'),
        spawn_point=timer.get('spawnPoint'),
        memo=timer.get('memo'),
    )


def handle_delete_timer(data=None):
    data = data or {}
    get_board().delete_timer(data.get('id'))


def handle_update_timer(data=None):
    data = data or {}
    kwargs = _metadata(data)
    if 'minutes' in data:
        kwargs['minutes'] = data.get('minutes')
    get_board().update_timer(data.get('id'), new_id=data.get('newId'), **kwargs)


def handle_get_timers(data=None):
    get_board().refresh(_session())


_HANDLERS = {
    'start-timer': handle_start_timer,
    'reset-timer': handle_reset_timer,
    'add-timer': handle_add_timer,
    'delete-timer': handle_delete_timer,
    'update-timer': handle_update_timer,
    'get-timers': handle_get_timers,
}


def _guarded(kind, handler):
    """Wrap a command handler so bad input is logged and never reaches the viewer."""
    def _run(data=None):
        if data is not None and not isinstance(data, dict):
            current_app.logger.warning(f"[message-ignored] {kind}: payload is not an object")
            return
        try:
            handler(data)
        except TimerBoardError as exc:
            current_app.logger.info(f"[command-rejected] {kind}: {exc}")
    _run.__name__ = handler.__name__
    return _run


def handle_message(message):
    """Plain JSON frames: ``{"type": "<kind>", ...}`` as text or an already-decoded object."""
    if isinstance(message, (bytes, bytearray)):
        try:
            message = message.decode('utf-8')
        except UnicodeDecodeError:
            current_app.logger.warning("[message-ignored] frame is not UTF-8")
            return
    if isinstance(message, str):
        try:
            message = json.loads(message)
        except ValueError as exc:
            current_app.logger.warning(f"[message-ignored] unparsable frame: {exc}")
            return
    if not isinstance(message, dict):
        current_app.logger.warning("[message-ignored] frame is not a JSON object")
        return
    kind = message.get('type')
    handler = _HANDLERS.get(kind)
    if handler is None:
        current_app.logger.warning(f"[message-ignored] unknown message type {kind!r}")
        return
    _guarded(kind, handler)(message)


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = [NAMESPACE, '/'] if testing else [NAMESPACE]
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('message', handle_message, namespace=namespace)
        socketio.on_event('json', handle_message, namespace=namespace)
        for kind, handler in _HANDLERS.items():
            socketio.on_event(kind, _guarded(kind, handler), namespace=namespace)
