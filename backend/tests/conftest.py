import os
import sys
import pytest

# Ensure the backend root (containing the `timerboard` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from timerboard import create_app, socketio
from timerboard.services.board import Broadcaster, Snapshotter, TimerBoard

T0 = 1_700_000_000.0


class FakeClock:
    """Manually advanced wall clock (epoch seconds)."""

    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingEmitter:
    """Stands in for the socket transport; remembers every send per session."""

    def __init__(self):
        self.sent = []
        self.closed = set()
        self.failing = set()

    def __call__(self, kind, payload, session):
        if session in self.failing:
            raise ConnectionError('transport gone')
        self.sent.append((session, kind, payload))

    def is_ready(self, session):
        return session not in self.closed

    def events(self, kind=None, session=None):
        return [
            payload for (s, k, payload) in self.sent
            if (kind is None or k == kind) and (session is None or s == session)
        ]

    def clear(self):
        self.sent.clear()


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SNAPSHOT_INTERVAL_SEC = 0
    TICK_INTERVAL_SEC = 1
    MAX_TIMER_ID = 64
    CORS_ORIGINS = ['http://localhost:3000']
    LOG_LEVEL = 'DEBUG'


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def snapshot_path(tmp_path):
    return str(tmp_path / 'timers.json')


@pytest.fixture()
def emitter():
    return RecordingEmitter()


@pytest.fixture()
def make_board(clock, snapshot_path):
    """Build a board over the shared snapshot file, as a (re)started process would."""
    def _make(emitter=None):
        emitter = emitter or RecordingEmitter()
        b = TimerBoard(
            broadcaster=Broadcaster(emitter, emitter.is_ready),
            snapshotter=Snapshotter(snapshot_path),
            clock=clock,
        )
        return b, emitter
    return _make


@pytest.fixture()
def board(make_board, emitter):
    b, _ = make_board(emitter)
    b.connect('viewer-1')
    emitter.clear()
    return b


@pytest.fixture()
def flask_app(clock, snapshot_path):
    class Cfg(TestConfig):
        CLOCK = clock
        SNAPSHOT_PATH = snapshot_path

    application = create_app(Cfg)
    with application.app_context():
        yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
