import atexit
import logging
import os
import signal
import sys

from timerboard import create_app, socketio

app = create_app()


def _shutdown(*_args):
    # Final snapshot so a restart can reconcile running timers from endTime
    with app.app_context():
        app.extensions['timerboard'].shutdown()


def _on_signal(signum, _frame):
    _shutdown()
    sys.exit(0)


if __name__ == '__main__':
    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    atexit.register(_shutdown)
    signal.signal(signal.SIGTERM, _on_signal)
    signal.signal(signal.SIGINT, _on_signal)
    # Use SocketIO server to enable websockets in dev
    socketio.run(
        app,
        host=os.environ.get('HOST', '0.0.0.0'),
        port=int(os.environ.get('PORT', '3000')),
        debug=os.environ.get('FLASK_DEBUG') == '1',
        allow_unsafe_werkzeug=True,
    )
