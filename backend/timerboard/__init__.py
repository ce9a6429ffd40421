import logging
import time

from flask import Flask, current_app
from flask_cors import CORS
from flask_socketio import SocketIO
import click
from config import Config

cors = CORS()
socketio = SocketIO(async_mode=None)


def get_board():
    """The TimerBoard bound to the current Flask app."""
    return current_app.extensions['timerboard']


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    log_level = flask_app.config.get('LOG_LEVEL', 'INFO')
    flask_app.logger.setLevel(log_level)
    logging.getLogger('timerboard').setLevel(log_level)

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []
    cors.init_app(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from timerboard.main import main
    flask_app.register_blueprint(main)

    # Background countdown workers are off in tests unless explicitly enabled;
    # tests drive ticks with an injected clock instead
    testing = flask_app.config.get('TESTING', False)
    run_workers = not testing or flask_app.config.get('ENABLE_SCHEDULER_IN_TESTS', False)

    from timerboard.services.board import TimerBoard, Snapshotter
    from timerboard.socketio_events import make_broadcaster, register_socketio_handlers

    max_id = int(flask_app.config.get('MAX_TIMER_ID', 64))
    board = TimerBoard(
        broadcaster=make_broadcaster(),
        snapshotter=Snapshotter(flask_app.config['SNAPSHOT_PATH'], max_id=max_id),
        clock=flask_app.config.get('CLOCK') or time.time,
        max_id=max_id,
        start_background_task=socketio.start_background_task if run_workers else None,
        sleep=socketio.sleep,
        tick_interval=float(flask_app.config.get('TICK_INTERVAL_SEC', 1)),
    )
    # Seed from the last snapshot before any viewer can connect
    loaded = board.load()
    flask_app.logger.info(f"[board-init] loaded {loaded} timers from {flask_app.config['SNAPSHOT_PATH']}")
    flask_app.extensions['timerboard'] = board

    snapshot_interval = int(flask_app.config.get('SNAPSHOT_INTERVAL_SEC', 0))
    if run_workers and snapshot_interval > 0:
        socketio.start_background_task(board.snapshot_worker, snapshot_interval, socketio.sleep)

    register_socketio_handlers(testing=testing)

    @click.command('board-save')
    def board_save_command():
        """Writes a snapshot of the current board."""
        with flask_app.app_context():
            ok = get_board().save()
            print('Snapshot written.' if ok else 'Snapshot failed; see log.')

    @click.command('board-reset')
    def board_reset_command():
        """Stops every countdown, removes all timers and writes an empty snapshot."""
        with flask_app.app_context():
            get_board().clear()
            print('Timer board has been reset!')

    flask_app.cli.add_command(board_save_command)
    flask_app.cli.add_command(board_reset_command)

    return flask_app
