import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Whole-board JSON snapshot written on every structural change, periodically and on shutdown
    SNAPSHOT_PATH = os.environ.get('SNAPSHOT_PATH') or os.path.join(os.path.dirname(os.path.abspath(__file__)), 'timers.json')
    # Periodic snapshot interval (sec). 0 disables the background saver.
    SNAPSHOT_INTERVAL_SEC = int(os.environ.get('SNAPSHOT_INTERVAL_SEC', '30'))
    # Countdown tick cadence (sec)
    TICK_INTERVAL_SEC = float(os.environ.get('TICK_INTERVAL_SEC', '1'))
    # Highest timer id a viewer may create (ids run 1..MAX_TIMER_ID)
    MAX_TIMER_ID = int(os.environ.get('MAX_TIMER_ID', '64'))
    CORS_ORIGINS = [o.strip() for o in os.environ.get(
        'CORS_ORIGINS',
        'http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173',
    ).split(',') if o.strip()]
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
