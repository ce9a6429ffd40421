from flask import Blueprint, jsonify
from timerboard import get_board

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the shared timer board server!'})

@main.route('/api/timers')
def list_timers():
    """Read-only view of the board; all mutation goes through the socket."""
    timers = get_board().get_all()
    return jsonify({'timers': [t.to_dict() for t in timers]})

@main.route('/api/timers/<int:timer_id>')
def get_timer(timer_id):
    timer = get_board().get(timer_id)
    if timer is None:
        return jsonify({'error': 'Timer not found'}), 404
    return jsonify(timer.to_dict())
