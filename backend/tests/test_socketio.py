import json

from timerboard import socketio


def _events(sio, name=None):
    return [pkt for pkt in sio.get_received('/ws') if name is None or pkt['name'] == name]


def _payload(pkt):
    return pkt['args'][0]


def test_connect_receives_full_snapshot(sio_client):
    assert sio_client.is_connected('/ws')
    received = _events(sio_client, 'init-timers')
    assert len(received) == 1
    assert _payload(received[0])['timers'] == []
    assert _payload(received[0])['type'] == 'init-timers'


def test_add_and_start_are_broadcast_to_every_viewer(flask_app, sio_client):
    other = socketio.test_client(flask_app, namespace='/ws')
    sio_client.get_received('/ws')
    other.get_received('/ws')

    sio_client.emit('add-timer', {'timer': {'id': 3, 'minutes': 5, 'memo': 'iron vein'}}, namespace='/ws')
    for viewer in (sio_client, other):
        added = _events(viewer, 'timer-added')
        assert len(added) == 1
        assert _payload(added[0])['timer']['id'] == 3
        assert _payload(added[0])['timer']['memo'] == 'iron vein'

    sio_client.emit('start-timer', {'id': 3, 'minutes': 5, 'endTime': '2000-01-01T00:00:00.000Z'}, namespace='/ws')
    for viewer in (sio_client, other):
        updated = _events(viewer, 'timer-updated')
        assert len(updated) == 1
        timer = _payload(updated[0])['timer']
        assert timer['isRunning'] is True
        # The viewer's endTime is ignored in favour of the server clock
        assert timer['timeLeft'] == 300
        assert timer['endTime'] == '2023-11-14T22:18:20.000Z'

    other.disconnect(namespace='/ws')


def test_ticks_and_expiry_reach_viewers(flask_app, sio_client, clock):
    board = flask_app.extensions['timerboard']
    sio_client.emit('add-timer', {'timer': {'id': 1, 'minutes': 1}}, namespace='/ws')
    sio_client.emit('start-timer', {'id': 1}, namespace='/ws')
    sio_client.get_received('/ws')

    clock.advance(1)
    board.tick(1)
    ticks = _events(sio_client, 'timer-updated')
    assert [_payload(p)['timer']['timeLeft'] for p in ticks] == [59]

    clock.advance(59)
    board.tick(1)
    final = _events(sio_client, 'timer-updated')
    assert len(final) == 1
    assert _payload(final[0])['timer']['isRunning'] is False
    assert _payload(final[0])['timer']['endTime'] is None


def test_reset_and_delete(sio_client):
    sio_client.emit('add-timer', {'timer': {'id': 2, 'minutes': 3}}, namespace='/ws')
    sio_client.emit('start-timer', {'id': 2}, namespace='/ws')
    sio_client.get_received('/ws')

    sio_client.emit('reset-timer', {'id': 2, 'spawnPoint': 'east'}, namespace='/ws')
    reset = _events(sio_client, 'timer-updated')
    assert _payload(reset[0])['timer']['isRunning'] is False
    assert _payload(reset[0])['timer']['spawnPoint'] == 'east'

    sio_client.emit('delete-timer', {'id': 2}, namespace='/ws')
    deleted = _events(sio_client, 'timer-deleted')
    assert _payload(deleted[0])['id'] == 2


def test_unknown_ids_and_duplicates_are_silent(flask_app, sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('reset-timer', {'id': 99}, namespace='/ws')
    sio_client.emit('delete-timer', {'id': 99}, namespace='/ws')
    sio_client.emit('start-timer', {'id': 99, 'minutes': 5}, namespace='/ws')
    assert sio_client.get_received('/ws') == []

    sio_client.emit('add-timer', {'timer': {'id': 4, 'minutes': 5}}, namespace='/ws')
    sio_client.get_received('/ws')
    sio_client.emit('add-timer', {'timer': {'id': 4, 'minutes': 8}}, namespace='/ws')
    assert sio_client.get_received('/ws') == []
    assert len(flask_app.extensions['timerboard']) == 1


def test_invalid_commands_keep_connection_open(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('add-timer', {'timer': {'id': 500}}, namespace='/ws')
    sio_client.emit('add-timer', {'nope': True}, namespace='/ws')
    sio_client.emit('start-timer', 'not an object', namespace='/ws')
    assert sio_client.get_received('/ws') == []
    assert sio_client.is_connected('/ws')


def test_oversized_start_leaves_board_serialisable(flask_app, sio_client):
    sio_client.emit('add-timer', {'timer': {'id': 1, 'minutes': 5}}, namespace='/ws')
    sio_client.get_received('/ws')
    sio_client.emit('start-timer', {'id': 1, 'minutes': 1e10}, namespace='/ws')
    assert sio_client.get_received('/ws') == []
    assert not flask_app.extensions['timerboard'].get(1).is_running

    late = socketio.test_client(flask_app, namespace='/ws')
    timers = _payload(_events(late, 'init-timers')[0])['timers']
    assert [t['id'] for t in timers] == [1]
    assert timers[0]['isRunning'] is False
    late.disconnect(namespace='/ws')


def test_get_timers_replies_only_to_requester(flask_app, sio_client, clock):
    other = socketio.test_client(flask_app, namespace='/ws')
    sio_client.emit('add-timer', {'timer': {'id': 1, 'minutes': 2}}, namespace='/ws')
    sio_client.emit('start-timer', {'id': 1}, namespace='/ws')
    sio_client.get_received('/ws')
    other.get_received('/ws')

    clock.advance(30)
    sio_client.emit('get-timers', {}, namespace='/ws')
    init = _events(sio_client, 'init-timers')
    assert _payload(init[0])['timers'][0]['timeLeft'] == 90
    assert other.get_received('/ws') == []
    other.disconnect(namespace='/ws')


def test_update_timer_renumbers_idle_timer(sio_client):
    sio_client.emit('add-timer', {'timer': {'id': 1, 'minutes': 2}}, namespace='/ws')
    sio_client.get_received('/ws')
    sio_client.emit('update-timer', {'id': 1, 'newId': 12, 'minutes': 7}, namespace='/ws')
    names = [pkt['name'] for pkt in sio_client.get_received('/ws')]
    assert names == ['timer-deleted', 'timer-added']


def test_raw_json_frames(sio_client):
    sio_client.get_received('/ws')
    sio_client.send('{this is not json', namespace='/ws')
    assert sio_client.get_received('/ws') == []
    assert sio_client.is_connected('/ws')

    sio_client.send(json.dumps({'type': 'add-timer', 'timer': {'id': 5, 'minutes': 10}}), namespace='/ws')
    added = _events(sio_client, 'timer-added')
    assert _payload(added[0])['timer']['id'] == 5

    sio_client.send({'type': 'delete-timer', 'id': 5}, json=True, namespace='/ws')
    assert _payload(_events(sio_client, 'timer-deleted')[0])['id'] == 5

    sio_client.send(json.dumps({'type': 'launch-rockets'}), namespace='/ws')
    assert sio_client.get_received('/ws') == []


def test_disconnect_does_not_touch_timers(flask_app):
    viewer = socketio.test_client(flask_app, namespace='/ws')
    viewer.emit('add-timer', {'timer': {'id': 8, 'minutes': 1}}, namespace='/ws')
    viewer.emit('start-timer', {'id': 8}, namespace='/ws')
    board = flask_app.extensions['timerboard']
    sessions = board.session_count()
    viewer.disconnect(namespace='/ws')
    assert board.session_count() == sessions - 1
    assert board.get(8).is_running
