from datetime import timedelta

import pytest

from models import db, Device, PlayerCommand, CommandStatus
from utils.commands import CommandQueue
from utils.errors import ClientInputError, NotFoundError


def _device(code='DEV1'):
    return Device.query.filter_by(code=code).one()


def test_enqueue_then_poll_oldest_first(demo, clock):
    device = _device()
    first = CommandQueue.enqueue(device, 'reload', None, clock())
    clock.advance(seconds=5)
    second = CommandQueue.enqueue(device, 'screenshot', {'quality': 80}, clock())

    pending = CommandQueue.list_pending(device)

    assert [c.id for c in pending] == [first.id, second.id]
    assert pending[1].params == {'quality': 80}
    # Polling does not consume
    assert len(CommandQueue.list_pending(device)) == 2


def test_acknowledge_moves_to_terminal_state(demo, clock):
    command = CommandQueue.enqueue(_device(), 'reload', None, clock())

    acked, changed = CommandQueue.acknowledge(command.id, 'failed', 'no network', clock())

    assert changed is True
    assert acked.status == CommandStatus.FAILED
    assert acked.result == 'no network'
    assert acked.executed_at == clock()
    assert CommandQueue.list_pending(_device()) == []


def test_repeat_acknowledgement_is_a_no_op(demo, clock):
    command = CommandQueue.enqueue(_device(), 'reload', None, clock())
    CommandQueue.acknowledge(command.id, 'executed', None, clock())

    acked, changed = CommandQueue.acknowledge(command.id, 'failed', 'late', clock())

    assert changed is False
    assert acked.status == CommandStatus.EXECUTED
    assert acked.result is None


def test_acknowledgement_does_not_overwrite_concurrent_outcome(demo, clock):
    command = CommandQueue.enqueue(_device(), 'reload', None, clock())
    finished_at = clock() + timedelta(seconds=1)
    table = PlayerCommand.__table__
    # Another worker settles the command on its own connection
    with db.engine.begin() as conn:
        conn.execute(table.update().where(table.c.id == command.id).values(
            status=CommandStatus.EXECUTED, executed_at=finished_at, result='done'
        ))

    acked, changed = CommandQueue.acknowledge(command.id, 'failed', 'late', clock() + timedelta(seconds=2))

    assert changed is False
    assert acked.status == CommandStatus.EXECUTED
    assert acked.result == 'done'
    assert acked.executed_at == finished_at


def test_acknowledge_unknown_command(demo):
    with pytest.raises(NotFoundError):
        CommandQueue.acknowledge(9999, 'executed')


@pytest.mark.parametrize('outcome', ['pending', 'done'])
def test_acknowledge_rejects_non_terminal_status(demo, clock, outcome):
    command = CommandQueue.enqueue(_device(), 'reload', None, clock())

    with pytest.raises(ClientInputError):
        CommandQueue.acknowledge(command.id, outcome)


def test_enqueue_requires_command_name(demo):
    with pytest.raises(ClientInputError):
        CommandQueue.enqueue(_device(), '   ')


def test_history_newest_first_with_limit(demo, clock):
    device = _device()
    for name in ('a', 'b', 'c'):
        CommandQueue.enqueue(device, name, None, clock())
        clock.advance(seconds=1)

    assert [c.command for c in CommandQueue.history(device)] == ['c', 'b', 'a']
    assert [c.command for c in CommandQueue.history(device, 2)] == ['c', 'b']
    assert len(CommandQueue.history(device, 0)) == 1


def test_command_round_trip_over_http(client, demo):
    created = client.post('/api/player/command', json={
        'deviceCode': 'DEV1', 'command': 'reload', 'params': {'hard': True}
    })
    assert created.status_code == 201
    command_id = created.get_json()['commandId']

    polled = client.get('/api/player/poll-commands?device=DEV1').get_json()['commands']
    assert [(c['id'], c['command'], c['params']) for c in polled] == [(command_id, 'reload', {'hard': True})]

    ack = client.post('/api/player/poll-commands', json={'commandId': command_id, 'status': 'executed'})
    assert ack.status_code == 200
    assert ack.get_json() == {'success': True, 'status': 'executed'}

    retry = client.post('/api/player/poll-commands', json={'commandId': command_id, 'status': 'failed'})
    assert retry.get_json()['status'] == 'executed'

    assert client.get('/api/player/poll-commands?device=DEV1').get_json()['commands'] == []

    history = client.get('/api/player/command?device=DEV1').get_json()['commands']
    assert history[0]['status'] == 'executed'


def test_command_http_errors(client, demo):
    assert client.post('/api/player/command', json={'deviceCode': 'NOPE', 'command': 'reload'}).status_code == 404
    assert client.post('/api/player/command', json={'deviceCode': 'DEV1'}).status_code == 400
    assert client.post('/api/player/poll-commands', json={}).status_code == 400
    assert client.post('/api/player/poll-commands', json={'commandId': 'x'}).status_code == 400

    missing = client.post('/api/player/poll-commands', json={'commandId': 424242})
    assert missing.status_code == 404
    assert missing.get_json() == {'error': 'Command not found'}


def test_poll_for_unknown_device_is_empty(client, demo):
    response = client.get('/api/player/poll-commands?device=GHOST')

    assert response.status_code == 200
    assert response.get_json() == {'commands': []}


def test_send_media_queues_play_command(client, demo):
    playlist = {'items': [{'type': 'image', 'url': '/api/stream/welcome.png'}]}

    response = client.post('/api/player/send-media', json={
        'deviceCode': 'DEV1', 'playlist': playlist, 'playImmediately': True
    })

    assert response.status_code == 201
    command = db.session.get(PlayerCommand, response.get_json()['commandId'])
    assert command.command == 'play'
    assert command.params == {'playlist': playlist, 'playImmediately': True}

    assert client.post('/api/player/send-media', json={
        'deviceCode': 'DEV1', 'playlist': {'items': []}
    }).status_code == 400


def test_deleting_device_removes_its_commands(client, demo, clock):
    CommandQueue.enqueue(_device(), 'reload', None, clock())

    assert client.delete(f"/api/devices/{demo['device']}").status_code == 200

    db.session.expire_all()
    assert PlayerCommand.query.count() == 0
