import pytest

from models import db, Assignment, Device


@pytest.fixture
def group_id(client):
    return client.post('/api/groups', json={'name': 'Cafeteria'}).get_json()['id']


@pytest.fixture
def playlist_id(client):
    return client.post('/api/playlists', json={'name': 'Menu'}).get_json()['id']


def _rule(group_id, playlist_id, **overrides):
    body = {
        'groupId': group_id,
        'playlistId': playlist_id,
        'startTime': '11:00',
        'endTime': '14:00',
        'priority': 1,
        'daysOfWeek': [1, 2, 3, 4, 5],
    }
    body.update(overrides)
    return body


def test_group_names_are_unique(client, group_id):
    response = client.post('/api/groups', json={'name': 'Cafeteria'})

    assert response.status_code == 409
    assert response.get_json() == {'error': 'Group name already exists'}


def test_device_registration(client, group_id):
    created = client.post('/api/devices', json={'code': 'CAF1', 'name': 'Till screen', 'groupId': group_id})

    assert created.status_code == 201
    body = created.get_json()
    assert body['groupName'] == 'Cafeteria'
    assert body['isOnline'] is False
    assert body['lastSeen'] is None

    duplicate = client.post('/api/devices', json={'code': 'CAF1', 'name': 'Other'})
    assert duplicate.status_code == 409


def test_device_registration_validation(client):
    assert client.post('/api/devices', json={'code': 'X'}).status_code == 400
    assert client.post('/api/devices', json={'code': 'X', 'name': 'X', 'groupId': 99}).status_code == 404
    assert client.post('/api/devices', data='[]', content_type='application/json').status_code == 400


def test_device_can_move_between_groups(client, group_id):
    device_id = client.post('/api/devices', json={'code': 'CAF2', 'name': 'Door'}).get_json()['id']

    moved = client.patch(f'/api/devices/{device_id}', json={'groupId': group_id, 'name': 'Front door'})
    assert moved.get_json()['groupId'] == group_id
    assert moved.get_json()['name'] == 'Front door'

    detached = client.patch(f'/api/devices/{device_id}', json={'groupId': None})
    assert detached.get_json()['groupId'] is None


def test_assignment_creation(client, group_id, playlist_id):
    response = client.post('/api/assignments', json=_rule(group_id, playlist_id))

    assert response.status_code == 201
    body = response.get_json()
    assert body['startTime'] == '11:00'
    assert body['daysOfWeek'] == [1, 2, 3, 4, 5]
    assert body['schedule'] == 'Weekdays 11:00-14:00'
    assert body['warnings'] == []


@pytest.mark.parametrize('overrides', [
    {'startTime': '14:00', 'endTime': '11:00'},
    {'startTime': '11:00', 'endTime': '11:00'},
    {'startTime': '24:30'},
    {'endTime': '24:00:00'},
    {'endTime': '23:59:59'},
    {'startTime': '24:00', 'endTime': '24:00'},
    {'daysOfWeek': []},
    {'daysOfWeek': [7]},
    {'daysOfWeek': 'mon'},
    {'priority': 'high'},
    {'priority': None},
])
def test_assignment_validation(client, group_id, playlist_id, overrides):
    response = client.post('/api/assignments', json=_rule(group_id, playlist_id, **overrides))

    assert response.status_code == 400
    assert Assignment.query.count() == 0


def test_assignment_references_must_exist(client, group_id, playlist_id):
    assert client.post('/api/assignments', json=_rule(999, playlist_id)).status_code == 404
    assert client.post('/api/assignments', json=_rule(group_id, 999)).status_code == 404


def test_overlapping_assignment_returns_warnings(client, group_id, playlist_id):
    first = client.post('/api/assignments', json=_rule(group_id, playlist_id)).get_json()

    second = client.post('/api/assignments', json=_rule(
        group_id, playlist_id, startTime='13:00', endTime='15:00', daysOfWeek=[5]
    )).get_json()

    assert [w['otherAssignmentId'] for w in second['warnings']] == [first['id']]
    assert second['warnings'][0]['conflictType'] == 'priority_conflict'

    listed = client.get(f'/api/assignments?groupId={group_id}').get_json()
    assert [a['id'] for a in listed] == [first['id'], second['id']]


def test_deleting_group_detaches_devices_and_drops_rules(client, group_id, playlist_id):
    device_id = client.post('/api/devices', json={'code': 'CAF3', 'name': 'Queue', 'groupId': group_id}).get_json()['id']
    client.post('/api/assignments', json=_rule(group_id, playlist_id))

    assert client.delete(f'/api/groups/{group_id}').status_code == 200

    db.session.expire_all()
    assert db.session.get(Device, device_id).group_id is None
    assert Assignment.query.count() == 0


def test_media_registration(client, media_file):
    media_file('menu.png', b'\x89PNG....')

    response = client.post('/api/media', json={'filename': 'menu.png', 'title': 'Menu board'})

    assert response.status_code == 201
    body = response.get_json()
    assert body['type'] == 'image'
    assert body['mime'] == 'image/png'
    assert body['sizeBytes'] == 8
    assert body['duration'] is None

    assert client.post('/api/media', json={'filename': 'menu.png'}).status_code == 409
    assert client.post('/api/media', json={'filename': 'missing.mp4'}).status_code == 404
    assert client.post('/api/media', json={'filename': '../app.py'}).status_code == 404

    listed = client.get('/api/media?type=image').get_json()
    assert [m['filename'] for m in listed] == ['menu.png']


def test_playlist_items(client, playlist_id, media_file):
    media_file('clip.mp4', b'0' * 10)
    media_id = client.post('/api/media', json={'filename': 'clip.mp4', 'duration': 15}).get_json()['id']

    first = client.post(f'/api/playlists/{playlist_id}/items', json={'mediaId': media_id, 'displayFit': 'cover'})
    second = client.post(f'/api/playlists/{playlist_id}/items', json={'mediaId': media_id})

    assert first.get_json()['order'] == 0
    assert second.get_json()['order'] == 1
    assert second.get_json()['displayFit'] == 'contain'

    clash = client.post(f'/api/playlists/{playlist_id}/items', json={'mediaId': media_id, 'order': 1})
    assert clash.status_code == 409

    bad_fit = client.post(f'/api/playlists/{playlist_id}/items', json={'mediaId': media_id, 'displayFit': 'zoom'})
    assert bad_fit.status_code == 400

    item_id = first.get_json()['id']
    assert client.delete(f'/api/playlist-items/{item_id}').status_code == 200
    remaining = client.get(f'/api/playlists/{playlist_id}/items').get_json()
    assert [item['order'] for item in remaining] == [1]


def test_schedule_preview_endpoint(client, demo):
    response = client.get('/api/devices/DEV1/schedule-preview?date=2025-10-27')

    body = response.get_json()
    assert body['date'] == '2025-10-27'
    assert body['timeline'][9]['assignment']['playlistName'] == 'Monday briefing'

    assert client.get('/api/devices/DEV1/schedule-preview?date=soon').status_code == 400
    assert client.get('/api/devices/GHOST/schedule-preview').status_code == 404


def test_unknown_route_is_json_404(client):
    response = client.get('/api/nothing-here')

    assert response.status_code == 404
    assert 'error' in response.get_json()


def test_assignment_may_end_at_midnight(client, group_id, playlist_id):
    response = client.post('/api/assignments', json=_rule(group_id, playlist_id, startTime='22:00', endTime='24:00'))

    assert response.status_code == 201
    assert response.get_json()['endTime'] == '24:00'
    assert response.get_json()['schedule'] == 'Weekdays 22:00-24:00'


def test_media_registration_stores_canonical_name(client, media_file):
    media_file('menu.png', b'png')

    first = client.post('/api/media', json={'filename': 'sub/../menu.png'})
    assert first.status_code == 201
    assert first.get_json()['filename'] == 'menu.png'

    assert client.post('/api/media', json={'filename': './menu.png'}).status_code == 409
