from utils.etag import canonical_json, fingerprint
from tests.conftest import MONDAY


def test_fingerprint_ignores_key_order():
    a = {'groupId': 1, 'playlistId': 2, 'items': [{'id': 1, 'url': '/x'}]}
    b = {'items': [{'url': '/x', 'id': 1}], 'playlistId': 2, 'groupId': 1}

    assert canonical_json(a) == canonical_json(b)
    assert fingerprint(a) == fingerprint(b)
    assert len(fingerprint(a)) == 64


def test_fingerprint_changes_with_content():
    assert fingerprint({'items': []}) != fingerprint({'items': [{'id': 1}]})


def test_playlist_response_carries_etag(client, demo):
    response = client.get('/api/player/playlist?device=DEV1')

    assert response.status_code == 200
    assert response.headers['ETag'] == f'"{fingerprint(response.get_json())}"'
    assert 'no-cache' in response.headers['Cache-Control']


def test_matching_if_none_match_returns_304(client, demo):
    etag = client.get('/api/player/playlist?device=DEV1').headers['ETag']

    response = client.get('/api/player/playlist?device=DEV1', headers={'If-None-Match': etag})

    assert response.status_code == 304
    assert response.data == b''
    assert response.headers['ETag'] == etag


def test_stale_etag_gets_new_payload(client, demo, clock):
    etag = client.get('/api/player/playlist?device=DEV1').headers['ETag']

    clock.set(MONDAY.replace(hour=11))
    response = client.get('/api/player/playlist?device=DEV1', headers={'If-None-Match': etag})

    assert response.status_code == 200
    assert response.headers['ETag'] != etag
    assert response.get_json()['playlistId'] == demo['daytime']


def test_empty_payload_also_has_etag(client, demo, clock):
    clock.set(MONDAY.replace(hour=22))
    first = client.get('/api/player/playlist?device=DEV1')
    second = client.get('/api/player/playlist?device=DEV1', headers={'If-None-Match': first.headers['ETag']})

    assert first.get_json()['items'] == []
    assert second.status_code == 304
