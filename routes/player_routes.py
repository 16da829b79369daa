"""
Player API Routes Blueprint
Endpoints polled by display players: playlist, heartbeat, remote commands,
play logs and media streaming
"""
import time
import logging
from datetime import datetime
from flask import Blueprint, request, jsonify, current_app

from models import db, Device, Media, PlayLog
from socketio_events import (
    broadcast_device_status, broadcast_command_completed, broadcast_playlog_received
)
from utils.commands import CommandQueue
from utils.errors import ClientInputError, translate_storage_errors
from utils.etag import conditional_json_response
from utils.media_stream import serve_media
from utils.presence import record_contact, device_status
from utils.schedule_utils import resolve_playlist_for_device

player_bp = Blueprint('player', __name__)

# Setup API logger
api_logger = logging.getLogger('api')


def log_api_request(device_code, endpoint, method, status_code, start_time=None):
    """Log a player request to the API log file"""
    response_time = (time.time() - start_time) * 1000 if start_time else None
    timing = f' {response_time:.1f}ms' if response_time is not None else ''
    api_logger.info(
        f'{method} {endpoint} - Device:{device_code} IP:{request.remote_addr} Status:{status_code}{timing}'
    )


def _now():
    return current_app.config['CLOCK']()


def require_device_code():
    """Device code from the ``device`` query parameter"""
    code = (request.args.get('device') or '').strip()
    if not code:
        raise ClientInputError('Missing device parameter')
    return code


def parse_timestamp(value, default=None):
    """
    Parse an ISO-8601 timestamp sent by a player into naive local time

    Returns default for empty values, raises ValueError for garbage.
    """
    if value in (None, ''):
        return default
    if not isinstance(value, str):
        raise ValueError(f'Invalid timestamp: {value!r}')
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


# ============================================================================
# PLAYLIST RESOLUTION
# ============================================================================

@player_bp.route('/player/playlist', methods=['GET'])
@translate_storage_errors
def get_playlist():
    """
    Resolve the playlist a device should show right now

    Query: ?device=CODE
    Headers: If-None-Match (optional, fingerprint from a previous response)

    Response JSON (200, with ETag) or empty 304 when unchanged:
    {
        "groupId": 1,
        "playlistId": 2,
        "items": [
            {
                "id": 5,
                "mediaId": 3,
                "type": "image",
                "url": "/api/stream/promo.png",
                "displayFit": "cover",
                "duration": 8,
                "title": "Promo"
            }
        ]
    }

    An empty items list means "nothing scheduled" (also for unknown devices).
    """
    start_time = time.time()
    code = require_device_code()

    device = Device.query.filter_by(code=code).first()
    payload = resolve_playlist_for_device(device, _now())
    response = conditional_json_response(payload)

    log_api_request(code, '/player/playlist', 'GET', response.status_code, start_time)
    return response


# ============================================================================
# HEARTBEAT
# ============================================================================

@player_bp.route('/player/heartbeat', methods=['POST'])
@translate_storage_errors
def device_heartbeat():
    """
    Receive heartbeat from device

    Query: ?device=CODE
    Request JSON:
    {
        "playerVer": "2.3.1"
    }

    Response JSON:
    {
        "ok": true,
        "registered": true,
        "deviceCode": "DEV1",
        "timestamp": "2025-10-31T10:00:05"
    }

    Heartbeats from unknown devices succeed with "registered": false.
    """
    start_time = time.time()
    code = require_device_code()
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    now = _now()

    device = Device.query.filter_by(code=code).first()
    if device is None:
        current_app.logger.warning(f'Heartbeat from unknown device: {code}')
        log_api_request(code, '/player/heartbeat', 'POST', 200, start_time)
        return jsonify({
            'ok': True,
            'registered': False,
            'deviceCode': code,
            'timestamp': now.isoformat()
        }), 200

    version = data.get('playerVer')
    record_contact(device, str(version) if version is not None else None, now)

    broadcast_device_status(device.code, device_status(device, now))

    log_api_request(code, '/player/heartbeat', 'POST', 200, start_time)
    return jsonify({
        'ok': True,
        'registered': True,
        'deviceCode': code,
        'timestamp': now.isoformat()
    }), 200


# ============================================================================
# REMOTE COMMANDS
# ============================================================================

@player_bp.route('/player/poll-commands', methods=['GET'])
@translate_storage_errors
def poll_commands():
    """
    Get pending commands for device, oldest first. Does not change them.

    Response JSON:
    {
        "commands": [
            {"id": 1, "command": "reload", "params": null, "createdAt": "..."}
        ]
    }
    """
    start_time = time.time()
    code = require_device_code()

    device = Device.query.filter_by(code=code).first()
    commands = CommandQueue.list_pending(device) if device else []

    log_api_request(code, '/player/poll-commands', 'GET', 200, start_time)
    return jsonify({
        'commands': [{
            'id': cmd.id,
            'command': cmd.command,
            'params': cmd.params,
            'createdAt': cmd.created_at.isoformat()
        } for cmd in commands]
    }), 200


@player_bp.route('/player/poll-commands', methods=['POST'])
@translate_storage_errors
def acknowledge_command():
    """
    Report the outcome of a command

    Request JSON:
    {
        "commandId": 1,
        "status": "executed",  # or "failed"
        "result": "Reloaded"   # optional, "error" is accepted too
    }
    """
    start_time = time.time()
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ClientInputError('Missing commandId')

    command_id = data.get('commandId')
    if command_id in (None, ''):
        raise ClientInputError('Missing commandId')
    try:
        command_id = int(command_id)
    except (TypeError, ValueError):
        raise ClientInputError('Invalid commandId')

    result = data.get('result', data.get('error'))
    command, changed = CommandQueue.acknowledge(command_id, data.get('status') or 'executed', result, _now())

    if changed:
        broadcast_command_completed(command.device.code, command.id, command.command, command.status.value)

    log_api_request(command.device.code, '/player/poll-commands', 'POST', 200, start_time)
    return jsonify({'success': True, 'status': command.status.value}), 200


# ============================================================================
# PLAY LOGS
# ============================================================================

@player_bp.route('/player/log', methods=['POST'])
@translate_storage_errors
def ingest_play_log():
    """
    Store what a device played

    Query: ?device=CODE
    Request JSON:
    {
        "entries": [
            {"mediaId": 3, "startedAt": "...", "endedAt": "...", "status": "ok", "notes": null}
        ]
    }

    Entries without mediaId, for unknown media or with unreadable timestamps
    are skipped.
    """
    start_time = time.time()
    code = require_device_code()
    data = request.get_json(silent=True)
    if data is None:
        data = {'entries': []}

    entries = data.get('entries') if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise ClientInputError('Bad payload - entries must be array')

    now = _now()
    device = Device.query.filter_by(code=code).first()
    if device is None:
        current_app.logger.warning(f'Play log from unknown device: {code}')
        log_api_request(code, '/player/log', 'POST', 200, start_time)
        return jsonify({'ok': True, 'processed': 0, 'skipped': len(entries), 'deviceCode': code}), 200

    parsed = []
    for entry in entries:
        if not isinstance(entry, dict) or entry.get('mediaId') in (None, ''):
            continue
        try:
            media_id = int(entry['mediaId'])
            started_at = parse_timestamp(entry.get('startedAt'), default=now)
            ended_at = parse_timestamp(entry.get('endedAt'))
        except (TypeError, ValueError):
            continue
        parsed.append((entry, media_id, started_at, ended_at))

    # Skip entries for media that does not exist
    requested_ids = {media_id for _, media_id, _, _ in parsed}
    known_ids = set()
    if requested_ids:
        known_ids = {row.id for row in db.session.query(Media.id).filter(Media.id.in_(requested_ids))}

    processed = 0
    for entry, media_id, started_at, ended_at in parsed:
        if media_id not in known_ids:
            continue

        db.session.add(PlayLog(
            device_id=device.id,
            media_id=media_id,
            started_at=started_at,
            ended_at=ended_at,
            status=str(entry.get('status') or 'ok')[:20],
            notes=str(entry['notes']) if entry.get('notes') is not None else None
        ))
        processed += 1

    if processed:
        db.session.commit()
        broadcast_playlog_received(device.code, processed)

    current_app.logger.info(f'Saved {processed} play log entries for device {code}')
    log_api_request(code, '/player/log', 'POST', 200, start_time)
    return jsonify({
        'ok': True,
        'processed': processed,
        'skipped': len(entries) - processed,
        'deviceCode': code,
        'timestamp': now.isoformat()
    }), 200


# ============================================================================
# MEDIA STREAMING
# ============================================================================

@player_bp.route('/stream/<path:filename>', methods=['GET'])
def stream_media(filename):
    """
    Stream a media file

    Supports a single "Range: bytes=start-end" header for seeking and
    answers 206 with Content-Range. Never cached by intermediaries.
    """
    return serve_media(
        current_app.config['MEDIA_FOLDER'],
        filename,
        request.headers.get('Range'),
        current_app.config['STREAM_CHUNK_SIZE']
    )
