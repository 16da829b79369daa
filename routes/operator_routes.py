"""
Operator API Routes Blueprint
Remote-command submission, command history, schedule previews and play logs
"""
from datetime import date
from flask import Blueprint, request, jsonify, current_app

from models import Device, PlayLog
from socketio_events import broadcast_command_queued
from utils.commands import CommandQueue
from utils.errors import ClientInputError, NotFoundError, translate_storage_errors
from utils.schedule_utils import get_schedule_preview

operator_bp = Blueprint('operator', __name__)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ClientInputError('JSON object body required')
    return data


def _text(data, key):
    value = data.get(key)
    return str(value).strip() if value is not None else ''


def _get_device_or_404(code):
    device = Device.query.filter_by(code=code).first()
    if device is None:
        raise NotFoundError('Device not found')
    return device


def _int_arg(name):
    value = request.args.get(name)
    if value in (None, ''):
        return None
    try:
        return int(value)
    except ValueError:
        raise ClientInputError(f'Invalid {name}')


# ============================================================================
# REMOTE COMMANDS
# ============================================================================

@operator_bp.route('/player/command', methods=['POST'])
@translate_storage_errors
def send_command():
    """
    Queue a command for a device

    Request JSON:
    {
        "deviceCode": "DEV1",
        "command": "reload",
        "params": {"hard": true}   # optional, any JSON value
    }

    Response JSON:
    {
        "success": true,
        "commandId": 12,
        "message": "Command 'reload' sent to device DEV1"
    }
    """
    data = _json_body()
    device_code = _text(data, 'deviceCode')
    command_name = _text(data, 'command')
    if not device_code or not command_name:
        raise ClientInputError('Missing deviceCode or command')

    device = _get_device_or_404(device_code)
    command = CommandQueue.enqueue(device, command_name, data.get('params'), current_app.config['CLOCK']())

    broadcast_command_queued(device.code, command.id, command.command)

    return jsonify({
        'success': True,
        'commandId': command.id,
        'message': f"Command '{command.command}' sent to device {device.code}"
    }), 201


@operator_bp.route('/player/command', methods=['GET'])
@translate_storage_errors
def command_history():
    """Command history for a device, newest first (?device=CODE&limit=N)"""
    device_code = (request.args.get('device') or '').strip()
    if not device_code:
        raise ClientInputError('Missing device parameter')

    device = _get_device_or_404(device_code)
    commands = CommandQueue.history(device, _int_arg('limit'))

    return jsonify({'commands': [cmd.to_dict() for cmd in commands]}), 200


@operator_bp.route('/player/send-media', methods=['POST'])
@translate_storage_errors
def send_media():
    """
    Push an ad-hoc playlist to a device as a "play" command

    Request JSON:
    {
        "deviceCode": "DEV1",
        "playlist": {"items": [{"type": "image", "url": "/api/stream/a.png"}]},
        "playImmediately": true
    }
    """
    data = _json_body()
    device_code = _text(data, 'deviceCode')
    playlist = data.get('playlist')
    items = playlist.get('items') if isinstance(playlist, dict) else None
    if not device_code or not isinstance(items, list) or not items:
        raise ClientInputError('Invalid request')

    device = _get_device_or_404(device_code)
    params = {'playlist': playlist, 'playImmediately': bool(data.get('playImmediately', False))}
    command = CommandQueue.enqueue(device, 'play', params, current_app.config['CLOCK']())

    broadcast_command_queued(device.code, command.id, command.command)

    return jsonify({'success': True, 'commandId': command.id}), 201


# ============================================================================
# SCHEDULE PREVIEW
# ============================================================================

@operator_bp.route('/devices/<code>/schedule-preview', methods=['GET'])
@translate_storage_errors
def schedule_preview(code):
    """Hourly timeline of the rule a device would follow on a date (?date=YYYY-MM-DD)"""
    device = _get_device_or_404(code)

    raw_date = request.args.get('date')
    try:
        preview_date = date.fromisoformat(raw_date) if raw_date else current_app.config['CLOCK']().date()
    except ValueError:
        raise ClientInputError('Invalid date. Use YYYY-MM-DD.')

    return jsonify({
        'deviceCode': device.code,
        'date': preview_date.isoformat(),
        'timeline': get_schedule_preview(device, preview_date)
    }), 200


# ============================================================================
# PLAY LOGS
# ============================================================================

@operator_bp.route('/logs', methods=['GET'])
@translate_storage_errors
def list_play_logs():
    """Recent play logs, newest first (?deviceId=&limit=)"""
    device_id = _int_arg('deviceId')
    limit = _int_arg('limit') or current_app.config['PLAYLOG_DEFAULT_LIMIT']
    limit = max(1, min(limit, 1000))

    query = PlayLog.query
    if device_id is not None:
        query = query.filter_by(device_id=device_id)
    logs = query.order_by(PlayLog.started_at.desc(), PlayLog.id.desc()).limit(limit).all()

    return jsonify([log.to_dict() for log in logs]), 200
