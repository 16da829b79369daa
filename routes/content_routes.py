"""
Content Management Routes Blueprint
JSON endpoints for device groups, devices, schedule assignments, playlists
and media records
"""
import os
from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from models import (
    db, Device, DeviceGroup, Assignment, Playlist, PlaylistItem, Media,
    MediaType, DisplayFit
)
from utils.errors import ClientInputError, ConflictError, NotFoundError, translate_storage_errors
from utils.media_stream import resolve_media_path, media_name, guess_mimetype
from utils.presence import device_status
from utils.schedule_utils import get_schedule_conflicts
from utils.time_window import parse_hhmm

content_bp = Blueprint('content', __name__)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ClientInputError('JSON object body required')
    return data


def _text(data, key):
    value = data.get(key)
    return str(value).strip() if value is not None else ''


def _int_field(data, key, required=True, default=None):
    value = data.get(key)
    if value in (None, ''):
        if required:
            raise ClientInputError(f'Missing {key}')
        return default
    if isinstance(value, bool):
        raise ClientInputError(f'Invalid {key}')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ClientInputError(f'Invalid {key}')


def _get_or_404(model, object_id, label):
    obj = db.session.get(model, object_id)
    if obj is None:
        raise NotFoundError(f'{label} not found')
    return obj


def _commit_unique(message):
    """Commit, turning a unique-constraint violation into 409"""
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(message)


# ============================================================================
# DEVICE GROUPS
# ============================================================================

@content_bp.route('/groups', methods=['GET'])
@translate_storage_errors
def list_groups():
    """List all device groups with their assignments"""
    groups = DeviceGroup.query.order_by(DeviceGroup.name).all()
    result = []
    for group in groups:
        entry = group.to_dict()
        entry['assignments'] = [a.to_dict() for a in group.assignments.order_by(Assignment.id)]
        result.append(entry)
    return jsonify(result), 200


@content_bp.route('/groups', methods=['POST'])
@translate_storage_errors
def create_group():
    """Create a new device group"""
    data = _json_body()
    name = _text(data, 'name')
    if not name:
        raise ClientInputError('Missing name')

    group = DeviceGroup(name=name)
    db.session.add(group)
    _commit_unique('Group name already exists')

    current_app.logger.info(f'Device group created: {group.name}')
    return jsonify(group.to_dict()), 201


@content_bp.route('/groups/<int:group_id>', methods=['DELETE'])
@translate_storage_errors
def delete_group(group_id):
    """Delete a group; its devices are detached, its assignments removed"""
    group = _get_or_404(DeviceGroup, group_id, 'Group')

    for device in list(group.devices):
        device.group_id = None
    db.session.delete(group)
    db.session.commit()

    current_app.logger.info(f'Device group deleted: {group_id}')
    return jsonify({'ok': True}), 200


# ============================================================================
# DEVICES
# ============================================================================

@content_bp.route('/devices', methods=['GET'])
@translate_storage_errors
def list_devices():
    """All devices with presence (isOnline, lastSeen, playerVersion)"""
    now = current_app.config['CLOCK']()
    devices = Device.query.order_by(Device.created_at.desc(), Device.id.desc()).all()
    return jsonify([device_status(d, now) for d in devices]), 200


@content_bp.route('/devices', methods=['POST'])
@translate_storage_errors
def create_device():
    """
    Register a device

    Request JSON:
    {
        "code": "DEV1",
        "name": "Lobby screen",
        "groupId": 1     # optional
    }
    """
    data = _json_body()
    code = _text(data, 'code')
    name = _text(data, 'name')
    if not code or not name:
        raise ClientInputError('Missing required fields')

    group_id = _int_field(data, 'groupId', required=False)
    if group_id is not None:
        _get_or_404(DeviceGroup, group_id, 'Group')

    device = Device(code=code, name=name, group_id=group_id)
    db.session.add(device)
    _commit_unique('Device code already exists')

    current_app.logger.info(f'Device registered: {code}')
    return jsonify(device_status(device, current_app.config['CLOCK']())), 201


@content_bp.route('/devices/<int:device_id>', methods=['PATCH'])
@translate_storage_errors
def update_device(device_id):
    """Rename a device or move it to another group (groupId null detaches)"""
    device = _get_or_404(Device, device_id, 'Device')
    data = _json_body()

    if 'name' in data:
        name = _text(data, 'name')
        if not name:
            raise ClientInputError('Device name cannot be empty')
        device.name = name

    if 'groupId' in data:
        group_id = _int_field(data, 'groupId', required=False)
        if group_id is not None:
            _get_or_404(DeviceGroup, group_id, 'Group')
        device.group_id = group_id

    db.session.commit()
    return jsonify(device_status(device, current_app.config['CLOCK']())), 200


@content_bp.route('/devices/<int:device_id>', methods=['DELETE'])
@translate_storage_errors
def delete_device(device_id):
    """Delete a device together with its commands and play logs"""
    device = _get_or_404(Device, device_id, 'Device')
    code = device.code

    db.session.delete(device)
    db.session.commit()

    current_app.logger.info(f'Device deleted: {code}')
    return jsonify({'ok': True}), 200


# ============================================================================
# ASSIGNMENTS (SCHEDULE RULES)
# ============================================================================

def _parse_days(value):
    if not isinstance(value, list) or not value:
        raise ClientInputError('daysOfWeek must be a non-empty array of 0-6 (0=Sunday)')
    days = set()
    for day in value:
        if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6:
            raise ClientInputError('daysOfWeek must be a non-empty array of 0-6 (0=Sunday)')
        days.add(day)
    return sorted(days)


@content_bp.route('/assignments', methods=['GET'])
@translate_storage_errors
def list_assignments():
    """List schedule rules (?groupId= to filter)"""
    query = Assignment.query
    group_id = request.args.get('groupId', type=int)
    if group_id is not None:
        query = query.filter_by(group_id=group_id)
    return jsonify([a.to_dict() for a in query.order_by(Assignment.id).all()]), 200


@content_bp.route('/assignments', methods=['POST'])
@translate_storage_errors
def create_assignment():
    """
    Create a schedule rule

    Request JSON:
    {
        "groupId": 1,
        "playlistId": 2,
        "startTime": "08:00",
        "endTime": "18:00",
        "priority": 1,
        "daysOfWeek": [1, 2, 3, 4, 5]
    }

    Windows are [start, end) within one day; "24:00" ends at midnight and
    overnight schedules need two rules.
    The response lists overlapping rules of the same group as warnings.
    """
    data = _json_body()
    group_id = _int_field(data, 'groupId')
    playlist_id = _int_field(data, 'playlistId')
    priority = _int_field(data, 'priority')

    try:
        start_minute = parse_hhmm(data.get('startTime'))
        end_minute = parse_hhmm(data.get('endTime'))
    except ValueError:
        raise ClientInputError('Invalid time format. Use HH:MM (00:00-24:00).')
    if start_minute >= end_minute:
        raise ClientInputError('startTime must be before endTime')

    days = _parse_days(data.get('daysOfWeek'))

    _get_or_404(DeviceGroup, group_id, 'Group')
    _get_or_404(Playlist, playlist_id, 'Playlist')

    assignment = Assignment(
        group_id=group_id,
        playlist_id=playlist_id,
        start_minute=start_minute,
        end_minute=end_minute,
        priority=priority
    )
    assignment.days_list = days
    db.session.add(assignment)
    db.session.commit()

    conflicts = get_schedule_conflicts(assignment)
    current_app.logger.info(
        f'Assignment {assignment.id} created for group {group_id} ({len(conflicts)} overlaps)'
    )

    result = assignment.to_dict()
    result['warnings'] = [c.to_dict() for c in conflicts]
    return jsonify(result), 201


@content_bp.route('/assignments/<int:assignment_id>', methods=['DELETE'])
@translate_storage_errors
def delete_assignment(assignment_id):
    """Delete a schedule rule"""
    assignment = _get_or_404(Assignment, assignment_id, 'Assignment')
    db.session.delete(assignment)
    db.session.commit()
    return jsonify({'ok': True}), 200


# ============================================================================
# PLAYLISTS
# ============================================================================

@content_bp.route('/playlists', methods=['GET'])
@translate_storage_errors
def list_playlists():
    """List all playlists"""
    playlists = Playlist.query.order_by(Playlist.name).all()
    return jsonify([p.to_dict() for p in playlists]), 200


@content_bp.route('/playlists', methods=['POST'])
@translate_storage_errors
def create_playlist():
    """Create an empty playlist"""
    data = _json_body()
    name = _text(data, 'name')
    if not name:
        raise ClientInputError('Missing name')

    playlist = Playlist(name=name)
    db.session.add(playlist)
    db.session.commit()
    return jsonify(playlist.to_dict()), 201


@content_bp.route('/playlists/<int:playlist_id>', methods=['DELETE'])
@translate_storage_errors
def delete_playlist(playlist_id):
    """Delete a playlist, its items and the rules pointing at it"""
    playlist = _get_or_404(Playlist, playlist_id, 'Playlist')
    db.session.delete(playlist)
    db.session.commit()
    return jsonify({'ok': True}), 200


@content_bp.route('/playlists/<int:playlist_id>/items', methods=['GET'])
@translate_storage_errors
def list_playlist_items(playlist_id):
    """Items of a playlist in play order"""
    _get_or_404(Playlist, playlist_id, 'Playlist')
    items = PlaylistItem.query.filter_by(playlist_id=playlist_id).order_by(
        PlaylistItem.order, PlaylistItem.id
    ).all()
    return jsonify([item.to_dict() for item in items]), 200


@content_bp.route('/playlists/<int:playlist_id>/items', methods=['POST'])
@translate_storage_errors
def add_playlist_item(playlist_id):
    """
    Add media to a playlist

    Request JSON:
    {
        "mediaId": 3,
        "order": 2,               # optional, defaults to next free position
        "displayFit": "cover",    # contain | cover | stretch
        "imageDuration": 15       # optional, images only
    }
    """
    _get_or_404(Playlist, playlist_id, 'Playlist')
    data = _json_body()
    media = _get_or_404(Media, _int_field(data, 'mediaId'), 'Media')

    try:
        display_fit = DisplayFit(data.get('displayFit') or DisplayFit.CONTAIN.value)
    except ValueError:
        raise ClientInputError('displayFit must be one of: contain, cover, stretch')

    image_duration = _int_field(data, 'imageDuration', required=False)
    if image_duration is not None and image_duration <= 0:
        raise ClientInputError('imageDuration must be positive')
    if media.type != MediaType.IMAGE:
        image_duration = None

    order = _int_field(data, 'order', required=False)
    if order is None:
        max_order = db.session.query(func.max(PlaylistItem.order)).filter_by(playlist_id=playlist_id).scalar()
        order = (max_order + 1) if max_order is not None else 0

    item = PlaylistItem(
        playlist_id=playlist_id,
        media_id=media.id,
        order=order,
        display_fit=display_fit,
        image_duration=image_duration
    )
    db.session.add(item)
    _commit_unique(f'Order {order} is already used in this playlist')

    return jsonify(item.to_dict()), 201


@content_bp.route('/playlist-items/<int:item_id>', methods=['DELETE'])
@translate_storage_errors
def delete_playlist_item(item_id):
    """Remove an item from its playlist"""
    item = _get_or_404(PlaylistItem, item_id, 'Playlist item')
    db.session.delete(item)
    db.session.commit()
    return jsonify({'ok': True}), 200


# ============================================================================
# MEDIA RECORDS
# ============================================================================

@content_bp.route('/media', methods=['GET'])
@translate_storage_errors
def list_media():
    """List media records (?type=image|video)"""
    query = Media.query
    media_type = (request.args.get('type') or '').strip().lower()
    if media_type:
        try:
            query = query.filter_by(type=MediaType(media_type))
        except ValueError:
            raise ClientInputError('type must be image or video')
    return jsonify([m.to_dict() for m in query.order_by(Media.created_at.desc(), Media.id.desc()).all()]), 200


@content_bp.route('/media', methods=['POST'])
@translate_storage_errors
def register_media():
    """
    Register a file already present in the media folder

    Request JSON:
    {
        "filename": "promo.mp4",
        "type": "video",    # optional, inferred from the file extension
        "title": "Promo",
        "duration": 30      # optional, videos only
    }
    """
    data = _json_body()
    media_root = current_app.config['MEDIA_FOLDER']
    path = resolve_media_path(media_root, _text(data, 'filename'))
    filename = media_name(media_root, path)
    mime = guess_mimetype(path)

    # Type defaults to the MIME family of the file
    raw_type = _text(data, 'type').lower() or mime.split('/')[0]
    try:
        media_type = MediaType(raw_type)
    except ValueError:
        raise ClientInputError('type must be image or video')

    duration = _int_field(data, 'duration', required=False)

    media = Media(
        type=media_type,
        title=_text(data, 'title') or filename,
        filename=filename,
        mime=mime,
        size_bytes=os.path.getsize(path),
        duration=duration if media_type == MediaType.VIDEO else None
    )
    db.session.add(media)
    _commit_unique('Media already registered')

    return jsonify(media.to_dict()), 201
