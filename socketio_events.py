"""
WebSocket Event Handlers
Real-time presence and remote-command updates for operator dashboards
"""
import logging
from flask import current_app, request
from flask_socketio import SocketIO, emit, join_room, leave_room

logger = logging.getLogger(__name__)

socketio = SocketIO()

ROOMS = ('devices', 'monitoring')

# Track connected clients
connected_clients = {}


def _now():
    return current_app.config['CLOCK']()


@socketio.on('connect')
def handle_connect():
    """Handle client connection"""
    client_id = request.sid
    connected_clients[client_id] = {'rooms': []}
    logger.info(f'Client connected (SID: {client_id})')
    emit('connection_response', {
        'status': 'connected',
        'client_id': client_id
    })


@socketio.on('disconnect')
def handle_disconnect(*args):
    """Handle client disconnection"""
    client_id = request.sid
    if connected_clients.pop(client_id, None) is not None:
        logger.info(f'Client disconnected (SID: {client_id})')


@socketio.on('join_room')
def handle_join_room(data):
    """
    Join a room for targeted broadcasts
    Rooms: 'devices' (presence, commands), 'monitoring' (play logs)
    """
    room = (data or {}).get('room')
    if room not in ROOMS:
        emit('error', {'message': f'Unknown room: {room}'})
        return

    join_room(room)
    client = connected_clients.setdefault(request.sid, {'rooms': []})
    if room not in client['rooms']:
        client['rooms'].append(room)

    logger.info(f'Client {request.sid} joined room: {room}')
    emit('room_joined', {'room': room, 'status': 'success'})


@socketio.on('leave_room')
def handle_leave_room(data):
    """Leave a room"""
    room = (data or {}).get('room')
    if not room:
        return

    leave_room(room)
    client = connected_clients.get(request.sid)
    if client and room in client['rooms']:
        client['rooms'].remove(room)

    logger.info(f'Client {request.sid} left room: {room}')
    emit('room_left', {'room': room, 'status': 'success'})


@socketio.on('request_device_status')
def handle_device_status_request(data=None):
    """Current presence of all devices, requested by dashboards on load"""
    from models import Device
    from utils.presence import device_status

    now = _now()
    devices = Device.query.order_by(Device.name).all()
    emit('device_status_update', {'devices': [device_status(d, now) for d in devices]})


# ============================================================================
# SERVER-SIDE BROADCAST FUNCTIONS
# Called from routes and the presence sweep to push updates
# ============================================================================

def broadcast_device_status(device_code, status_data):
    """Broadcast a presence update to the 'devices' room"""
    socketio.emit('device_status_changed', {
        'device_code': device_code,
        'data': status_data
    }, room='devices', namespace='/')


def broadcast_device_offline(device_code, device_name, last_seen):
    """Broadcast when a device crosses the liveness threshold"""
    socketio.emit('device_offline', {
        'device_code': device_code,
        'device_name': device_name,
        'last_seen': last_seen.isoformat() if last_seen else None,
        'timestamp': _now().isoformat()
    }, room='devices', namespace='/')


def broadcast_command_queued(device_code, command_id, command):
    """Broadcast when an operator queues a command"""
    socketio.emit('command_queued', {
        'device_code': device_code,
        'command_id': command_id,
        'command': command,
        'timestamp': _now().isoformat()
    }, room='devices', namespace='/')


def broadcast_command_completed(device_code, command_id, command, status):
    """Broadcast when a player reports a command outcome"""
    socketio.emit('command_completed', {
        'device_code': device_code,
        'command_id': command_id,
        'command': command,
        'status': status,
        'timestamp': _now().isoformat()
    }, room='devices', namespace='/')


def broadcast_playlog_received(device_code, processed):
    """Broadcast when a player uploads play-log entries"""
    socketio.emit('playlog_received', {
        'device_code': device_code,
        'processed': processed,
        'timestamp': _now().isoformat()
    }, room='monitoring', namespace='/')
