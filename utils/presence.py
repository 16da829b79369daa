"""
Device presence tracking
A device is online while its last contact is younger than the liveness
threshold. Presence is advisory and never gates playlists or commands.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from flask import current_app
from models import db, Device

LIVENESS_THRESHOLD_SECONDS = 60


def liveness_threshold() -> timedelta:
    seconds = current_app.config.get('DEVICE_ONLINE_THRESHOLD_SECONDS', LIVENESS_THRESHOLD_SECONDS)
    return timedelta(seconds=seconds)


def record_contact(device: Device, reported_version: Optional[str], now: datetime) -> Device:
    """Stamp last contact and store the reported player version verbatim"""
    device.last_seen = now
    device.player_version = reported_version
    db.session.commit()
    return device


def is_online(device: Device, now: datetime) -> bool:
    """
    Check if a device has been heard from recently

    Strict inequality: a contact exactly one threshold old counts as offline.
    """
    if device.last_seen is None:
        return False
    return now - device.last_seen < liveness_threshold()


def device_status(device: Device, now: datetime) -> Dict[str, Any]:
    """Presence view of a device for dashboards"""
    return {
        'id': device.id,
        'code': device.code,
        'name': device.name,
        'groupId': device.group_id,
        'groupName': device.group.name if device.group else None,
        'isOnline': is_online(device, now),
        'status': 'online' if is_online(device, now) else 'offline',
        'lastSeen': device.last_seen.isoformat() if device.last_seen else None,
        'playerVersion': device.player_version
    }


def devices_gone_offline(now: datetime, window: timedelta):
    """
    Devices whose contact age crossed the threshold within the last window

    Lets a periodic sweep report each offline transition once without
    keeping any state between runs.
    """
    threshold = liveness_threshold()
    newest = now - threshold
    oldest = newest - window
    return Device.query.filter(
        Device.last_seen <= newest,
        Device.last_seen > oldest
    ).order_by(Device.id).all()
