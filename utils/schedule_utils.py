"""
Schedule Utilities
Resolves the active playlist for a device, detects overlapping rules and
builds day previews
"""
from datetime import datetime, date, time
from typing import List, Dict, Optional, Any
from urllib.parse import quote
from flask import current_app
from models import Assignment, Device, MediaType, Playlist
from utils.time_window import format_minutes, in_window

DEFAULT_IMAGE_DURATION = 8


class ScheduleConflict:
    """Represents two rules of one group whose windows overlap"""

    def __init__(self, assignment1: Assignment, assignment2: Assignment, conflict_type: str, details: str):
        self.assignment1 = assignment1
        self.assignment2 = assignment2
        self.conflict_type = conflict_type  # 'time_overlap', 'priority_conflict'
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {
            'assignmentId': self.assignment1.id,
            'otherAssignmentId': self.assignment2.id,
            'conflictType': self.conflict_type,
            'details': self.details
        }


def check_time_overlap(start1: int, end1: int, start2: int, end2: int) -> bool:
    """Check if two same-day [start, end) minute ranges overlap"""
    return start1 < end2 and start2 < end1


def get_schedule_conflicts(assignment: Assignment) -> List[ScheduleConflict]:
    """
    Find rules of the same group that overlap the given rule

    Overlaps are legal (priority decides), but equal-priority overlaps fall
    back to the lowest-id tie-break, which operators usually want to know.
    """
    others = Assignment.query.filter(
        Assignment.group_id == assignment.group_id,
        Assignment.id != assignment.id
    ).order_by(Assignment.id).all()

    conflicts = []
    for other in others:
        if not set(assignment.days_list) & set(other.days_list):
            continue
        if not check_time_overlap(assignment.start_minute, assignment.end_minute,
                                  other.start_minute, other.end_minute):
            continue

        conflict_type = 'time_overlap'
        details = (f"Time ranges overlap: {format_minutes(assignment.start_minute)}-"
                   f"{format_minutes(assignment.end_minute)} vs "
                   f"{format_minutes(other.start_minute)}-{format_minutes(other.end_minute)}")
        if assignment.priority == other.priority:
            conflict_type = 'priority_conflict'
            details += f" (same priority: {assignment.priority})"
        conflicts.append(ScheduleConflict(assignment, other, conflict_type, details))

    return conflicts


def get_candidate_assignments(group_id: int, check_datetime: datetime) -> List[Assignment]:
    """Rules of a group whose window covers the given instant"""
    assignments = Assignment.query.filter_by(group_id=group_id).order_by(Assignment.id).all()
    return [a for a in assignments if in_window(a, check_datetime)]


def resolve_assignment_for_device(device: Optional[Device], check_datetime: datetime) -> Optional[Assignment]:
    """
    Determine which rule is active for a device at a given time

    Args:
        device: Device to check (None is treated as "no content")
        check_datetime: Local wall-clock instant

    Returns:
        Winning Assignment or None if nothing is scheduled
    """
    if device is None or device.group_id is None:
        return None

    candidates = get_candidate_assignments(device.group_id, check_datetime)
    if not candidates:
        return None

    # Highest priority first, then lowest id so equal priorities resolve the same way every time
    candidates.sort(key=lambda a: (-a.priority, a.id))
    return candidates[0]


def stream_url(filename: str) -> str:
    return f'/api/stream/{quote(filename)}'


def build_playlist_items(playlist: Playlist, default_image_duration: int = DEFAULT_IMAGE_DURATION) -> List[Dict[str, Any]]:
    """Project playlist items, in play order, into the player's wire format"""
    items = []
    for item in sorted(playlist.items, key=lambda it: (it.order, it.id)):
        media = item.media
        entry = {
            'id': item.id,
            'mediaId': media.id,
            'type': media.type.value,
            'url': stream_url(media.filename),
            'displayFit': item.display_fit.value,
        }
        if media.type == MediaType.IMAGE:
            entry['duration'] = item.image_duration if item.image_duration is not None else default_image_duration
        elif media.duration is not None:
            entry['duration'] = media.duration
        if media.title:
            entry['title'] = media.title
        items.append(entry)
    return items


def empty_payload(group_id: Optional[int] = None) -> Dict[str, Any]:
    return {'groupId': group_id, 'playlistId': None, 'items': []}


def resolve_playlist_for_device(device: Optional[Device], check_datetime: datetime) -> Dict[str, Any]:
    """
    Resolve the playlist payload a device should show right now

    Missing device, missing group, and no matching rule all produce an empty
    item list; none of them is an error.
    """
    group_id = device.group_id if device is not None else None
    assignment = resolve_assignment_for_device(device, check_datetime)
    if assignment is None:
        return empty_payload(group_id)

    default_duration = current_app.config.get('DEFAULT_IMAGE_DURATION', DEFAULT_IMAGE_DURATION)
    return {
        'groupId': group_id,
        'playlistId': assignment.playlist_id,
        'items': build_playlist_items(assignment.playlist, default_duration)
    }


def get_schedule_preview(device: Device, preview_date: date) -> List[Dict[str, Any]]:
    """
    Get a timeline preview of what will play on a device for a given date

    Args:
        device: Device to preview
        preview_date: Date to preview

    Returns:
        One slot per hour with the winning rule, if any
    """
    timeline = []

    for hour in range(24):
        check_time = time(hour, 0)
        active = resolve_assignment_for_device(device, datetime.combine(preview_date, check_time))

        slot = {
            'time': check_time.strftime('%H:%M'),
            'hour': hour,
            'assignment': None
        }
        if active:
            slot['assignment'] = {
                'id': active.id,
                'playlistId': active.playlist_id,
                'playlistName': active.playlist.name,
                'priority': active.priority
            }
        timeline.append(slot)

    return timeline
