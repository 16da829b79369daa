"""
Signage Server Database Models
SQLAlchemy ORM models for devices, groups, schedule assignments, playlists,
media, remote commands and play logs
"""
from datetime import datetime
from flask_sqlalchemy import SQLAlchemy
import enum

from utils.time_window import format_minutes

db = SQLAlchemy()


class MediaType(enum.Enum):
    """Kind of media a player renders"""
    IMAGE = 'image'
    VIDEO = 'video'


class DisplayFit(enum.Enum):
    """How a player fits media into the screen"""
    CONTAIN = 'contain'
    COVER = 'cover'
    STRETCH = 'stretch'


class CommandStatus(enum.Enum):
    """Remote command lifecycle: pending -> executed | failed"""
    PENDING = 'pending'
    EXECUTED = 'executed'
    FAILED = 'failed'

    @property
    def is_terminal(self):
        return self is not CommandStatus.PENDING


class DeviceGroup(db.Model):
    """Group of players sharing one schedule"""
    __tablename__ = 'device_groups'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.now, nullable=False)

    # Relationships
    devices = db.relationship('Device', back_populates='group')
    assignments = db.relationship('Assignment', backref='group', lazy='dynamic',
                                  cascade='all, delete-orphan')

    @property
    def device_count(self):
        """Get number of devices in this group"""
        return len(self.devices)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'deviceCount': self.device_count,
            'createdAt': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<DeviceGroup {self.name}>'


class Device(db.Model):
    """Display player registered by an operator"""
    __tablename__ = 'devices'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(100), unique=True, nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    group_id = db.Column(db.Integer, db.ForeignKey('device_groups.id', ondelete='SET NULL'), nullable=True)
    last_seen = db.Column(db.DateTime, nullable=True)
    player_version = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.now, nullable=False)

    # Relationships
    group = db.relationship('DeviceGroup', back_populates='devices')
    commands = db.relationship('PlayerCommand', backref='device', lazy='dynamic',
                               cascade='all, delete-orphan')
    play_logs = db.relationship('PlayLog', backref='device', lazy='dynamic',
                                cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Device {self.name} ({self.code})>'


class Media(db.Model):
    """Image or video file available to players"""
    __tablename__ = 'media'

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.Enum(MediaType), nullable=False)
    title = db.Column(db.String(255), nullable=True)
    filename = db.Column(db.String(255), unique=True, nullable=False, index=True)
    mime = db.Column(db.String(100), nullable=True)
    size_bytes = db.Column(db.BigInteger, nullable=False, default=0)
    duration = db.Column(db.Integer, nullable=True)  # Seconds, videos only
    created_at = db.Column(db.DateTime, default=datetime.now, nullable=False)

    @property
    def formatted_size(self):
        """Return human-readable file size"""
        size = self.size_bytes or 0
        for unit in ['B', 'KB', 'MB', 'GB']:
            if size < 1024.0:
                return f"{size:.2f} {unit}"
            size /= 1024.0
        return f"{size:.2f} TB"

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type.value,
            'title': self.title,
            'filename': self.filename,
            'mime': self.mime,
            'sizeBytes': self.size_bytes,
            'size': self.formatted_size,
            'duration': self.duration
        }

    def __repr__(self):
        return f'<Media {self.filename}>'


class Playlist(db.Model):
    """Ordered sequence of media"""
    __tablename__ = 'playlists'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now, nullable=False)

    # Relationships
    items = db.relationship('PlaylistItem', backref='playlist', lazy='selectin',
                            cascade='all, delete-orphan', order_by='PlaylistItem.order')
    assignments = db.relationship('Assignment', backref='playlist', lazy='dynamic',
                                  cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'itemCount': len(self.items)
        }

    def __repr__(self):
        return f'<Playlist {self.name}>'


class PlaylistItem(db.Model):
    """Media reference at a position within a playlist"""
    __tablename__ = 'playlist_items'

    id = db.Column(db.Integer, primary_key=True)
    playlist_id = db.Column(db.Integer, db.ForeignKey('playlists.id', ondelete='CASCADE'), nullable=False)
    media_id = db.Column(db.Integer, db.ForeignKey('media.id', ondelete='CASCADE'), nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0)
    display_fit = db.Column(db.Enum(DisplayFit), nullable=False, default=DisplayFit.CONTAIN)
    image_duration = db.Column(db.Integer, nullable=True)  # Seconds, images only

    # Relationships
    media = db.relationship('Media', lazy='joined')

    # Unique constraint: one item per position
    __table_args__ = (
        db.UniqueConstraint('playlist_id', 'order', name='unique_playlist_order'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'playlistId': self.playlist_id,
            'mediaId': self.media_id,
            'order': self.order,
            'displayFit': self.display_fit.value,
            'imageDuration': self.image_duration
        }

    def __repr__(self):
        return f'<PlaylistItem Playlist:{self.playlist_id} Media:{self.media_id} Order:{self.order}>'


class Assignment(db.Model):
    """Schedule rule binding a playlist to a device group"""
    __tablename__ = 'assignments'

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey('device_groups.id', ondelete='CASCADE'), nullable=False)
    playlist_id = db.Column(db.Integer, db.ForeignKey('playlists.id', ondelete='CASCADE'), nullable=False)
    start_minute = db.Column(db.Integer, nullable=False)  # Minutes since midnight, inclusive
    end_minute = db.Column(db.Integer, nullable=False)    # Exclusive, 1440 = end of day
    days_of_week = db.Column(db.String(20), nullable=False)  # Comma-separated, 0=Sunday: "1,2,3,4,5"
    priority = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.now, nullable=False)

    __table_args__ = (
        db.CheckConstraint('start_minute >= 0 AND start_minute < end_minute AND end_minute <= 1440',
                           name='check_window_order'),
    )

    @property
    def days_list(self):
        """Return list of day numbers from days_of_week string"""
        return [int(d) for d in self.days_of_week.split(',') if d.strip()]

    @days_list.setter
    def days_list(self, days):
        self.days_of_week = ','.join(str(d) for d in sorted(set(days)))

    @property
    def formatted_schedule(self):
        """Return human-readable schedule description"""
        day_names = ['Sun', 'Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat']
        days = self.days_list
        if len(days) == 7:
            label = "Every day"
        elif days == [1, 2, 3, 4, 5]:
            label = "Weekdays"
        elif days == [0, 6]:
            label = "Weekends"
        else:
            label = ", ".join(day_names[d] for d in days)
        return f"{label} {format_minutes(self.start_minute)}-{format_minutes(self.end_minute)}"

    def to_dict(self):
        return {
            'id': self.id,
            'groupId': self.group_id,
            'playlistId': self.playlist_id,
            'startTime': format_minutes(self.start_minute),
            'endTime': format_minutes(self.end_minute),
            'daysOfWeek': self.days_list,
            'priority': self.priority,
            'schedule': self.formatted_schedule
        }

    def __repr__(self):
        return f'<Assignment Group:{self.group_id} Playlist:{self.playlist_id} P{self.priority}>'


class PlayerCommand(db.Model):
    """Remote-control command queued for a device"""
    __tablename__ = 'player_commands'

    id = db.Column(db.Integer, primary_key=True)
    device_id = db.Column(db.Integer, db.ForeignKey('devices.id', ondelete='CASCADE'), nullable=False, index=True)
    command = db.Column(db.String(100), nullable=False)  # reload, play, screenshot, ...
    params = db.Column(db.JSON, nullable=True)  # Operator-defined payload, stored as-is
    status = db.Column(db.Enum(CommandStatus), default=CommandStatus.PENDING, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now, nullable=False, index=True)
    executed_at = db.Column(db.DateTime, nullable=True)
    result = db.Column(db.Text, nullable=True)  # Player-reported outcome or error message

    @property
    def is_pending(self):
        """Check if command is pending"""
        return self.status == CommandStatus.PENDING

    def to_dict(self):
        return {
            'id': self.id,
            'deviceId': self.device_id,
            'command': self.command,
            'params': self.params,
            'status': self.status.value,
            'createdAt': self.created_at.isoformat(),
            'executedAt': self.executed_at.isoformat() if self.executed_at else None,
            'result': self.result
        }

    def __repr__(self):
        return f'<PlayerCommand {self.command} for Device:{self.device_id} - {self.status.value}>'


class PlayLog(db.Model):
    """What a device reports it actually played"""
    __tablename__ = 'play_logs'

    id = db.Column(db.Integer, primary_key=True)
    device_id = db.Column(db.Integer, db.ForeignKey('devices.id', ondelete='CASCADE'), nullable=False, index=True)
    media_id = db.Column(db.Integer, db.ForeignKey('media.id', ondelete='SET NULL'), nullable=True)
    started_at = db.Column(db.DateTime, nullable=False, index=True)
    ended_at = db.Column(db.DateTime, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='ok')
    notes = db.Column(db.Text, nullable=True)

    # Relationships
    media = db.relationship('Media')

    def to_dict(self):
        return {
            'id': self.id,
            'deviceId': self.device_id,
            'deviceCode': self.device.code if self.device else None,
            'mediaId': self.media_id,
            'mediaTitle': self.media.title if self.media else None,
            'startedAt': self.started_at.isoformat(),
            'endedAt': self.ended_at.isoformat() if self.ended_at else None,
            'status': self.status,
            'notes': self.notes
        }

    def __repr__(self):
        return f'<PlayLog Device:{self.device_id} Media:{self.media_id}>'
