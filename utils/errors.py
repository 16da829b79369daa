"""
Error taxonomy shared by the player and operator APIs
"""
from functools import wraps
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError


class ScheduleServiceError(Exception):
    """Base class for errors surfaced to API callers"""
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'error': self.message}


class ClientInputError(ScheduleServiceError):
    """Missing or malformed request input"""
    status_code = 400


class NotFoundError(ScheduleServiceError):
    """Unknown device, command, or media file"""
    status_code = 404


class ConflictError(ScheduleServiceError):
    """Unique identity already taken"""
    status_code = 409


class UpstreamIOError(ScheduleServiceError):
    """Storage or filesystem failure"""
    status_code = 500


def translate_storage_errors(f):
    """Decorator turning database failures into UpstreamIOError after a rollback"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except SQLAlchemyError as e:
            from models import db
            db.session.rollback()
            current_app.logger.error(f'Storage error in {f.__name__}: {e}')
            raise UpstreamIOError('Storage unavailable') from e

    return decorated_function
