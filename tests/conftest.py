"""
Shared fixtures: an app bound to a throwaway SQLite file, a controllable
wall clock and the demo schedule from init_db
"""
import os
from datetime import datetime, timedelta

import pytest

from app import create_app
from init_db import seed_demo_data
from models import db

# 2025-10-27 is a Monday
MONDAY = datetime(2025, 10, 27)
SUNDAY = datetime(2025, 10, 26)


class FakeClock:
    """Callable stand-in for datetime.now that tests can move"""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def set(self, now):
        self.now = now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(MONDAY.replace(hour=9, minute=30))


@pytest.fixture
def app(tmp_path, clock):
    media_folder = tmp_path / 'media'
    app = create_app(
        'testing',
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'test.db'}",
        MEDIA_FOLDER=str(media_folder),
        LOG_FOLDER=str(tmp_path / 'logs'),
        CLOCK=clock
    )

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def demo(app):
    """
    Lobby group with device DEV1 and two rules:
    weekdays 08:00-18:00 priority 1, Mondays 09:00-10:00 priority 5
    """
    records = seed_demo_data(app.config['MEDIA_FOLDER'])
    return {name: record.id for name, record in records.items()}


@pytest.fixture
def media_file(app):
    """Write a file into the media folder and return its path"""
    def _write(filename, data):
        path = os.path.join(app.config['MEDIA_FOLDER'], filename)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'wb') as f:
            f.write(data)
        return path

    return _write
