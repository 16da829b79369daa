"""
Database Initialization Script
Run this script to create all database tables and seed a demo schedule
"""
import os
import sys
from app import create_app
from models import db, Device, DeviceGroup, Media, MediaType, Playlist, PlaylistItem, Assignment, DisplayFit
from utils.time_window import parse_hhmm

WEEKDAYS = [1, 2, 3, 4, 5]  # 0=Sunday


def _register_media(media_folder, filename, media_type, title, duration=None):
    path = os.path.join(media_folder, filename)
    size = os.path.getsize(path) if os.path.isfile(path) else 0
    media = Media(
        type=media_type,
        title=title,
        filename=filename,
        mime='image/png' if media_type == MediaType.IMAGE else 'video/mp4',
        size_bytes=size,
        duration=duration
    )
    db.session.add(media)
    return media


def seed_demo_data(media_folder):
    """
    Seed one group with two overlapping rules

    Group "Lobby" holds device DEV1. "Daytime loop" plays weekdays
    08:00-18:00 at priority 1, "Monday briefing" overrides it on Mondays
    09:00-10:00 at priority 5.

    Returns:
        dict of the created records keyed by short name
    """
    group = DeviceGroup(name='Lobby')
    db.session.add(group)
    db.session.flush()

    device = Device(code='DEV1', name='Lobby screen', group_id=group.id)
    db.session.add(device)

    welcome = _register_media(media_folder, 'welcome.png', MediaType.IMAGE, 'Welcome')
    promo = _register_media(media_folder, 'promo.mp4', MediaType.VIDEO, 'Promo', duration=30)
    briefing = _register_media(media_folder, 'briefing.mp4', MediaType.VIDEO, 'Briefing', duration=120)
    db.session.flush()

    daytime = Playlist(name='Daytime loop')
    monday = Playlist(name='Monday briefing')
    db.session.add_all([daytime, monday])
    db.session.flush()

    db.session.add_all([
        PlaylistItem(playlist_id=daytime.id, media_id=welcome.id, order=0,
                     display_fit=DisplayFit.COVER, image_duration=10),
        PlaylistItem(playlist_id=daytime.id, media_id=promo.id, order=1,
                     display_fit=DisplayFit.CONTAIN),
        PlaylistItem(playlist_id=monday.id, media_id=briefing.id, order=0,
                     display_fit=DisplayFit.STRETCH),
    ])

    daytime_rule = Assignment(group_id=group.id, playlist_id=daytime.id,
                              start_minute=parse_hhmm('08:00'), end_minute=parse_hhmm('18:00'), priority=1)
    daytime_rule.days_list = WEEKDAYS
    briefing_rule = Assignment(group_id=group.id, playlist_id=monday.id,
                               start_minute=parse_hhmm('09:00'), end_minute=parse_hhmm('10:00'), priority=5)
    briefing_rule.days_list = [1]
    db.session.add_all([daytime_rule, briefing_rule])

    db.session.commit()

    return {
        'group': group,
        'device': device,
        'daytime': daytime,
        'monday': monday,
        'daytime_rule': daytime_rule,
        'briefing_rule': briefing_rule,
    }


def init_database():
    """Initialize database with tables and demo data"""

    app = create_app()

    with app.app_context():
        # Drop all tables (use with caution in production!)
        print("Dropping existing tables...")
        db.drop_all()

        print("Creating database tables...")
        db.create_all()

        if os.getenv('FLASK_ENV', 'development') == 'development':
            print("Adding demo schedule...")
            seed_demo_data(app.config['MEDIA_FOLDER'])

        print("\n" + "=" * 50)
        print("Database initialized successfully!")
        print("=" * 50)
        print("\nTry: GET /api/player/playlist?device=DEV1")
        print("=" * 50 + "\n")


if __name__ == '__main__':
    confirm = input("This will delete all existing data. Continue? (yes/no): ")
    if confirm.lower() == 'yes':
        init_database()
    else:
        print("Database initialization cancelled.")
        sys.exit(0)
