"""
Scheduled Tasks Module
Background presence sweep that announces devices going offline
"""
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from datetime import timedelta
import logging

logger = logging.getLogger(__name__)
scheduler = None


def presence_sweep_task(app):
    """
    Broadcast devices that went offline since the previous sweep

    Runs every PRESENCE_SWEEP_SECONDS. Each device is reported once per
    offline transition because only contact ages inside the last sweep
    interval past the threshold are selected.

    Returns:
        Number of devices reported
    """
    with app.app_context():
        from socketio_events import broadcast_device_offline
        from utils.presence import devices_gone_offline

        now = app.config['CLOCK']()
        window = timedelta(seconds=app.config['PRESENCE_SWEEP_SECONDS'])
        devices = devices_gone_offline(now, window)

        for device in devices:
            logger.info(f"Device {device.code} went offline (last seen {device.last_seen.isoformat()})")
            broadcast_device_offline(device.code, device.name, device.last_seen)

        return len(devices)


def init_scheduler(app):
    """
    Initialize and start the background scheduler

    Args:
        app: Flask application instance
    """
    global scheduler

    if not app.config.get('PRESENCE_SWEEP_ENABLED', True):
        logger.info("Presence sweep disabled in configuration")
        return None

    if scheduler is not None and scheduler.running:
        logger.warning("Scheduler already running")
        return scheduler

    scheduler = BackgroundScheduler(daemon=True)
    scheduler.add_job(
        func=presence_sweep_task,
        trigger=IntervalTrigger(seconds=app.config['PRESENCE_SWEEP_SECONDS']),
        args=[app],
        id='presence_sweep',
        name='Device presence sweep',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )
    scheduler.start()
    logger.info(f"Presence sweep scheduled every {app.config['PRESENCE_SWEEP_SECONDS']}s")
    return scheduler


def shutdown_scheduler():
    """Shutdown the scheduler gracefully"""
    global scheduler

    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shut down")
    scheduler = None
