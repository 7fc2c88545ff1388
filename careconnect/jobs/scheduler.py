from __future__ import annotations
import logging
from datetime import datetime, timedelta

import pytz
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

from ..database import SessionLocal
from ..config import settings
from ..services.notifications import record_reminders

logger = logging.getLogger(__name__)


def tomorrow_local() -> str:
    tz = pytz.timezone(settings.TIMEZONE)
    return (datetime.now(tz) + timedelta(days=1)).date().isoformat()


def reminder_job(db: Session | None = None):
    """Registra recordatorios para las citas confirmadas de mañana."""
    day = tomorrow_local()
    own_session = db is None
    if own_session:
        db = SessionLocal()
    try:
        created = record_reminders(db, day)
    finally:
        if own_session:
            db.close()
    return day, created


def start_scheduler():
    scheduler = BackgroundScheduler(timezone=settings.TIMEZONE)
    scheduler.add_job(reminder_job, CronTrigger(minute=settings.REMINDER_CRON_MINUTE))  # cada hora
    scheduler.start()
    logger.info("Scheduler iniciado (recordatorios en el minuto %s de cada hora)", settings.REMINDER_CRON_MINUTE)
    return scheduler
