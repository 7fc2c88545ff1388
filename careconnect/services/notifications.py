# careconnect/services/notifications.py
import logging
from typing import List

from sqlalchemy.orm import Session

from .. import models
from .directory import NotFoundError

logger = logging.getLogger(__name__)


def record_confirmation(db: Session, appt: models.Appointment) -> List[models.Notification]:
    """Avisos de confirmación para paciente y doctor (no hace commit)."""
    patient, doctor = appt.patient, appt.doctor
    if not patient or not doctor:
        return []
    detail = f'on {appt.date} at {appt.time} for "{appt.reason}" has been confirmed.'
    out = [
        models.Notification(
            user_id=patient.id,
            appointment_id=appt.id,
            type=models.NotificationType.Confirmation,
            message=f"Your appointment with {doctor.name} {detail}",
        ),
        models.Notification(
            user_id=doctor.id,
            appointment_id=appt.id,
            type=models.NotificationType.Confirmation,
            message=f"Your appointment with {patient.name} {detail}",
        ),
    ]
    db.add_all(out)
    logger.info("Confirmación registrada: appt=%s patient=%s doctor=%s", appt.id, patient.id, doctor.id)
    return out


def _has_reminder(db: Session, appointment_id: str, user_id: str) -> bool:
    return (
        db.query(models.Notification)
        .filter(models.Notification.appointment_id == appointment_id)
        .filter(models.Notification.user_id == user_id)
        .filter(models.Notification.type == models.NotificationType.Reminder)
        .first()
        is not None
    )


def record_reminders(db: Session, day: str) -> List[models.Notification]:
    """
    Recordatorios para las citas Confirmed de `day` (YYYY-MM-DD).
    Idempotente: nunca dos recordatorios para la misma cita y usuario.
    """
    appts = (
        db.query(models.Appointment)
        .filter(models.Appointment.date == day)
        .filter(models.Appointment.status == models.AppointmentStatus.Confirmed)
        .all()
    )
    created = []
    for a in appts:
        patient, doctor = a.patient, a.doctor
        if not patient or not doctor:
            continue
        if not _has_reminder(db, a.id, patient.id):
            created.append(models.Notification(
                user_id=patient.id,
                appointment_id=a.id,
                type=models.NotificationType.Reminder,
                message=f"Reminder: You have an appointment with {doctor.name} on {a.date} at {a.time}.",
            ))
        if not _has_reminder(db, a.id, doctor.id):
            created.append(models.Notification(
                user_id=doctor.id,
                appointment_id=a.id,
                type=models.NotificationType.Reminder,
                message=f"Reminder: You have an appointment with {patient.name} on {a.date} at {a.time}.",
            ))
    if created:
        db.add_all(created)
        db.commit()
    logger.info("Recordatorios para %s: %d citas, %d nuevos", day, len(appts), len(created))
    return created


def list_for_user(db: Session, user_id: str) -> List[models.Notification]:
    return (
        db.query(models.Notification)
        .filter(models.Notification.user_id == user_id)
        .order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
        .all()
    )


def mark_read(db: Session, notification_id: int) -> models.Notification:
    n = db.get(models.Notification, notification_id)
    if n is None:
        raise NotFoundError(f"Notificación {notification_id} no encontrada")
    if not n.read:
        n.read = True
        db.commit()
        db.refresh(n)
    return n


def mark_all_read(db: Session, user_id: str) -> int:
    """Marca como leídas todas las notificaciones del usuario. Devuelve cuántas cambiaron."""
    updated = (
        db.query(models.Notification)
        .filter(models.Notification.user_id == user_id)
        .filter(models.Notification.read.is_(False))
        .update({models.Notification.read: True}, synchronize_session="fetch")
    )
    db.commit()
    logger.info("Notificaciones leídas: user=%s n=%d", user_id, updated)
    return updated
