# careconnect/services/booking.py
from __future__ import annotations
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

import pytz
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from .. import models
from ..slots import (
    BLOCKING_STATUSES,
    AppointmentStatus,
    Candidate,
    ConflictError,
    Slot,
    compute_available_slots,
    normalize_date,
    normalize_time,
    slot_grid,
    sort_chronologically,
    validate_booking,
)
from .directory import NotFoundError, get_doctor
from .notifications import record_confirmation

logger = logging.getLogger(__name__)

S = AppointmentStatus

# Transiciones permitidas; los estados finales no aceptan ninguna
TRANSITIONS = {
    S.Pending: frozenset({S.Confirmed, S.Rejected, S.Cancelled}),
    S.Confirmed: frozenset({S.Completed, S.Cancelled}),
}


class InvalidTransitionError(ValueError):
    def __init__(self, current: AppointmentStatus, new: AppointmentStatus):
        self.current = current
        self.new = new
        super().__init__(f"Cannot change status from {current.value} to {new.value}")


# ====== Sección crítica por (doctor, fecha, hora) ======
# llave → [lock, hilos que lo tienen o esperan]; la entrada se borra al llegar a 0
_SLOT_LOCKS: dict[tuple[str, str, str], list] = {}
_SLOT_LOCKS_GUARD = threading.Lock()


@contextmanager
def _slot_lock(candidate: Candidate):
    key = (candidate.doctor_id, candidate.date, candidate.time)
    with _SLOT_LOCKS_GUARD:
        entry = _SLOT_LOCKS.setdefault(key, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _SLOT_LOCKS_GUARD:
            entry[1] -= 1
            if entry[1] == 0:
                _SLOT_LOCKS.pop(key, None)


def _canonical_day(value) -> str:
    day = normalize_date(value)
    if day is None:
        raise ValueError(f"Fecha inválida: {value!r} (usa YYYY-MM-DD)")
    return day


def _canonical_time(value) -> str:
    hhmm = normalize_time(value)
    if hhmm is None:
        raise ValueError(f"Hora inválida: {value!r} (usa HH:MM)")
    return hhmm


def _commit_or_conflict(db: Session, candidate: Candidate) -> None:
    """Commit; si el índice único de la BD detecta un choque → ConflictError."""
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("Choque detectado por la BD: doctor=%s fecha=%s hora=%s",
                       candidate.doctor_id, candidate.date, candidate.time)
        raise ConflictError(candidate.doctor_id, candidate.date, candidate.time)


# ====== Lecturas ======
def _doctor_day(db: Session, doctor_id: str, day: str) -> List[models.Appointment]:
    """Citas del doctor en esa fecha, leídas de nuevo desde la BD (sin caché de sesión)."""
    return (
        db.query(models.Appointment)
        .filter(models.Appointment.doctor_id == doctor_id)
        .filter(models.Appointment.date == day)
        .execution_options(populate_existing=True)
        .all()
    )


def _require_doctor(db: Session, doctor_id: str) -> models.Doctor:
    doctor = get_doctor(db, doctor_id)
    if doctor is None:
        raise NotFoundError(f"Doctor {doctor_id} no encontrado")
    return doctor


def get_appointment(db: Session, appointment_id: str) -> models.Appointment:
    appt = db.get(models.Appointment, appointment_id)
    if appt is None:
        raise NotFoundError(f"Cita {appointment_id} no encontrada")
    return appt


def clinic_today() -> str:
    return datetime.now(pytz.timezone(settings.TIMEZONE)).date().isoformat()


def available_slots_for(db: Session, doctor_id: str, day: str) -> List[str]:
    day = _canonical_day(day)
    doctor = _require_doctor(db, doctor_id)
    return compute_available_slots(
        doctor.working_schedule, _doctor_day(db, doctor_id, day), doctor_id, day,
        step_minutes=settings.SLOT_MINUTES,
    )


def slot_grid_for(db: Session, doctor_id: str, day: str) -> List[Slot]:
    day = _canonical_day(day)
    doctor = _require_doctor(db, doctor_id)
    return slot_grid(
        doctor.working_schedule, _doctor_day(db, doctor_id, day), doctor_id, day,
        step_minutes=settings.SLOT_MINUTES,
    )


def list_appointments(
    db: Session,
    doctor_id: Optional[str] = None,
    patient_id: Optional[str] = None,
    status: Optional[AppointmentStatus] = None,
    direction: str = "asc",
) -> List[models.Appointment]:
    q = db.query(models.Appointment)
    if doctor_id:
        q = q.filter(models.Appointment.doctor_id == doctor_id)
    if patient_id:
        q = q.filter(models.Appointment.patient_id == patient_id)
    if status:
        q = q.filter(models.Appointment.status == status)
    # Orden de inserción estable antes del orden cronológico
    return sort_chronologically(q.order_by(models.Appointment.created_at.asc()).all(), direction)


def upcoming_for_doctor(db: Session, doctor_id: str, today: Optional[str] = None) -> List[models.Appointment]:
    _require_doctor(db, doctor_id)
    today = today or clinic_today()
    rows = (
        db.query(models.Appointment)
        .filter(models.Appointment.doctor_id == doctor_id)
        .filter(models.Appointment.date >= today)
        .filter(models.Appointment.status.in_(list(BLOCKING_STATUSES)))
        .all()
    )
    return sort_chronologically(rows, "asc")


def dashboard_stats(db: Session, today: Optional[str] = None) -> dict:
    today = today or clinic_today()
    appts = db.query(models.Appointment).all()

    def count(status: AppointmentStatus) -> int:
        return sum(1 for a in appts if a.status == status)

    return {
        "total": len(appts),
        "pending": count(S.Pending),
        "confirmed_today": sum(1 for a in appts if a.status == S.Confirmed and a.date == today),
        "completed": count(S.Completed),
        "cancelled": count(S.Cancelled),
        "rejected": count(S.Rejected),
    }


# ====== Escrituras ======
def book_appointment(
    db: Session,
    patient_id: str,
    doctor_id: str,
    day: str,
    hhmm: str,
    reason: str = "",
) -> models.Appointment:
    """
    Crea una cita Pending. La verificación de conflicto corre dentro de la
    sección crítica del horario, justo antes del commit.
    Fecha y hora se guardan en forma canónica (YYYY-MM-DD, HH:MM); ValueError si no se pueden leer.
    """
    day, hhmm = _canonical_day(day), _canonical_time(hhmm)
    _require_doctor(db, doctor_id)
    if db.get(models.Patient, patient_id) is None:
        raise NotFoundError(f"Paciente {patient_id} no encontrado")

    candidate = Candidate(doctor_id=doctor_id, date=day, time=hhmm)
    with _slot_lock(candidate):
        validate_booking(_doctor_day(db, doctor_id, day), candidate)
        appt = models.Appointment(
            patient_id=patient_id,
            doctor_id=doctor_id,
            date=day,
            time=hhmm,
            reason=reason or "",
            status=S.Pending,
        )
        db.add(appt)
        _commit_or_conflict(db, candidate)
    db.refresh(appt)
    logger.info("Cita creada: id=%s doctor=%s fecha=%s hora=%s patient=%s",
                appt.id, doctor_id, day, hhmm, patient_id)
    return appt


def reschedule_appointment(
    db: Session,
    appointment_id: str,
    doctor_id: Optional[str] = None,
    day: Optional[str] = None,
    hhmm: Optional[str] = None,
    reason: Optional[str] = None,
) -> models.Appointment:
    if day is not None:
        day = _canonical_day(day)
    if hhmm is not None:
        hhmm = _canonical_time(hhmm)
    appt = get_appointment(db, appointment_id)

    if doctor_id is None and day is None and hhmm is None:
        if reason is not None:
            appt.reason = reason
        db.commit()
        db.refresh(appt)
        return appt

    if doctor_id is not None:
        _require_doctor(db, doctor_id)
    candidate = Candidate(
        doctor_id=doctor_id or appt.doctor_id,
        date=day or _canonical_day(appt.date),
        time=hhmm or _canonical_time(appt.time),
    )
    with _slot_lock(candidate):
        # La propia cita no cuenta como conflicto contra sí misma
        validate_booking(
            _doctor_day(db, candidate.doctor_id, candidate.date),
            candidate,
            exclude_appointment_id=appt.id,
        )
        appt.doctor_id = candidate.doctor_id
        appt.date = candidate.date
        appt.time = candidate.time
        if reason is not None:
            appt.reason = reason
        _commit_or_conflict(db, candidate)
    db.refresh(appt)
    logger.info("Cita reprogramada: id=%s doctor=%s fecha=%s hora=%s",
                appt.id, appt.doctor_id, appt.date, appt.time)
    return appt


def change_status(db: Session, appointment_id: str, new_status: AppointmentStatus) -> models.Appointment:
    appt = get_appointment(db, appointment_id)
    current = AppointmentStatus(appt.status)
    new_status = AppointmentStatus(new_status)
    if new_status == current:
        return appt
    if new_status not in TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current, new_status)

    appt.status = new_status
    if new_status == S.Confirmed:
        record_confirmation(db, appt)
    db.commit()
    db.refresh(appt)
    logger.info("Estado de cita: id=%s %s → %s", appt.id, current.value, new_status.value)
    return appt


def delete_appointment(db: Session, appointment_id: str) -> None:
    appt = get_appointment(db, appointment_id)
    db.query(models.Notification).filter(models.Notification.appointment_id == appt.id).delete()
    db.delete(appt)
    db.commit()
    logger.info("Cita eliminada: id=%s", appointment_id)
