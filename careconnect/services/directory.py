# careconnect/services/directory.py
from __future__ import annotations
import logging
from typing import Any, List, Mapping, Optional

from sqlalchemy.orm import Session

from .. import models
from ..slots import DAYS_OF_WEEK, WorkingHours, normalize_time

logger = logging.getLogger(__name__)


class ScheduleError(ValueError):
    pass


class NotFoundError(LookupError):
    pass


def get_doctor(db: Session, doctor_id: str) -> Optional[models.Doctor]:
    return db.get(models.Doctor, doctor_id)


def list_doctors(db: Session, only_complete: bool = False) -> List[models.Doctor]:
    q = db.query(models.Doctor)
    if only_complete:
        q = q.filter(models.Doctor.profile_complete.is_(True))
    return q.order_by(models.Doctor.name.asc()).all()


def clean_schedule(schedule: Mapping[str, Any]) -> dict:
    """
    Valida un horario semanal y lo devuelve en la forma guardada en BD
    ({día: {"startTime", "endTime", "isOff"}}). Lanza ScheduleError.
    """
    out = {}
    for day, raw in (schedule or {}).items():
        if day not in DAYS_OF_WEEK:
            raise ScheduleError(f"Día desconocido: {day!r}")
        wh = WorkingHours.coerce(raw)
        if wh is None:
            raise ScheduleError(f"Horario inválido para {day}")
        start, end = normalize_time(wh.start_time), normalize_time(wh.end_time)
        if start is None or end is None:
            raise ScheduleError(f"Hora inválida para {day}")
        if not wh.is_off and start >= end:
            raise ScheduleError(f"{day}: startTime debe ser menor que endTime")
        out[day] = WorkingHours(start_time=start, end_time=end, is_off=wh.is_off).to_dict()
    return out


def update_schedule(db: Session, doctor_id: str, schedule: Mapping[str, Any]) -> models.Doctor:
    doctor = get_doctor(db, doctor_id)
    if doctor is None:
        raise NotFoundError(f"Doctor {doctor_id} no encontrado")
    cleaned = clean_schedule(schedule)
    doctor.working_schedule = cleaned
    if any(not d["isOff"] for d in cleaned.values()):
        doctor.profile_complete = True
    db.commit()
    db.refresh(doctor)
    logger.info("Horario actualizado: doctor=%s dias_laborales=%s",
                doctor_id, [d for d, v in cleaned.items() if not v["isOff"]])
    return doctor
