# careconnect/slots/engine.py
from __future__ import annotations
import enum
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date as _date, datetime, time, timedelta
from typing import Any, Iterable, List, Mapping, Optional

import pytz

logger = logging.getLogger(__name__)

# ====== Constantes ======
SLOT_MINUTES = 30

# Índice = date.weekday(); nombres fijos para no depender del locale del servidor
DAYS_OF_WEEK = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class AppointmentStatus(str, enum.Enum):
    Pending = "Pending"
    Confirmed = "Confirmed"
    Completed = "Completed"
    Cancelled = "Cancelled"
    Rejected = "Rejected"


# Estados que ocupan un horario. Cancelled/Rejected/Completed lo liberan.
BLOCKING_STATUSES = frozenset({AppointmentStatus.Pending, AppointmentStatus.Confirmed})


class ConflictError(Exception):
    """El doctor ya tiene una cita activa en esa fecha y hora."""

    def __init__(self, doctor_id: str, date: str, time: str):
        self.doctor_id = doctor_id
        self.date = date
        self.time = time
        super().__init__(f"Slot {date} {time} is no longer available for doctor {doctor_id}")


# ====== Tipos ======
def _as_flag(value: Any) -> bool:
    """Solo True o el texto "true" marcan el día libre ("false" no cuenta)."""
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


@dataclass(frozen=True)
class WorkingHours:
    start_time: str = "09:00"
    end_time: str = "17:00"
    is_off: bool = False

    @classmethod
    def coerce(cls, value: Any) -> Optional["WorkingHours"]:
        """
        Acepta un WorkingHours o un dict con llaves camelCase (startTime/endTime/isOff)
        o snake_case. Cualquier otra cosa → None (día sin horario).
        """
        if value is None:
            return None
        if isinstance(value, WorkingHours):
            return value
        if isinstance(value, Mapping):
            start = value.get("startTime", value.get("start_time"))
            end = value.get("endTime", value.get("end_time"))
            is_off = value.get("isOff", value.get("is_off", False))
            if start is None or end is None:
                return cls(is_off=True)
            return cls(start_time=str(start), end_time=str(end), is_off=_as_flag(is_off))
        logger.warning("Horario no reconocido (%r); se trata como día libre", value)
        return None

    def to_dict(self) -> dict:
        return {"startTime": self.start_time, "endTime": self.end_time, "isOff": self.is_off}


@dataclass(frozen=True)
class Slot:
    time: str
    available: bool


@dataclass(frozen=True)
class Candidate:
    doctor_id: str
    date: str
    time: str


# ====== Utilidades de fecha/hora ======
def _to_minutes(value: Any) -> Optional[int]:
    """'HH:MM' → minutos desde medianoche. None si no es una hora válida."""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    try:
        hh, mm = str(value).strip().split(":")[:2]
        h, m = int(hh), int(mm)
    except (ValueError, AttributeError):
        return None
    if not (0 <= h <= 23 and 0 <= m <= 59):
        return None
    return h * 60 + m


def _fmt_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def normalize_time(value: Any) -> Optional[str]:
    mins = _to_minutes(value)
    return _fmt_minutes(mins) if mins is not None else None


def _parse_date(value: Any) -> Optional[_date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, _date):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except ValueError:
        return None


def normalize_date(value: Any) -> Optional[str]:
    d = _parse_date(value)
    return d.isoformat() if d else None


def day_of_week(value: Any) -> Optional[str]:
    """
    Nombre del día para una fecha de calendario, anclado a UTC: la medianoche
    UTC de esa fecha, nunca la zona horaria local de quien llama.
    """
    d = _parse_date(value)
    if d is None:
        return None
    anchored = pytz.UTC.localize(datetime.combine(d, time(0, 0)))
    return DAYS_OF_WEEK[anchored.weekday()]


def _status(appt: Any) -> Optional[AppointmentStatus]:
    raw = getattr(appt, "status", None)
    try:
        return AppointmentStatus(raw)
    except ValueError:
        return None


def _same_slot(appt: Any, doctor_id: str, day: str, minutes: Optional[int]) -> bool:
    if str(getattr(appt, "doctor_id", "")) != str(doctor_id):
        return False
    if normalize_date(getattr(appt, "date", None)) != day:
        return False
    return minutes is not None and _to_minutes(getattr(appt, "time", None)) == minutes


# ====== Generación de slots ======
def generate_slots(working_hours: Any, step_minutes: int = SLOT_MINUTES) -> List[str]:
    """
    Todos los inicios de slot en [start_time, end_time) cada `step_minutes`.
    Un último tramo incompleto se descarta (09:00–09:45 → solo 09:00).
    """
    wh = WorkingHours.coerce(working_hours)
    if wh is None or wh.is_off:
        return []
    start = _to_minutes(wh.start_time)
    end = _to_minutes(wh.end_time)
    if start is None or end is None:
        logger.warning("Horario inválido %s–%s; sin slots", wh.start_time, wh.end_time)
        return []
    if start >= end:
        logger.debug("Ventana degenerada %s–%s; sin slots", wh.start_time, wh.end_time)
        return []

    slots = []
    cur = start
    while cur + step_minutes <= end:
        slots.append(_fmt_minutes(cur))
        cur += step_minutes
    return slots


def _working_hours_for(schedule: Optional[Mapping[str, Any]], day: str) -> Optional[WorkingHours]:
    if not schedule:
        return None
    return WorkingHours.coerce(schedule.get(day))


def _slots_for_date(schedule: Optional[Mapping[str, Any]], day: str, step_minutes: int) -> List[str]:
    weekday = day_of_week(day)
    if weekday is None:
        logger.warning("Fecha inválida %r; sin slots", day)
        return []
    return generate_slots(_working_hours_for(schedule, weekday), step_minutes)


def occupied_times(appointments: Iterable[Any], doctor_id: str, date: Any) -> set:
    """Horas con cualquier cita (sin importar el estado) del doctor en esa fecha."""
    day = normalize_date(date)
    out = set()
    for ap in appointments or ():
        if str(getattr(ap, "doctor_id", "")) != str(doctor_id):
            continue
        if normalize_date(getattr(ap, "date", None)) != day:
            continue
        t = normalize_time(getattr(ap, "time", None))
        if t:
            out.add(t)
    return out


def compute_available_slots(
    schedule: Optional[Mapping[str, Any]],
    appointments: Iterable[Any],
    doctor_id: str,
    date: Any,
    step_minutes: int = SLOT_MINUTES,
) -> List[str]:
    """
    Slots libres ("HH:MM", ascendente) del doctor para la fecha.

    Es la variante para *mostrar* opciones: cualquier cita en ese horario lo
    oculta, sin importar el estado. Para autorizar una escritura usar
    validate_booking().
    """
    day = normalize_date(date)
    if day is None:
        logger.warning("Fecha inválida %r; sin slots", date)
        return []
    generated = _slots_for_date(schedule, day, step_minutes)
    if not generated:
        return []
    taken = occupied_times(appointments, doctor_id, day)
    return [s for s in generated if s not in taken]


def slot_grid(
    schedule: Optional[Mapping[str, Any]],
    appointments: Iterable[Any],
    doctor_id: str,
    date: Any,
    step_minutes: int = SLOT_MINUTES,
) -> List[Slot]:
    """Todos los slots del día marcados como disponibles u ocupados (por estado)."""
    day = normalize_date(date)
    if day is None:
        return []
    appointments = list(appointments or ())
    return [
        Slot(time=s, available=not is_slot_taken(appointments, doctor_id, day, s))
        for s in _slots_for_date(schedule, day, step_minutes)
    ]


# ====== Conflictos ======
def is_slot_taken(
    appointments: Iterable[Any],
    doctor_id: str,
    date: Any,
    time: Any,
    exclude_appointment_id: Optional[Any] = None,
) -> bool:
    day = normalize_date(date)
    minutes = _to_minutes(time)
    if day is None or minutes is None:
        return False
    for ap in appointments or ():
        if exclude_appointment_id is not None and str(getattr(ap, "id", None)) == str(exclude_appointment_id):
            continue
        if _status(ap) not in BLOCKING_STATUSES:
            continue
        if _same_slot(ap, doctor_id, day, minutes):
            return True
    return False


def validate_booking(
    appointments: Iterable[Any],
    candidate: Any,
    exclude_appointment_id: Optional[Any] = None,
) -> None:
    """
    Única compuerta antes de persistir una cita nueva o un cambio de
    doctor/fecha/hora. Lanza ConflictError si el horario está ocupado.
    """
    doctor_id = getattr(candidate, "doctor_id", None)
    date = getattr(candidate, "date", None)
    time_ = getattr(candidate, "time", None)
    if is_slot_taken(appointments, doctor_id, date, time_, exclude_appointment_id):
        logger.info("Conflicto: doctor=%s fecha=%s hora=%s", doctor_id, date, time_)
        raise ConflictError(str(doctor_id), normalize_date(date) or str(date), normalize_time(time_) or str(time_))


# ====== Orden cronológico ======
def _sort_key(appt: Any) -> tuple:
    d = _parse_date(getattr(appt, "date", None))
    m = _to_minutes(getattr(appt, "time", None))
    if d is None or m is None:
        # Datos corruptos: al final en orden ascendente
        return (1, datetime.max)
    return (0, datetime.combine(d, time(0, 0)) + timedelta(minutes=m))


def sort_chronologically(appointments: Iterable[Any], direction: str = "asc") -> List[Any]:
    """Nueva lista ordenada por (fecha, hora). Estable: empates conservan el orden de entrada."""
    if direction not in ("asc", "desc"):
        raise ValueError(f"direction must be 'asc' or 'desc', got {direction!r}")
    return sorted(appointments or (), key=_sort_key, reverse=(direction == "desc"))


def group_by_date(appointments: Iterable[Any], direction: str = "asc") -> "OrderedDict[str, List[Any]]":
    grouped: "OrderedDict[str, List[Any]]" = OrderedDict()
    for ap in sort_chronologically(appointments, direction):
        key = normalize_date(getattr(ap, "date", None)) or str(getattr(ap, "date", ""))
        grouped.setdefault(key, []).append(ap)
    return grouped
