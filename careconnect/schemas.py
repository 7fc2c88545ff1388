from __future__ import annotations
from typing import Annotated, Optional

from dateutil import parser as dtparser
from pydantic import AfterValidator, BaseModel, ConfigDict

from .slots import AppointmentStatus, normalize_time
from .models import NotificationType


def parse_day(v: str) -> str:
    try:
        return dtparser.parse(v).date().isoformat()
    except (ValueError, OverflowError):
        raise ValueError("Formato de fecha inválido. Usa YYYY-MM-DD.")


def _parse_hhmm(v: str) -> str:
    t = normalize_time(v)
    if t is None:
        raise ValueError("Formato de hora inválido. Usa HH:MM.")
    return t


DayStr = Annotated[str, AfterValidator(parse_day)]
TimeStr = Annotated[str, AfterValidator(_parse_hhmm)]


class WorkingHoursIn(BaseModel):
    startTime: TimeStr = "09:00"
    endTime: TimeStr = "17:00"
    isOff: bool = False


class ScheduleUpdate(BaseModel):
    schedule: dict[str, WorkingHoursIn]


class DoctorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    specialty: str
    address: str
    fees: int
    mobile: str
    hospital_name: Optional[str] = None
    working_schedule: Optional[dict] = None
    profile_complete: bool


class BookRequest(BaseModel):
    patient_id: str
    doctor_id: str
    date: DayStr
    time: TimeStr
    reason: str = ""


class RescheduleRequest(BaseModel):
    doctor_id: Optional[str] = None
    date: Optional[DayStr] = None
    time: Optional[TimeStr] = None
    reason: Optional[str] = None


class StatusRequest(BaseModel):
    status: AppointmentStatus


class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_id: str
    doctor_id: str
    date: str
    time: str
    reason: str
    status: AppointmentStatus


class SlotsResponse(BaseModel):
    slots: list[str]


class SlotOut(BaseModel):
    time: str
    available: bool


class SlotGridResponse(BaseModel):
    slots: list[SlotOut]


class StatsResponse(BaseModel):
    total: int
    pending: int
    confirmed_today: int
    completed: int
    cancelled: int
    rejected: int


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    appointment_id: str
    type: NotificationType
    message: str
    read: bool
