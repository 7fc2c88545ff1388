# careconnect/models.py
import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, DateTime, Enum, ForeignKey, Boolean, Text, JSON, Index, text

from .database import Base
from .slots import AppointmentStatus


def _short_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


class NotificationType(str, enum.Enum):
    Reminder = "Reminder"
    Confirmation = "Confirmation"


class Doctor(Base):
    __tablename__ = "doctors"

    id: Mapped[str] = mapped_column(String(40), primary_key=True, default=lambda: _short_id("doctor"))
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    specialty: Mapped[str] = mapped_column(String(120), default="")
    address: Mapped[str] = mapped_column(String(300), default="")
    fees: Mapped[int] = mapped_column(Integer, default=0)
    mobile: Mapped[str] = mapped_column(String(40), default="")
    hospital_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    # {"Monday": {"startTime": "09:00", "endTime": "17:00", "isOff": false}, ...}
    working_schedule: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True, default=None)
    profile_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    appointments = relationship("Appointment", back_populates="doctor", passive_deletes=True)


class Patient(Base):
    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(String(40), primary_key=True, default=lambda: _short_id("patient"))
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    contact: Mapped[str] = mapped_column(String(120), default="")
    age: Mapped[int] = mapped_column(Integer, default=0)
    gender: Mapped[str] = mapped_column(String(10), default="Other")
    profile_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    appointments = relationship(
        "Appointment",
        back_populates="patient",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        # Un solo registro activo por (doctor, fecha, hora); la BD es el último árbitro
        Index(
            "uq_appointments_active_slot",
            "doctor_id", "date", "time",
            unique=True,
            sqlite_where=text("status IN ('Pending', 'Confirmed')"),
            postgresql_where=text("status IN ('Pending', 'Confirmed')"),
        ),
    )

    id: Mapped[str] = mapped_column(String(40), primary_key=True, default=lambda: _short_id("apt"))
    patient_id: Mapped[str] = mapped_column(
        String(40),
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    doctor_id: Mapped[str] = mapped_column(
        String(40),
        ForeignKey("doctors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date: Mapped[str] = mapped_column(String(10), nullable=False, index=True)  # YYYY-MM-DD
    time: Mapped[str] = mapped_column(String(5), nullable=False)               # HH:MM
    reason: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus, name="appointment_status"),
        default=AppointmentStatus.Pending,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    patient = relationship("Patient", back_populates="appointments")
    doctor = relationship("Doctor", back_populates="appointments")


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[str] = mapped_column(String(40), index=True)
    appointment_id: Mapped[str] = mapped_column(
        String(40),
        ForeignKey("appointments.id", ondelete="CASCADE"),
        index=True,
    )
    type: Mapped[NotificationType] = mapped_column(Enum(NotificationType, name="notification_type"), nullable=False)
    message: Mapped[str] = mapped_column(Text, default="")
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
