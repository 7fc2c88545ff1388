from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from .. import schemas
from ..schemas import parse_day
from ..slots import AppointmentStatus, ConflictError
from ..services import booking
from ..services.directory import NotFoundError

router = APIRouter(prefix="", tags=["appointments"])

SLOT_TAKEN = "Este horario ya no está disponible. Por favor elija otro."


def _day_or_400(value: str) -> str:
    try:
        return parse_day(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Formato de fecha inválido. Usa YYYY-MM-DD.")


def _conflict(e: ConflictError) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={"message": SLOT_TAKEN, "doctor_id": e.doctor_id, "date": e.date, "time": e.time},
    )


@router.get("/slots", response_model=schemas.SlotsResponse)
def get_slots(
    doctor_id: str = Query(...),
    date: str = Query(..., description="YYYY-MM-DD"),
    db: Session = Depends(get_db),
):
    d = _day_or_400(date)
    try:
        slots = booking.available_slots_for(db, doctor_id, d)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return schemas.SlotsResponse(slots=slots)


@router.get("/slots/grid", response_model=schemas.SlotGridResponse)
def get_slot_grid(
    doctor_id: str = Query(...),
    date: str = Query(..., description="YYYY-MM-DD"),
    db: Session = Depends(get_db),
):
    d = _day_or_400(date)
    try:
        grid = booking.slot_grid_for(db, doctor_id, d)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return schemas.SlotGridResponse(slots=[schemas.SlotOut(time=s.time, available=s.available) for s in grid])


@router.get("/appointments", response_model=list[schemas.AppointmentOut])
def list_appointments(
    doctor_id: Optional[str] = None,
    patient_id: Optional[str] = None,
    status: Optional[AppointmentStatus] = None,
    order: Literal["asc", "desc"] = "asc",
    db: Session = Depends(get_db),
):
    return booking.list_appointments(db, doctor_id=doctor_id, patient_id=patient_id, status=status, direction=order)


@router.post("/appointments", response_model=schemas.AppointmentOut, status_code=201)
def book(req: schemas.BookRequest, db: Session = Depends(get_db)):
    try:
        return booking.book_appointment(db, req.patient_id, req.doctor_id, req.date, req.time, req.reason)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConflictError as e:
        raise _conflict(e)


@router.put("/appointments/{appointment_id}", response_model=schemas.AppointmentOut)
def reschedule(appointment_id: str, req: schemas.RescheduleRequest, db: Session = Depends(get_db)):
    try:
        return booking.reschedule_appointment(
            db, appointment_id,
            doctor_id=req.doctor_id, day=req.date, hhmm=req.time, reason=req.reason,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConflictError as e:
        raise _conflict(e)


@router.post("/appointments/{appointment_id}/status", response_model=schemas.AppointmentOut)
def set_status(appointment_id: str, req: schemas.StatusRequest, db: Session = Depends(get_db)):
    try:
        return booking.change_status(db, appointment_id, req.status)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except booking.InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.delete("/appointments/{appointment_id}")
def delete(appointment_id: str, db: Session = Depends(get_db)):
    try:
        booking.delete_appointment(db, appointment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"ok": True, "appointment_id": appointment_id}
