from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from .. import schemas
from ..services import booking, directory

router = APIRouter(prefix="/doctors", tags=["doctors"])


@router.get("", response_model=list[schemas.DoctorOut])
def list_doctors(only_complete: bool = False, db: Session = Depends(get_db)):
    return directory.list_doctors(db, only_complete=only_complete)


@router.get("/{doctor_id}", response_model=schemas.DoctorOut)
def get_doctor(doctor_id: str, db: Session = Depends(get_db)):
    doctor = directory.get_doctor(db, doctor_id)
    if doctor is None:
        raise HTTPException(status_code=404, detail="Doctor no encontrado")
    return doctor


@router.put("/{doctor_id}/schedule", response_model=schemas.DoctorOut)
def update_schedule(doctor_id: str, req: schemas.ScheduleUpdate, db: Session = Depends(get_db)):
    raw = {day: wh.model_dump() for day, wh in req.schedule.items()}
    try:
        return directory.update_schedule(db, doctor_id, raw)
    except directory.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except directory.ScheduleError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/{doctor_id}/upcoming", response_model=list[schemas.AppointmentOut])
def upcoming(doctor_id: str, db: Session = Depends(get_db)):
    try:
        return booking.upcoming_for_doctor(db, doctor_id)
    except directory.NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
