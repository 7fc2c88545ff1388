# careconnect/routers/admin.py
from __future__ import annotations
from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from .. import models, schemas
from ..schemas import parse_day
from ..services import booking, notifications
from ..services.directory import NotFoundError
from ..slots import sort_chronologically
from ..jobs.scheduler import reminder_job

router = APIRouter(tags=["admin"])


# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────
def _require_admin(x_admin_token: str | None = Header(default=None)) -> None:
    expected = (settings.ADMIN_TOKEN or "").strip()
    provided = (x_admin_token or "").strip()
    if not expected:
        raise HTTPException(status_code=403, detail="ADMIN_TOKEN no configurado")
    if provided != expected:
        raise HTTPException(status_code=401, detail="Token inválido")


# ──────────────────────────────────────────────────────────────────────────────
# Básicos
# (main.py monta este router con prefix="/admin")
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/ping")
def admin_ping():
    return {"ok": True, "ts": datetime.utcnow().isoformat()}


@router.get("/health")
def admin_health():
    return {
        "ok": True,
        "app": settings.APP_NAME,
        "env": settings.ENV,
        "tz": settings.TIMEZONE,
        "slot_minutes": settings.SLOT_MINUTES,
        "ts": datetime.utcnow().isoformat(),
    }


# ──────────────────────────────────────────────────────────────────────────────
# Recepción: resumen y recordatorios
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/stats", response_model=schemas.StatsResponse, dependencies=[Depends(_require_admin)])
def admin_stats(db: Session = Depends(get_db)):
    return booking.dashboard_stats(db)


@router.post("/reminders/run", dependencies=[Depends(_require_admin)])
def admin_run_reminders(
    date: str | None = Query(None, description="YYYY-MM-DD (por defecto: mañana en la TZ de la clínica)"),
    db: Session = Depends(get_db),
):
    """
    Ejecuta el job de recordatorios en el momento. Útil en desarrollo para no
    esperar al cron.
    """
    if date is not None:
        try:
            day = parse_day(date)
        except ValueError:
            raise HTTPException(status_code=400, detail="Formato de fecha inválido. Use YYYY-MM-DD.")
        created = notifications.record_reminders(db, day)
    else:
        day, created = reminder_job(db)
    return {"ok": True, "date": day, "created": len(created)}


@router.get("/notifications", response_model=list[schemas.NotificationOut], dependencies=[Depends(_require_admin)])
def admin_notifications(user_id: str = Query(...), db: Session = Depends(get_db)):
    return notifications.list_for_user(db, user_id)


@router.put("/notifications/read-all", dependencies=[Depends(_require_admin)])
def admin_notifications_read_all(user_id: str = Query(...), db: Session = Depends(get_db)):
    return {"ok": True, "updated": notifications.mark_all_read(db, user_id)}


@router.put(
    "/notifications/{notification_id}/read",
    response_model=schemas.NotificationOut,
    dependencies=[Depends(_require_admin)],
)
def admin_notification_read(notification_id: int, db: Session = Depends(get_db)):
    try:
        return notifications.mark_read(db, notification_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# ──────────────────────────────────────────────────────────────────────────────
# BD: utilidades
# ──────────────────────────────────────────────────────────────────────────────
@router.get("/db/appointments", dependencies=[Depends(_require_admin)])
def admin_db_appointments(
    date: str = Query(..., description="YYYY-MM-DD"),
    db: Session = Depends(get_db),
):
    """
    Lista las citas en BD para la fecha dada, con paciente y doctor.
    Útil para explicar por qué un slot sale ocupado.
    """
    try:
        day = parse_day(date)
    except ValueError:
        raise HTTPException(status_code=400, detail="Formato de fecha inválido. Use YYYY-MM-DD.")

    rows = (
        db.query(models.Appointment)
        .filter(models.Appointment.date == day)
        .all()
    )
    items = [{
        "id": ap.id,
        "doctor": ap.doctor.name if ap.doctor else ap.doctor_id,
        "patient": ap.patient.name if ap.patient else ap.patient_id,
        "time": ap.time,
        "status": ap.status.value,
    } for ap in sort_chronologically(rows)]
    return {"ok": True, "date": day, "count": len(items), "appointments": items}
