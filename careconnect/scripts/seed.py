# careconnect/scripts/seed.py
"""
Carga la clínica de demostración (doctores, pacientes y algunas citas).

    python -m careconnect.scripts.seed
"""
import logging

from careconnect import models
from careconnect.database import SessionLocal, init_db
from careconnect.services import booking, directory
from careconnect.slots import AppointmentStatus as S

logger = logging.getLogger(__name__)

WEEKDAYS_9_TO_5 = {
    day: {"startTime": "09:00", "endTime": "17:00", "isOff": False}
    for day in ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")
}
TUE_THU_FRI_10_TO_6 = {
    day: {"startTime": "10:00", "endTime": "18:00", "isOff": False}
    for day in ("Tuesday", "Thursday", "Friday")
}

DOCTORS = [
    dict(id="doc1", name="Dr. John Doe", email="john.doe@clinic.com", specialty="Cardiologist",
         address="123 Heart Lane, Cardio City", fees=250, mobile="123-456-7890"),
    dict(id="doc2", name="Dr. Jane Smith", email="jane.smith@clinic.com", specialty="Dentist",
         address="456 Tooth Ave, Smile Town", fees=150, mobile="123-456-7891",
         hospital_name="Smile Town Dental"),
    dict(id="doc3", name="Dr. Emily White", email="emily.white@clinic.com", specialty="Dermatologist",
         address="789 Skin St, Glow Village", fees=200, mobile="123-456-7892",
         hospital_name="Glow Village Dermatology"),
]
SCHEDULES = {"doc2": WEEKDAYS_9_TO_5, "doc3": TUE_THU_FRI_10_TO_6}

PATIENTS = [
    dict(id="pat1", name="Alice Johnson", email="alice@email.com"),
    dict(id="pat2", name="Bob Williams", email="bob@email.com", age=45, gender="Male",
         contact="987-654-3211", profile_complete=True),
    dict(id="pat3", name="Charlie Brown", email="charlie@email.com", age=28, gender="Male",
         contact="987-654-3212", profile_complete=True),
    dict(id="pat4", name="Diana Prince", email="diana@email.com", age=52, gender="Female",
         contact="987-654-3213", profile_complete=True),
]

# (patient, doctor, fecha, hora, motivo, estado final)
APPOINTMENTS = [
    ("pat1", "doc1", "2024-08-10", "10:00", "Annual Checkup", S.Confirmed),
    ("pat2", "doc1", "2024-08-10", "11:00", "Chest Pain", S.Pending),
    ("pat3", "doc2", "2024-08-11", "14:30", "Toothache", S.Completed),
    ("pat4", "doc3", "2024-08-12", "09:00", "Skin Rash", S.Cancelled),
    ("pat1", "doc3", "2024-08-15", "16:00", "Follow-up", S.Confirmed),
]

# Camino de estados desde Pending hasta el estado final
_PATH = {
    S.Pending: [],
    S.Confirmed: [S.Confirmed],
    S.Completed: [S.Confirmed, S.Completed],
    S.Cancelled: [S.Cancelled],
    S.Rejected: [S.Rejected],
}


def seed(db) -> None:
    if db.query(models.Doctor).first() is not None:
        logger.info("La BD ya tiene datos; no se carga la demo.")
        return
    db.add_all(models.Doctor(**d) for d in DOCTORS)
    db.add_all(models.Patient(**p) for p in PATIENTS)
    db.commit()
    for doctor_id, schedule in SCHEDULES.items():
        directory.update_schedule(db, doctor_id, schedule)

    for patient_id, doctor_id, day, hhmm, reason, final in APPOINTMENTS:
        appt = booking.book_appointment(db, patient_id, doctor_id, day, hhmm, reason)
        for status in _PATH[final]:
            booking.change_status(db, appt.id, status)
    logger.info("Demo cargada: %d doctores, %d pacientes, %d citas",
                len(DOCTORS), len(PATIENTS), len(APPOINTMENTS))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    init_db()
    db = SessionLocal()
    try:
        seed(db)
    finally:
        db.close()
