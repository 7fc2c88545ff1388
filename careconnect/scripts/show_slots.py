# careconnect/scripts/show_slots.py
import sys
from datetime import date, timedelta

from careconnect.database import SessionLocal
from careconnect.services.booking import slot_grid_for
from careconnect.slots import day_of_week


def show_slots(db, doctor_id: str, d: date):
    day = d.isoformat()
    print(f"\n=== Slots para {doctor_id} el {day} ({day_of_week(day)}) ===")
    grid = slot_grid_for(db, doctor_id, day)
    if not grid:
        print("Sin horario ese día.")
        return
    for s in grid:
        print(" -", s.time, "libre" if s.available else "ocupado")


if __name__ == "__main__":
    doctor = sys.argv[1] if len(sys.argv) > 1 else "doc2"
    hoy = date.today()
    db = SessionLocal()
    try:
        for offset in range(3):
            show_slots(db, doctor, hoy + timedelta(days=offset))
    finally:
        db.close()
