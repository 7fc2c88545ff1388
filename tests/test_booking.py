"""
Tests for the appointment store and doctor directory on SQLite.

Covers the booking gate end to end: create, reschedule, status transitions,
the database-level unique index and a concurrent race for one slot.
"""

import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from careconnect import models
from careconnect.database import Base
from careconnect.services import booking, directory, notifications
from careconnect.services.directory import NotFoundError, ScheduleError
from careconnect.slots import AppointmentStatus as S, Candidate, ConflictError

from conftest import MONDAY, TUESDAY


class TestAvailableSlots:
    """Slots read through the store."""

    def test_full_day(self, db_session, doctor):
        slots = booking.available_slots_for(db_session, "doc1", MONDAY)
        assert len(slots) == 16
        assert slots[0] == "09:00" and slots[-1] == "16:30"

    def test_off_day(self, db_session, doctor):
        assert booking.available_slots_for(db_session, "doc1", TUESDAY) == []

    def test_booked_slot_hidden(self, db_session, doctor, patient):
        booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "10:00")
        slots = booking.available_slots_for(db_session, "doc1", MONDAY)
        assert "10:00" not in slots
        assert len(slots) == 15

    def test_grid_marks_cancelled_as_available(self, db_session, doctor, patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "10:00")
        booking.change_status(db_session, a.id, S.Cancelled)
        grid = {s.time: s.available for s in booking.slot_grid_for(db_session, "doc1", MONDAY)}
        assert grid["10:00"] is True

    def test_unknown_doctor(self, db_session):
        with pytest.raises(NotFoundError):
            booking.available_slots_for(db_session, "nobody", MONDAY)


class TestBooking:
    """Creating appointments."""

    def test_new_booking_is_pending(self, db_session, doctor, patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00", "Checkup")
        assert a.id.startswith("apt-")
        assert a.status == S.Pending
        assert a.reason == "Checkup"

    def test_second_booking_same_slot_conflicts(self, db_session, doctor, patient, second_patient):
        booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00")
        with pytest.raises(ConflictError):
            booking.book_appointment(db_session, "pat2", "doc1", MONDAY, "09:00")
        assert db_session.query(models.Appointment).count() == 1

    def test_conflict_with_confirmed(self, db_session, doctor, patient, second_patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "11:00")
        booking.change_status(db_session, a.id, S.Confirmed)
        with pytest.raises(ConflictError):
            booking.book_appointment(db_session, "pat2", "doc1", MONDAY, "11:00")

    def test_same_time_other_doctor_is_fine(self, db_session, doctor, second_doctor, patient, second_patient):
        booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00")
        b = booking.book_appointment(db_session, "pat2", "doc2", MONDAY, "09:00")
        assert b.status == S.Pending

    def test_cancelled_slot_is_reusable(self, db_session, doctor, patient, second_patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "10:00")
        booking.change_status(db_session, a.id, S.Cancelled)
        b = booking.book_appointment(db_session, "pat2", "doc1", MONDAY, "10:00")
        assert b.status == S.Pending

    def test_unknown_patient(self, db_session, doctor):
        with pytest.raises(NotFoundError):
            booking.book_appointment(db_session, "ghost", "doc1", MONDAY, "09:00")

    def test_monday_scenario(self, db_session, second_doctor, patient, second_patient):
        """Book, collide while Pending, free the slot by rejecting, book again."""
        assert booking.available_slots_for(db_session, "doc2", MONDAY) == ["09:00", "09:30", "10:00", "10:30"]

        first = booking.book_appointment(db_session, "pat1", "doc2", MONDAY, "09:00")
        with pytest.raises(ConflictError):
            booking.book_appointment(db_session, "pat2", "doc2", MONDAY, "09:00")

        booking.change_status(db_session, first.id, S.Rejected)
        again = booking.book_appointment(db_session, "pat2", "doc2", MONDAY, "09:00")
        assert again.status == S.Pending


class TestCanonicalSlot:
    """Dates and times are stored in one form, whatever the caller passes."""

    def test_unpadded_date_still_conflicts(self, db_session, doctor, patient, second_patient):
        booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "10:00")
        with pytest.raises(ConflictError):
            booking.book_appointment(db_session, "pat2", "doc1", "2024-8-12", "10:00")
        assert db_session.query(models.Appointment).count() == 1

    def test_unpadded_time_is_stored_padded(self, db_session, doctor, patient, second_patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", "2024-8-12", "9:00")
        assert (a.date, a.time) == (MONDAY, "09:00")
        with pytest.raises(ConflictError):
            booking.book_appointment(db_session, "pat2", "doc1", MONDAY, "09:00")

    def test_reschedule_onto_unpadded_taken_slot(self, db_session, doctor, patient, second_patient):
        booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00")
        b = booking.book_appointment(db_session, "pat2", "doc1", MONDAY, "11:00")
        with pytest.raises(ConflictError):
            booking.reschedule_appointment(db_session, b.id, day="2024-8-12", hhmm="9:00")

    def test_reschedule_stores_padded(self, db_session, doctor, patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00")
        moved = booking.reschedule_appointment(db_session, a.id, hhmm="9:30")
        assert moved.time == "09:30"

    def test_slots_for_unpadded_date_hide_bookings(self, db_session, doctor, patient):
        booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "10:00")
        assert "10:00" not in booking.available_slots_for(db_session, "doc1", "2024-8-12")

    @pytest.mark.parametrize("day,hhmm", [("12/08/2024", "10:00"), (MONDAY, "late"), (MONDAY, "24:00")])
    def test_unreadable_values_rejected(self, db_session, doctor, patient, day, hhmm):
        with pytest.raises(ValueError):
            booking.book_appointment(db_session, "pat1", "doc1", day, hhmm)
        assert db_session.query(models.Appointment).count() == 0


class TestSlotLockRegistry:
    """Per-slot locks live only while someone holds or waits on them."""

    def test_empty_after_booking(self, db_session, doctor, patient):
        booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00")
        assert booking._SLOT_LOCKS == {}

    def test_empty_after_conflict(self, db_session, doctor, patient, second_patient):
        booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00")
        with pytest.raises(ConflictError):
            booking.book_appointment(db_session, "pat2", "doc1", MONDAY, "09:00")
        assert booking._SLOT_LOCKS == {}

    def test_entry_shared_while_held(self):
        candidate = Candidate(doctor_id="doc1", date=MONDAY, time="09:00")
        with booking._slot_lock(candidate):
            key = ("doc1", MONDAY, "09:00")
            assert booking._SLOT_LOCKS[key][1] == 1
        assert key not in booking._SLOT_LOCKS


class TestDatabaseGuard:
    """The partial unique index backs up the in-process check."""

    def test_integrity_error_becomes_conflict(self, db_session, doctor, patient, second_patient):
        booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "10:00")
        db_session.add(models.Appointment(
            patient_id="pat2", doctor_id="doc1", date=MONDAY, time="10:00", status=S.Confirmed,
        ))
        with pytest.raises(ConflictError):
            booking._commit_or_conflict(db_session, Candidate(doctor_id="doc1", date=MONDAY, time="10:00"))

    def test_inactive_duplicates_allowed(self, db_session, doctor, patient, second_patient):
        for pid in ("pat1", "pat2"):
            db_session.add(models.Appointment(
                patient_id=pid, doctor_id="doc1", date=MONDAY, time="10:00", status=S.Cancelled,
            ))
        db_session.commit()
        assert db_session.query(models.Appointment).count() == 2


class TestConcurrentBooking:
    """Two requests racing for the same slot."""

    def test_only_one_wins(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'race.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(bind=engine, autoflush=False, future=True)

        with Session() as s:
            s.add(models.Doctor(
                id="doc1", name="Dr. Race", email="race@clinic.com",
                working_schedule={"Monday": {"startTime": "09:00", "endTime": "10:00", "isOff": False}},
            ))
            s.add_all([
                models.Patient(id=f"pat{i}", name=f"Patient {i}", email=f"p{i}@email.com")
                for i in range(6)
            ])
            s.commit()

        barrier = threading.Barrier(6)
        results = []
        results_lock = threading.Lock()

        def attempt(i):
            with Session() as s:
                barrier.wait()
                try:
                    booking.book_appointment(s, f"pat{i}", "doc1", MONDAY, "09:00")
                    outcome = "ok"
                except ConflictError:
                    outcome = "conflict"
            with results_lock:
                results.append(outcome)

        threads = [threading.Thread(target=attempt, args=(i,)) for i in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(results) == ["conflict"] * 5 + ["ok"]
        assert booking._SLOT_LOCKS == {}
        with Session() as s:
            assert s.query(models.Appointment).count() == 1
        engine.dispose()


class TestReschedule:
    """Moving an appointment."""

    def test_no_op_reschedule_succeeds(self, db_session, doctor, patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "10:00")
        same = booking.reschedule_appointment(db_session, a.id, doctor_id="doc1", day=MONDAY, hhmm="10:00")
        assert same.time == "10:00"

    def test_move_to_free_slot(self, db_session, doctor, patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "10:00")
        moved = booking.reschedule_appointment(db_session, a.id, hhmm="14:30", reason="Later")
        assert moved.time == "14:30"
        assert moved.reason == "Later"
        assert "10:00" in booking.available_slots_for(db_session, "doc1", MONDAY)

    def test_move_onto_taken_slot_fails_and_keeps_data(self, db_session, doctor, patient, second_patient):
        booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "10:00")
        b = booking.book_appointment(db_session, "pat2", "doc1", MONDAY, "11:00", "Original")
        with pytest.raises(ConflictError):
            booking.reschedule_appointment(db_session, b.id, hhmm="10:00", reason="Changed")
        db_session.expire_all()
        b = booking.get_appointment(db_session, b.id)
        assert b.time == "11:00"
        assert b.reason == "Original"

    def test_move_to_other_doctor(self, db_session, doctor, second_doctor, patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00")
        moved = booking.reschedule_appointment(db_session, a.id, doctor_id="doc2")
        assert moved.doctor_id == "doc2"

    def test_reason_only(self, db_session, doctor, patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00")
        assert booking.reschedule_appointment(db_session, a.id, reason="Follow-up").reason == "Follow-up"

    def test_unknown_appointment(self, db_session):
        with pytest.raises(NotFoundError):
            booking.reschedule_appointment(db_session, "apt-missing", hhmm="10:00")


class TestStatusChanges:
    """Accept, reject, complete, cancel."""

    def test_accept_then_complete(self, db_session, doctor, patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00")
        assert booking.change_status(db_session, a.id, S.Confirmed).status == S.Confirmed
        assert booking.change_status(db_session, a.id, S.Completed).status == S.Completed

    def test_confirmation_notifies_both_sides(self, db_session, doctor, patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00", "Chest Pain")
        booking.change_status(db_session, a.id, S.Confirmed)
        users = {n.user_id for n in db_session.query(models.Notification).all()}
        assert users == {"pat1", "doc1"}

    @pytest.mark.parametrize("path", [
        [S.Completed],
        [S.Rejected, S.Confirmed],
        [S.Cancelled, S.Pending],
        [S.Confirmed, S.Rejected],
    ])
    def test_invalid_transitions(self, db_session, doctor, patient, path):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00")
        with pytest.raises(booking.InvalidTransitionError):
            for status in path:
                booking.change_status(db_session, a.id, status)

    def test_same_status_is_noop(self, db_session, doctor, patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00")
        assert booking.change_status(db_session, a.id, S.Pending).status == S.Pending

    def test_delete(self, db_session, doctor, patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00")
        booking.change_status(db_session, a.id, S.Confirmed)
        booking.delete_appointment(db_session, a.id)
        assert db_session.query(models.Appointment).count() == 0
        assert db_session.query(models.Notification).count() == 0


class TestListingAndStats:
    """Read-side helpers for the dashboards."""

    def _book_three(self, db_session):
        a = booking.book_appointment(db_session, "pat1", "doc1", "2024-08-14", "10:00")
        b = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "15:00")
        c = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:30")
        return a, b, c

    def test_list_sorted(self, db_session, doctor, patient):
        a, b, c = self._book_three(db_session)
        assert [x.id for x in booking.list_appointments(db_session)] == [c.id, b.id, a.id]
        assert [x.id for x in booking.list_appointments(db_session, direction="desc")] == [a.id, b.id, c.id]

    def test_list_filters(self, db_session, doctor, patient):
        a, b, c = self._book_three(db_session)
        booking.change_status(db_session, b.id, S.Confirmed)
        assert [x.id for x in booking.list_appointments(db_session, status=S.Confirmed)] == [b.id]
        assert booking.list_appointments(db_session, doctor_id="other") == []

    def test_upcoming_excludes_past_and_inactive(self, db_session, doctor, patient):
        a, b, c = self._book_three(db_session)
        booking.change_status(db_session, c.id, S.Cancelled)
        upcoming = booking.upcoming_for_doctor(db_session, "doc1", today=MONDAY)
        assert [x.id for x in upcoming] == [b.id, a.id]
        assert [x.id for x in booking.upcoming_for_doctor(db_session, "doc1", today="2024-08-13")] == [a.id]

    def test_dashboard_stats(self, db_session, doctor, patient):
        a, b, c = self._book_three(db_session)
        booking.change_status(db_session, b.id, S.Confirmed)
        booking.change_status(db_session, c.id, S.Rejected)
        stats = booking.dashboard_stats(db_session, today=MONDAY)
        assert stats == {
            "total": 3,
            "pending": 1,
            "confirmed_today": 1,
            "completed": 0,
            "cancelled": 0,
            "rejected": 1,
        }


class TestReminders:
    """Reminder records for tomorrow's confirmed appointments."""

    def test_records_once(self, db_session, doctor, patient, second_patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00")
        booking.book_appointment(db_session, "pat2", "doc1", MONDAY, "09:30")  # sigue Pending
        booking.change_status(db_session, a.id, S.Confirmed)

        first = notifications.record_reminders(db_session, MONDAY)
        assert {n.user_id for n in first} == {"pat1", "doc1"}
        assert all(n.type == models.NotificationType.Reminder for n in first)
        assert notifications.record_reminders(db_session, MONDAY) == []

    def test_list_for_user(self, db_session, doctor, patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00")
        booking.change_status(db_session, a.id, S.Confirmed)
        notifications.record_reminders(db_session, MONDAY)
        kinds = [n.type for n in notifications.list_for_user(db_session, "pat1")]
        assert sorted(k.value for k in kinds) == ["Confirmation", "Reminder"]

    def test_message_names_the_date(self, db_session, doctor, patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00")
        booking.change_status(db_session, a.id, S.Confirmed)
        for n in notifications.record_reminders(db_session, MONDAY):
            assert f"on {MONDAY} at 09:00" in n.message
            assert "tomorrow" not in n.message

    def test_mark_read(self, db_session, doctor, patient):
        a = booking.book_appointment(db_session, "pat1", "doc1", MONDAY, "09:00")
        booking.change_status(db_session, a.id, S.Confirmed)
        notifications.record_reminders(db_session, MONDAY)

        first = notifications.list_for_user(db_session, "pat1")[0]
        assert notifications.mark_read(db_session, first.id).read is True
        assert notifications.mark_all_read(db_session, "pat1") == 1
        assert all(n.read for n in notifications.list_for_user(db_session, "pat1"))
        assert not any(n.read for n in notifications.list_for_user(db_session, "doc1"))

    def test_mark_read_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            notifications.mark_read(db_session, 999)


class TestDirectory:
    """Weekly schedule maintenance."""

    def test_update_schedule_marks_profile_complete(self, db_session):
        db_session.add(models.Doctor(id="doc9", name="Dr. New", email="new@clinic.com"))
        db_session.commit()
        doc = directory.update_schedule(db_session, "doc9", {
            "Friday": {"startTime": "8:00", "endTime": "12:00", "isOff": False},
        })
        assert doc.profile_complete is True
        assert doc.working_schedule == {"Friday": {"startTime": "08:00", "endTime": "12:00", "isOff": False}}
        assert len(booking.available_slots_for(db_session, "doc9", "2024-08-16")) == 8

    def test_string_false_is_a_working_day(self):
        cleaned = directory.clean_schedule({"Monday": {"startTime": "09:00", "endTime": "17:00", "isOff": "false"}})
        assert cleaned["Monday"]["isOff"] is False

    def test_off_days_keep_profile_incomplete(self, db_session):
        db_session.add(models.Doctor(id="doc9", name="Dr. New", email="new@clinic.com"))
        db_session.commit()
        doc = directory.update_schedule(db_session, "doc9", {
            "Friday": {"startTime": "17:00", "endTime": "09:00", "isOff": True},
        })
        assert doc.profile_complete is False

    @pytest.mark.parametrize("schedule", [
        {"Funday": {"startTime": "09:00", "endTime": "17:00"}},
        {"Monday": {"startTime": "17:00", "endTime": "09:00", "isOff": False}},
        {"Monday": {"startTime": "25:00", "endTime": "26:00", "isOff": False}},
        {"Monday": "all day"},
    ])
    def test_rejects_bad_schedules(self, schedule):
        with pytest.raises(ScheduleError):
            directory.clean_schedule(schedule)

    def test_unknown_doctor(self, db_session):
        with pytest.raises(NotFoundError):
            directory.update_schedule(db_session, "nobody", {})

    def test_list_doctors(self, db_session, doctor):
        db_session.add(models.Doctor(id="doc9", name="Dr. Aaron", email="aaron@clinic.com"))
        db_session.commit()
        assert [d.id for d in directory.list_doctors(db_session)] == ["doc9", "doc1"]
        assert [d.id for d in directory.list_doctors(db_session, only_complete=True)] == ["doc1"]


class TestSeed:
    """Demo clinic loads through the same booking path."""

    def test_seed_loads_once(self, db_session):
        from careconnect.scripts.seed import seed

        seed(db_session)
        seed(db_session)
        assert db_session.query(models.Doctor).count() == 3
        statuses = {a.reason: a.status for a in db_session.query(models.Appointment).all()}
        assert statuses["Toothache"] == S.Completed
        assert statuses["Skin Rash"] == S.Cancelled
        assert booking.available_slots_for(db_session, "doc2", MONDAY)[0] == "09:00"
