# careconnect/slots/__init__.py
from .engine import (
    BLOCKING_STATUSES,
    DAYS_OF_WEEK,
    SLOT_MINUTES,
    AppointmentStatus,
    Candidate,
    ConflictError,
    Slot,
    WorkingHours,
    compute_available_slots,
    day_of_week,
    generate_slots,
    group_by_date,
    is_slot_taken,
    normalize_date,
    normalize_time,
    occupied_times,
    slot_grid,
    sort_chronologically,
    validate_booking,
)
