"""
Date handling and appointment availability logic.

Everything here is pure: callers pass ``today`` explicitly so the results do
not depend on the clock or the host timezone. Weekday indices follow the
backend's convention, 0=Sunday through 6=Saturday.
"""
from datetime import date, datetime, timedelta
from fastapi import HTTPException
from typing import Dict, Iterable, List, Optional, Tuple
import calendar
import re

from ..core.config import settings
from ..core.security import UserRole
from ..schemas.appointment import Appointment, AppointmentForm, ScheduleEntry, TimeSlot

DATABASE_FORMAT = "%Y-%m-%d"
ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

NOT_WORKING_MESSAGE = "Doctor does not work on this day."
FULLY_BOOKED_MESSAGE = "No available time slots on this day."
SLOT_FETCH_ERROR_MESSAGE = "Error fetching available times. Please try again."

DOCTOR_FILTERS = ("pending_approval", "today", "upcoming", "past", "all")
PATIENT_FILTERS = ("upcoming", "past", "all")

def day_of_week(value: date) -> int:
    """Weekday index with Sunday as 0."""
    return (value.weekday() + 1) % 7

def create_local_date(date_str: Optional[str]) -> datetime:
    """Build a naive local datetime at noon for a ``yyyy-MM-dd`` string.

    Any time component is dropped. Noon keeps the calendar day stable under
    any UTC offset.
    """
    if not date_str:
        return datetime.now()
    clean = date_str.split("T")[0]
    year, month, day = (int(part) for part in clean.split("-"))
    return datetime(year, month, day, 12, 0, 0)

def parse_local_date(date_str: Optional[str]) -> Optional[datetime]:
    """Like ``create_local_date``, but ``None`` for strings that are not dates."""
    try:
        return create_local_date(date_str)
    except ValueError:
        return None

def normalize_date(value) -> str:
    if not isinstance(value, (date, datetime)):
        return ""
    return value.strftime(DATABASE_FORMAT)

def _parse_any(date_str: str) -> datetime:
    if ISO_DATE.match(date_str):
        return create_local_date(date_str)
    return datetime.fromisoformat(date_str.replace("Z", "+00:00"))

def format_date(date_str: str) -> str:
    """``2025-03-01`` -> ``Mar 1, 2025``"""
    value = _parse_any(date_str)
    return f"{value:%b} {value.day}, {value.year}"

def format_time(time_str: str) -> str:
    return time_str[:5]

def add_months(value: date, months: int) -> date:
    """Shift by whole months, clamping to the last day of the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return value.replace(year=year, month=month, day=min(value.day, last_day))

def generate_available_dates(
    schedule: Iterable[ScheduleEntry],
    today: date,
    window_days: int = settings.BOOKING_WINDOW_DAYS,
) -> List[str]:
    """Dates from ``today`` to ``today + window_days`` on which the doctor works."""
    scheduled_days = {entry.day_of_week for entry in schedule}
    if not scheduled_days:
        return []

    dates = []
    for offset in range(window_days + 1):
        current = today + timedelta(days=offset)
        if day_of_week(current) in scheduled_days:
            dates.append(normalize_date(current))
    return dates

def works_on(schedule: Iterable[ScheduleEntry], date_str: str) -> bool:
    weekday = day_of_week(create_local_date(date_str).date())
    return any(entry.day_of_week == weekday for entry in schedule)

def availability_message(
    slots: List[TimeSlot],
    schedule: Iterable[ScheduleEntry],
    date_str: str,
) -> str:
    """Explain an empty slot list: day off versus fully booked."""
    if slots:
        return ""
    if works_on(schedule, date_str):
        return FULLY_BOOKED_MESSAGE
    return NOT_WORKING_MESSAGE

class FormValidationError(HTTPException):
    def __init__(self, errors: Dict[str, str]):
        super().__init__(
            status_code=422,
            detail={"errors": errors},
        )

def validate_appointment_form(form: AppointmentForm) -> Dict[str, str]:
    """Field presence checks; returns field -> inline message."""
    errors = {}
    if not form.doctor_id:
        errors["doctorId"] = "Please select a doctor"
    if not form.date:
        errors["date"] = "Please select a date"
    if not form.time:
        errors["time"] = "Please select a time"
    if not form.type:
        errors["type"] = "Please select an appointment type"
    if not form.location:
        errors["location"] = "Please select a location"
    return errors

def date_range_for_filter(filter_name: str, today: date) -> Tuple[str, str]:
    """Fetch window for the doctor appointment list."""
    if filter_name == "today":
        start = end = today
    elif filter_name == "upcoming":
        start, end = today, add_months(today, 3)
    elif filter_name == "past":
        start, end = add_months(today, -6), today - timedelta(days=1)
    else:
        start, end = add_months(today, -12), add_months(today, 12)
    return normalize_date(start), normalize_date(end)

def patient_date_range(today: date) -> Tuple[str, str]:
    return normalize_date(add_months(today, -6)), normalize_date(add_months(today, 6))

def _matches_search(appointment: Appointment, search: str, fields: Tuple[str, ...]) -> bool:
    needle = search.lower()
    return any(needle in (getattr(appointment, field) or "").lower() for field in fields)

def filter_appointments(
    appointments: List[Appointment],
    filter_name: str,
    today: date,
    search: str = "",
    role: UserRole = UserRole.DOCTOR,
) -> List[Appointment]:
    result = []
    for appointment in appointments:
        appointment_date = create_local_date(appointment.date).date()
        status = appointment.status.lower()

        if role == UserRole.PATIENT:
            upcoming = appointment_date > today
            if filter_name == "upcoming":
                keep = upcoming and status == "confirmed"
            elif filter_name == "past":
                keep = not upcoming
            else:
                keep = True
        elif filter_name == "pending_approval":
            keep = status == "scheduled"
        elif filter_name == "today":
            keep = appointment_date == today
        elif filter_name == "upcoming":
            keep = appointment_date > today and status == "confirmed"
        elif filter_name == "past":
            keep = appointment_date < today or status == "completed"
        else:
            keep = True

        if keep:
            result.append(appointment)

    if search:
        if role == UserRole.PATIENT:
            fields = ("doctor_name", "location", "type")
        else:
            fields = ("patient_name", "type", "location")
        result = [a for a in result if _matches_search(a, search, fields)]
    return result

def filter_admin_appointments(
    appointments: List[Appointment],
    status: str = "all",
    search: str = "",
) -> List[Appointment]:
    needle = search.lower()
    return [
        a for a in appointments
        if (needle in a.patient_name.lower() or needle in a.doctor_name.lower())
        and (status == "all" or a.status == status)
    ]

def available_actions(appointment: Appointment, role: UserRole) -> List[str]:
    """Mutations the given role may request for an appointment."""
    status = appointment.status.lower()
    if role == UserRole.DOCTOR:
        if status == "scheduled":
            return ["confirm", "reject"]
        if status == "confirmed":
            return ["reschedule", "complete"]
        return []
    if role == UserRole.ADMIN:
        return ["reschedule"] if status in ("scheduled", "confirmed") else []

    actions = []
    if status in ("scheduled", "confirmed") and not appointment.reschedule_count:
        actions.append("reschedule")
    if status not in ("completed", "cancelled"):
        actions.append("cancel")
    return actions

def calendar_events(appointments: List[Appointment]) -> List[dict]:
    """Confirmed and completed appointments as calendar entries."""
    return [
        {
            "id": a.id,
            "date": a.date,
            "title": f"{a.time} - {a.doctor_name}",
            "type": a.type,
            "status": a.status.lower(),
        }
        for a in appointments
        if a.status.lower() in ("confirmed", "completed")
    ]
