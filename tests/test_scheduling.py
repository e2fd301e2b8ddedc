import pytest
from datetime import date

from careportal.core.security import UserRole
from careportal.schemas.appointment import Appointment, AppointmentForm, ScheduleEntry, TimeSlot
from careportal.services.scheduling import (
    FULLY_BOOKED_MESSAGE, NOT_WORKING_MESSAGE, add_months, availability_message,
    available_actions, calendar_events, create_local_date, date_range_for_filter,
    day_of_week, filter_admin_appointments, filter_appointments, format_date,
    generate_available_dates, parse_local_date,
    patient_date_range, validate_appointment_form
)

SUNDAY = date(2025, 3, 2)

def appointment(id, day, status="confirmed", **fields):
    return Appointment(id=id, date=day, time="09:00:00", status=status, **fields)

class TestAvailableDates:

    def test_mondays_and_wednesdays_from_a_sunday(self):
        schedule = [ScheduleEntry(day_of_week=1), ScheduleEntry(day_of_week=3)]

        dates = generate_available_dates(schedule, SUNDAY)

        assert dates == [
            "2025-03-03", "2025-03-05", "2025-03-10", "2025-03-12",
            "2025-03-17", "2025-03-19", "2025-03-24", "2025-03-26",
            "2025-03-31",
        ]
        assert dates == sorted(dates)
        assert all(day_of_week(create_local_date(d).date()) in (1, 3) for d in dates)

    def test_empty_schedule_has_no_dates(self):
        assert generate_available_dates([], SUNDAY) == []

    def test_window_includes_today(self):
        dates = generate_available_dates([ScheduleEntry(day_of_week=0)], SUNDAY)
        assert dates[0] == "2025-03-02"
        assert dates[-1] == "2025-03-30"

    def test_sunday_is_zero(self):
        assert day_of_week(SUNDAY) == 0
        assert day_of_week(date(2025, 3, 8)) == 6

class TestDateFormatting:

    def test_format_date_agrees_with_local_date(self):
        local = create_local_date("2025-03-01")
        assert (local.year, local.month, local.day) == (2025, 3, 1)
        assert format_date("2025-03-01") == "Mar 1, 2025"

    def test_time_component_is_dropped(self):
        local = create_local_date("2025-03-01T23:30:00.000Z")
        assert local.date() == date(2025, 3, 1)
        assert local.hour == 12

    @pytest.mark.parametrize("value", ["last tuesday", "2025-03", "2025-13-01"])
    def test_unreadable_dates_parse_to_none(self, value):
        assert parse_local_date(value) is None

    def test_parse_local_date_reads_iso_dates(self):
        assert parse_local_date("2025-03-01T08:00:00Z") == create_local_date("2025-03-01")

    def test_add_months_clamps_to_month_end(self):
        assert add_months(date(2025, 8, 31), 1) == date(2025, 9, 30)
        assert add_months(date(2025, 1, 15), -2) == date(2024, 11, 15)

class TestSlotMessages:

    def test_day_off(self):
        schedule = [ScheduleEntry(day_of_week=1)]
        assert availability_message([], schedule, "2025-03-04") == NOT_WORKING_MESSAGE

    def test_fully_booked(self):
        schedule = [ScheduleEntry(day_of_week=1)]
        assert availability_message([], schedule, "2025-03-03") == FULLY_BOOKED_MESSAGE

    def test_slots_need_no_message(self):
        slots = [TimeSlot(time="09:00:00")]
        assert availability_message(slots, [], "2025-03-03") == ""

class TestFilterWindows:

    @pytest.mark.parametrize("filter_name, expected", [
        ("today", ("2025-03-15", "2025-03-15")),
        ("upcoming", ("2025-03-15", "2025-06-15")),
        ("past", ("2024-09-15", "2025-03-14")),
        ("all", ("2024-03-15", "2026-03-15")),
        ("pending_approval", ("2024-03-15", "2026-03-15")),
    ])
    def test_doctor_windows(self, filter_name, expected):
        assert date_range_for_filter(filter_name, date(2025, 3, 15)) == expected

    def test_patient_window(self):
        assert patient_date_range(date(2025, 3, 15)) == ("2024-09-15", "2025-09-15")

class TestFiltering:

    today = date(2025, 3, 15)

    def setup_method(self):
        self.appointments = [
            appointment(1, "2025-03-15", "scheduled", patient_name="Ann Lee", type="Consultation"),
            appointment(2, "2025-03-20", "confirmed", patient_name="Bob Ray", location="North Branch"),
            appointment(3, "2025-03-20", "scheduled", patient_name="Cy Fox"),
            appointment(4, "2025-03-01", "completed", patient_name="Dee Poe"),
            appointment(5, "2025-04-01", "completed", patient_name="Eve Orr"),
        ]

    def ids(self, appointments):
        return [a.id for a in appointments]

    def test_pending_approval(self):
        assert self.ids(filter_appointments(self.appointments, "pending_approval", self.today)) == [1, 3]

    def test_today(self):
        assert self.ids(filter_appointments(self.appointments, "today", self.today)) == [1]

    def test_upcoming_is_confirmed_only(self):
        assert self.ids(filter_appointments(self.appointments, "upcoming", self.today)) == [2]

    def test_past_includes_completed(self):
        assert self.ids(filter_appointments(self.appointments, "past", self.today)) == [4, 5]

    def test_search_by_location(self):
        result = filter_appointments(self.appointments, "all", self.today, search="north")
        assert self.ids(result) == [2]

    def test_admin_status_and_search(self):
        result = filter_admin_appointments(self.appointments, status="scheduled", search="cy")
        assert self.ids(result) == [3]

    def test_calendar_events(self):
        events = calendar_events(self.appointments)
        assert [e["id"] for e in events] == [2, 4, 5]

class TestActions:

    @pytest.mark.parametrize("role, status, count, expected", [
        (UserRole.DOCTOR, "scheduled", 0, ["confirm", "reject"]),
        (UserRole.DOCTOR, "confirmed", 0, ["reschedule", "complete"]),
        (UserRole.DOCTOR, "completed", 0, []),
        (UserRole.ADMIN, "scheduled", 0, ["reschedule"]),
        (UserRole.ADMIN, "cancelled", 0, []),
        (UserRole.PATIENT, "confirmed", 0, ["reschedule", "cancel"]),
        (UserRole.PATIENT, "confirmed", 1, ["cancel"]),
        (UserRole.PATIENT, "completed", 0, []),
    ])
    def test_available_actions(self, role, status, count, expected):
        a = appointment(1, "2025-03-20", status, reschedule_count=count)
        assert available_actions(a, role) == expected

class TestFormValidation:

    def test_missing_fields(self):
        errors = validate_appointment_form(AppointmentForm(type="", location=""))
        assert errors == {
            "doctorId": "Please select a doctor",
            "date": "Please select a date",
            "time": "Please select a time",
            "type": "Please select an appointment type",
            "location": "Please select a location",
        }

    def test_complete_form(self):
        form = AppointmentForm(doctorId=3, date="2025-03-20", time="09:00")
        assert validate_appointment_form(form) == {}

    def test_backend_nulls_get_defaults(self):
        a = Appointment.model_validate({
            "id": 1, "date": "2025-03-20T00:00:00.000Z", "time": "09:30:00",
            "patient_name": None, "type": None, "location": "", "reschedule_count": None,
        })
        assert a.date == "2025-03-20"
        assert a.time == "09:30"
        assert a.patient_name == "Patient"
        assert a.type == "Consultation"
        assert a.location == "Main Clinic"
        assert a.reschedule_count == 0
