import asyncio
import pytest
from datetime import date

from careportal.core.security import UserRole
from careportal.schemas.appointment import (
    Appointment, AppointmentForm, AppointmentStatus, RescheduleRequest
)
from careportal.services.api_client import BackendClient, BackendError, FetchFailed
from careportal.services.appointment_service import AppointmentService
from careportal.services.scheduling import (
    FULLY_BOOKED_MESSAGE, NOT_WORKING_MESSAGE, SLOT_FETCH_ERROR_MESSAGE,
    FormValidationError, day_of_week
)
from tests.conftest import DOCTOR, PATIENT, FakeBackend, sign_in

def run_service(backend, call):
    """Run ``call(service)`` against the fake backend."""
    async def main():
        async with BackendClient(access_token="token", transport=backend.transport) as client:
            return await call(AppointmentService(client))
    return asyncio.run(main())

def backend_appointment(id, day="2025-03-20", time="10:00:00", status="confirmed", **fields):
    return {
        "id": id, "date": f"{day}T00:00:00.000Z", "time": time, "status": status,
        "patient_name": "Ann Lee", "doctor_name": "Dr. Grey", "type": "Consultation",
        "location": "Main Clinic", **fields,
    }

class TestTimeSlots:

    def setup_method(self):
        self.backend = FakeBackend()
        self.backend.add("GET", "/doctor/schedule/3", [{"day_of_week": 1, "start_time": "09:00"}])

    def test_no_slots_on_a_day_off(self):
        self.backend.add("GET", "/doctor/available-slots", [])

        result = run_service(self.backend, lambda s: s.get_time_slots(3, "2025-03-04"))

        assert result.slots == []
        assert result.message == NOT_WORKING_MESSAGE
        params = self.backend.requests_to("GET", "/doctor/available-slots")[0].url.params
        assert params["doctorId"] == "3"
        assert params["date"] == "2025-03-04"

    def test_no_slots_on_a_working_day(self):
        self.backend.add("GET", "/doctor/available-slots", [])

        result = run_service(self.backend, lambda s: s.get_time_slots(3, "2025-03-03"))

        assert result.message == FULLY_BOOKED_MESSAGE

    def test_slots_are_returned_without_message(self):
        self.backend.add("GET", "/doctor/available-slots", [
            {"time": "09:00:00", "available": True},
            {"time": "09:30:00", "available": True},
        ])

        result = run_service(self.backend, lambda s: s.get_time_slots(3, "2025-03-03"))

        assert [slot.time for slot in result.slots] == ["09:00", "09:30"]
        assert result.message == ""
        assert self.backend.requests_to("GET", "/doctor/schedule/3") == []

    def test_failure_clears_slots(self):
        self.backend.add("GET", "/doctor/available-slots", {"error": "boom"}, status=500)

        result = run_service(self.backend, lambda s: s.get_time_slots(3, "2025-03-03"))

        assert result.slots == []
        assert result.message == SLOT_FETCH_ERROR_MESSAGE

class TestReschedule:

    def setup_method(self):
        self.backend = FakeBackend()
        self.appointments = [
            Appointment.model_validate(backend_appointment(5)),
            Appointment.model_validate(backend_appointment(6, day="2025-03-21")),
        ]
        self.refetched = []

    async def refetch(self):
        self.refetched.append(True)
        return [Appointment.model_validate(backend_appointment(5, day="2025-03-25", time="14:00:00"))]

    def test_rejection_leaves_list_unchanged(self):
        self.backend.add(
            "PUT", "/appointments/5/reschedule",
            {"error": "Doctor already has an appointment at this time"}, status=409
        )
        before = [a.model_dump() for a in self.appointments]

        with pytest.raises(BackendError) as exc_info:
            run_service(self.backend, lambda s: s.reschedule_in_list(
                self.appointments, 5, RescheduleRequest(date="2025-03-25", time="14:00"),
                UserRole.DOCTOR, self.refetch,
            ))

        assert exc_info.value.status_code == 409
        assert exc_info.value.detail == "Doctor already has an appointment at this time"
        assert [a.model_dump() for a in self.appointments] == before
        assert self.refetched == []

    def test_rejection_without_message_uses_fallback(self):
        self.backend.add("PUT", "/appointments/5/reschedule", {}, status=500)

        with pytest.raises(BackendError) as exc_info:
            run_service(self.backend, lambda s: s.reschedule_in_list(
                self.appointments, 5, RescheduleRequest(date="2025-03-25", time="14:00"),
                UserRole.DOCTOR, self.refetch,
            ))

        assert exc_info.value.detail == "Failed to reschedule appointment"

    def test_success_returns_refetched_list(self):
        self.backend.add("PUT", "/appointments/5/reschedule", {"message": "Rescheduled"})

        result = run_service(self.backend, lambda s: s.reschedule_in_list(
            self.appointments, 5, RescheduleRequest(date="2025-03-25", time="14:00"),
            UserRole.ADMIN, self.refetch,
        ))

        assert [(a.id, a.date, a.time) for a in result] == [(5, "2025-03-25", "14:00")]
        sent = self.backend.body_of(self.backend.requests_to("PUT", "/appointments/5/reschedule")[0])
        assert sent == {
            "date": "2025-03-25",
            "time": "14:00",
            "rescheduledBy": "admin",
            "oldDate": "2025-03-20",
            "oldTime": "10:00",
        }

    def test_success_with_failed_refetch_keeps_local_update(self):
        self.backend.add("PUT", "/appointments/5/reschedule", {"message": "Rescheduled"})

        async def failing_refetch():
            raise FetchFailed("Failed to load appointments. Please try again.")

        result = run_service(self.backend, lambda s: s.reschedule_in_list(
            self.appointments, 5, RescheduleRequest(date="2025-03-25", time="14:00"),
            UserRole.DOCTOR, failing_refetch,
        ))

        moved = next(a for a in result if a.id == 5)
        assert (moved.date, moved.time, moved.status) == ("2025-03-25", "14:00", "confirmed")
        assert self.appointments[0].date == "2025-03-20"

    def test_patient_reschedules_only_once(self):
        self.appointments[0] = self.appointments[0].model_copy(update={"reschedule_count": 1})

        with pytest.raises(Exception) as exc_info:
            run_service(self.backend, lambda s: s.reschedule_in_list(
                self.appointments, 5, RescheduleRequest(date="2025-03-25", time="14:00"),
                UserRole.PATIENT, self.refetch,
            ))

        assert exc_info.value.status_code == 400
        assert self.backend.calls == []

    def test_date_and_time_required(self):
        with pytest.raises(FormValidationError) as exc_info:
            run_service(self.backend, lambda s: s.reschedule_in_list(
                self.appointments, 5, RescheduleRequest(), UserRole.DOCTOR, self.refetch,
            ))

        assert exc_info.value.detail == {"errors": {
            "date": "Please select a date",
            "time": "Please select a time",
        }}
        assert self.backend.calls == []

class TestStatusChanges:

    def test_failed_update_keeps_local_copy(self):
        backend = FakeBackend()
        backend.add("PUT", "/appointments/5/status", {"error": "Not allowed"}, status=403)
        appointments = [Appointment.model_validate(backend_appointment(5, status="scheduled"))]

        with pytest.raises(BackendError):
            run_service(backend, lambda s: s.update_status_in_list(
                appointments, 5, AppointmentStatus.CONFIRMED
            ))

        assert appointments[0].status == "scheduled"

    def test_successful_update_changes_local_copy(self):
        backend = FakeBackend()
        backend.add("PUT", "/appointments/5/status", {"message": "ok"})
        appointments = [Appointment.model_validate(backend_appointment(5, status="scheduled"))]

        result = run_service(backend, lambda s: s.update_status_in_list(
            appointments, 5, AppointmentStatus.CONFIRMED
        ))

        assert result[0].status == "confirmed"
        assert backend.body_of(backend.calls[0]) == {"status": "confirmed"}

class TestAppointmentEndpoints:

    def test_doctor_list_uses_filter_window(self, client, backend):
        headers = sign_in(client, backend, DOCTOR)
        backend.add("GET", "/appointments", [
            backend_appointment(1, day="2099-01-01", status="confirmed"),
            backend_appointment(2, day="2099-01-02", status="scheduled"),
        ])

        response = client.get("/api/v1/appointments?filter=upcoming", headers=headers)
        assert response.status_code == 200

        data = response.json()
        assert [a["id"] for a in data["appointments"]] == [1]
        assert data["appointments"][0]["actions"] == ["reschedule", "complete"]

        params = backend.requests_to("GET", "/appointments")[0].url.params
        assert params["userId"] == "3"
        assert params["userType"] == "doctor"
        assert params["startDate"] == date.today().isoformat()

    def test_list_failure_shows_generic_message(self, client, backend):
        headers = sign_in(client, backend, PATIENT)
        backend.add("GET", "/appointments", {"error": "db down"}, status=500)

        response = client.get("/api/v1/appointments", headers=headers)
        assert response.status_code == 502
        assert response.json()["detail"] == "Failed to load appointments. Please try again."

    def test_unknown_filter(self, client, backend):
        headers = sign_in(client, backend, PATIENT)

        response = client.get("/api/v1/appointments?filter=pending_approval", headers=headers)
        assert response.status_code == 400

    def test_patient_books_appointment(self, client, backend):
        headers = sign_in(client, backend, PATIENT)
        backend.add("POST", "/appointments", {"id": 42, "status": "scheduled"})

        response = client.post("/api/v1/appointments", headers=headers, json={
            "doctorId": 3,
            "date": "2099-01-05",
            "time": "09:30:00",
            "type": "Urgent",
            "reason": "Fever",
            "location": "North Branch",
        })
        assert response.status_code == 201
        assert response.json()["fee"] == 80

        sent = backend.body_of(backend.requests_to("POST", "/appointments")[0])
        assert sent["time"] == "09:30"
        assert sent["patientId"] == 7
        assert sent["doctorId"] == 3

    def test_booking_form_errors(self, client, backend):
        headers = sign_in(client, backend, PATIENT)

        response = client.post("/api/v1/appointments", headers=headers, json={"date": "2099-01-05"})
        assert response.status_code == 422
        errors = response.json()["detail"]["errors"]
        assert errors["doctorId"] == "Please select a doctor"
        assert errors["time"] == "Please select a time"
        assert backend.requests_to("POST", "/appointments") == []

    def test_doctor_reschedule_rejected(self, client, backend):
        headers = sign_in(client, backend, DOCTOR)
        backend.add("GET", "/appointments", [backend_appointment(5)])
        backend.add(
            "PUT", "/appointments/5/reschedule",
            {"error": "Time slot is no longer available"}, status=409
        )

        response = client.put(
            "/api/v1/appointments/5/reschedule",
            headers=headers,
            json={"date": "2099-02-01", "time": "11:00"}
        )
        assert response.status_code == 409
        assert response.json()["detail"] == "Time slot is no longer available"

    def test_doctor_confirms_appointment(self, client, backend):
        headers = sign_in(client, backend, DOCTOR)
        backend.add("GET", "/appointments", [
            backend_appointment(5, status="scheduled"),
            backend_appointment(6, status="scheduled"),
        ])
        backend.add("PUT", "/appointments/5/status", {"message": "ok"})

        response = client.put("/api/v1/appointments/5/status", headers=headers, json={"status": "confirmed"})
        assert response.status_code == 200
        assert [(a["id"], a["status"], a["actions"]) for a in response.json()] == [
            (5, "confirmed", ["reschedule", "complete"]),
            (6, "scheduled", ["confirm", "reject"]),
        ]
        assert backend.body_of(backend.requests_to("PUT", "/appointments/5/status")[0]) == {"status": "confirmed"}

    def test_status_change_error_is_verbatim(self, client, backend):
        headers = sign_in(client, backend, DOCTOR)
        backend.add("GET", "/appointments", [backend_appointment(5, status="scheduled")])
        backend.add("PUT", "/appointments/5/status", {"error": "Appointment belongs to another doctor"}, status=403)

        response = client.put("/api/v1/appointments/5/status", headers=headers, json={"status": "confirmed"})
        assert response.status_code == 403
        assert response.json()["detail"] == "Appointment belongs to another doctor"

    def test_slots_reject_malformed_date(self, client, backend):
        headers = sign_in(client, backend, PATIENT)

        response = client.get("/api/v1/appointments/doctors/3/slots?date=2025-13-01", headers=headers)
        assert response.status_code == 422
        assert backend.requests_to("GET", "/doctor/available-slots") == []

    def test_slots_pass_the_day_through(self, client, backend):
        headers = sign_in(client, backend, PATIENT)
        backend.add("GET", "/doctor/available-slots", [{"time": "09:00:00", "available": True}])

        response = client.get("/api/v1/appointments/doctors/3/slots?date=2025-03-03", headers=headers)
        assert response.status_code == 200
        assert response.json()["date"] == "2025-03-03"
        assert backend.requests_to("GET", "/doctor/available-slots")[0].url.params["date"] == "2025-03-03"

    def test_patient_cannot_confirm(self, client, backend):
        headers = sign_in(client, backend, PATIENT)

        response = client.put("/api/v1/appointments/5/status", headers=headers, json={"status": "confirmed"})
        assert response.status_code == 403

    def test_patient_cancels(self, client, backend):
        headers = sign_in(client, backend, PATIENT)
        backend.add("DELETE", "/appointments/5", {"message": "Appointment cancelled"})

        response = client.delete("/api/v1/appointments/5", headers=headers)
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    def test_available_dates_follow_schedule(self, client, backend):
        headers = sign_in(client, backend, PATIENT)
        backend.add("GET", "/doctor/schedule/3", [{"day_of_week": 2}])

        response = client.get("/api/v1/appointments/doctors/3/available-dates", headers=headers)
        assert response.status_code == 200

        dates = response.json()["dates"]
        assert 4 <= len(dates) <= 5
        assert all(day_of_week(date.fromisoformat(d)) == 2 for d in dates)

    def test_schedule_slot_management(self, client, backend):
        headers = sign_in(client, backend, DOCTOR)
        backend.add("POST", "/doctor/schedule-slots", {"id": 11, "day_of_week": 2, "start_time": "09:00", "end_time": "17:00"})

        response = client.post("/api/v1/schedule/slots", headers=headers, json={
            "dayOfWeek": 2, "startTime": "09:00", "endTime": "17:00",
        })
        assert response.status_code == 201
        assert response.json()["id"] == 11

        sent = backend.body_of(backend.requests_to("POST", "/doctor/schedule-slots")[0])
        assert sent["doctorId"] == 3
        assert sent["maxPatients"] == 4
