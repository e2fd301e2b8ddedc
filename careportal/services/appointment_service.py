from datetime import date
from typing import Awaitable, Callable, List, Optional
from fastapi import HTTPException, status
import logging

from .api_client import BackendClient, BackendError, BackendUnavailable, FetchFailed
from .scheduling import (
    SLOT_FETCH_ERROR_MESSAGE, FormValidationError, availability_message,
    available_actions, date_range_for_filter, filter_admin_appointments,
    filter_appointments, format_time, generate_available_dates,
    patient_date_range, validate_appointment_form
)
from ..core.config import settings
from ..core.security import UserRole
from ..schemas.appointment import (
    Appointment, AppointmentForm, AppointmentStatus, AppointmentView,
    AvailableDates, Doctor, FormOptions, RescheduleRequest, ScheduleEntry,
    ScheduleSlotInput, SlotAvailability, TimeSlot
)

logger = logging.getLogger(__name__)

LOAD_APPOINTMENTS_ERROR = "Failed to load appointments. Please try again."

class AppointmentService:
    def __init__(self, client: BackendClient):
        self.client = client

    # Doctors and schedules
    async def get_doctors(self) -> List[Doctor]:
        try:
            data = await self.client.get("/doctor/doctors")
        except (BackendError, BackendUnavailable):
            raise FetchFailed("Failed to load doctors. Please try again.")
        return [Doctor.model_validate(d) for d in data or []]

    async def get_schedule(self, doctor_id: int) -> List[ScheduleEntry]:
        data = await self.client.get(
            f"/doctor/schedule/{doctor_id}",
            fallback_error="Failed to load schedule"
        )
        return [ScheduleEntry.model_validate(s) for s in data or []]

    async def get_form_options(self) -> FormOptions:
        return FormOptions(
            doctors=await self.get_doctors(),
            appointment_types=settings.APPOINTMENT_FEES,
            locations=settings.APPOINTMENT_LOCATIONS,
        )

    async def get_available_dates(self, doctor_id: int, today: date) -> AvailableDates:
        """Calendar days in the booking window the doctor has a weekly slot on."""
        schedule = await self.get_schedule(doctor_id)
        return AvailableDates(
            doctor_id=doctor_id,
            dates=generate_available_dates(schedule, today),
        )

    async def get_time_slots(self, doctor_id: int, date_str: str) -> SlotAvailability:
        """Concrete slots for a day, with a message when none come back.

        An empty answer is explained by re-reading the weekly schedule. Any
        failure clears the slot list.
        """
        try:
            data = await self.client.get(
                "/doctor/available-slots",
                params={"doctorId": doctor_id, "date": date_str}
            )
            slots = [TimeSlot.model_validate(s) for s in data or []]
            message = ""
            if not slots:
                schedule = await self.get_schedule(doctor_id)
                message = availability_message(slots, schedule, date_str)
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Error fetching available time slots: {e.detail}")
            return SlotAvailability(
                doctor_id=doctor_id,
                date=date_str,
                slots=[],
                message=SLOT_FETCH_ERROR_MESSAGE,
            )

        return SlotAvailability(doctor_id=doctor_id, date=date_str, slots=slots, message=message)

    async def add_schedule_slot(self, doctor_id: int, slot: ScheduleSlotInput) -> ScheduleEntry:
        data = await self.client.post(
            "/doctor/schedule-slots",
            json={"doctorId": doctor_id, **slot.model_dump(by_alias=True)},
            fallback_error="Failed to add schedule slot"
        )
        return ScheduleEntry.model_validate(data)

    async def update_schedule_slot(self, doctor_id: int, slot_id: int, slot: ScheduleSlotInput) -> ScheduleEntry:
        data = await self.client.put(
            f"/doctor/schedule-slots/{slot_id}",
            json={"doctorId": doctor_id, "id": slot_id, **slot.model_dump(by_alias=True)},
            fallback_error="Failed to update schedule slot"
        )
        return ScheduleEntry.model_validate(data)

    async def delete_schedule_slot(self, doctor_id: int, slot_id: int):
        await self.client.delete(
            f"/doctor/schedule-slots/{slot_id}",
            params={"doctorId": doctor_id},
            fallback_error="Failed to delete schedule slot"
        )

    # Appointment lists
    async def fetch_for_user(self, user_id: int, role: UserRole, filter_name: str, today: date) -> List[Appointment]:
        if role == UserRole.PATIENT:
            start_date, end_date = patient_date_range(today)
        else:
            start_date, end_date = date_range_for_filter(filter_name, today)

        try:
            data = await self.client.get(
                "/appointments",
                params={
                    "userId": user_id,
                    "userType": role.value,
                    "startDate": start_date,
                    "endDate": end_date,
                }
            )
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Error fetching appointments: {e.detail}")
            raise FetchFailed(LOAD_APPOINTMENTS_ERROR)
        return [Appointment.model_validate(a) for a in data or []]

    async def list_for_user(
        self,
        user_id: int,
        role: UserRole,
        filter_name: str,
        today: date,
        search: str = "",
    ) -> List[AppointmentView]:
        appointments = await self.fetch_for_user(user_id, role, filter_name, today)
        return self.present(filter_appointments(appointments, filter_name, today, search, role), role)

    async def fetch_all(self, date_filter: str = "all") -> List[Appointment]:
        try:
            data = await self.client.get("/admin/appointments", params={"dateFilter": date_filter})
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Error fetching appointments: {e.detail}")
            raise FetchFailed("Failed to load appointments")
        return [Appointment.model_validate(a) for a in data or []]

    async def list_all(self, date_filter: str = "all", status_filter: str = "all", search: str = "") -> List[AppointmentView]:
        appointments = await self.fetch_all(date_filter)
        return self.present(filter_admin_appointments(appointments, status_filter, search), UserRole.ADMIN)

    async def list_today(self) -> List[Appointment]:
        try:
            data = await self.client.get("/admin/today-appointments")
        except (BackendError, BackendUnavailable):
            raise FetchFailed("Failed to load appointments")
        return [Appointment.model_validate(a) for a in data or []]

    @staticmethod
    def present(appointments: List[Appointment], role: UserRole) -> List[AppointmentView]:
        return [
            AppointmentView(**a.model_dump(), actions=available_actions(a, role))
            for a in appointments
        ]

    # Mutations
    async def create(self, form: AppointmentForm, patient_id: Optional[int] = None) -> dict:
        errors = validate_appointment_form(form)
        if errors:
            raise FormValidationError(errors)

        payload = {
            "doctorId": form.doctor_id,
            "date": form.date,
            "time": format_time(form.time),
            "type": form.type,
            "reason": form.reason or "",
            "location": form.location,
        }
        if patient_id is not None:
            payload["patientId"] = patient_id

        data = await self.client.post(
            "/appointments",
            json=payload,
            fallback_error="Failed to book appointment. Please try again."
        )
        logger.info(f"Appointment requested with doctor {form.doctor_id} on {form.date} {payload['time']}")
        return {
            "appointment": data,
            "fee": settings.APPOINTMENT_FEES.get(form.type),
        }

    async def update_status(self, appointment_id: int, new_status: AppointmentStatus) -> dict:
        return await self.client.put(
            f"/appointments/{appointment_id}/status",
            json={"status": new_status.value},
            fallback_error="Failed to update appointment status. Please try again."
        )

    async def update_status_in_list(
        self,
        appointments: List[Appointment],
        appointment_id: int,
        new_status: AppointmentStatus,
    ) -> List[Appointment]:
        """Request a status change; the local copy changes only on success."""
        await self.update_status(appointment_id, new_status)
        return [
            a.model_copy(update={"status": new_status.value}) if a.id == appointment_id else a
            for a in appointments
        ]

    async def cancel(self, appointment_id: int) -> dict:
        return await self.client.delete(
            f"/appointments/{appointment_id}",
            fallback_error="Failed to cancel appointment. Please try again."
        )

    async def reschedule(
        self,
        appointment: Appointment,
        new_date: str,
        new_time: str,
        rescheduled_by: UserRole,
    ) -> dict:
        """Move an appointment, sending the previous date and time for the audit trail."""
        return await self.client.put(
            f"/appointments/{appointment.id}/reschedule",
            json={
                "date": new_date,
                "time": format_time(new_time),
                "rescheduledBy": rescheduled_by.value,
                "oldDate": appointment.date,
                "oldTime": appointment.time,
            },
            fallback_error="Failed to reschedule appointment"
        )

    async def reschedule_in_list(
        self,
        appointments: List[Appointment],
        appointment_id: int,
        request: RescheduleRequest,
        rescheduled_by: UserRole,
        refetch: Callable[[], Awaitable[List[Appointment]]],
    ) -> List[Appointment]:
        """Reschedule one appointment of ``appointments`` and reconcile.

        ``appointments`` is never mutated. If the backend rejects the move the
        error propagates and the caller keeps its list as it was.
        """
        errors = {}
        if not request.date:
            errors["date"] = "Please select a date"
        if not request.time:
            errors["time"] = "Please select a time"
        if errors:
            raise FormValidationError(errors)

        target = next((a for a in appointments if a.id == appointment_id), None)
        if target is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Appointment not found"
            )

        if rescheduled_by == UserRole.PATIENT and "reschedule" not in available_actions(target, rescheduled_by):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="This appointment can no longer be rescheduled"
            )

        await self.reschedule(target, request.date, request.time, rescheduled_by)

        updated = [
            a.model_copy(update={
                "date": request.date,
                "time": format_time(request.time),
                "status": AppointmentStatus.CONFIRMED.value,
            }) if a.id == appointment_id else a
            for a in appointments
        ]

        try:
            return await refetch()
        except FetchFailed:
            logger.warning(f"Reschedule of appointment {appointment_id} saved but list refresh failed")
            return updated
