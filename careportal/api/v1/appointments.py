from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import List

from ...api.deps import (
    get_backend_client, get_current_session, get_doctor_session, get_patient_session
)
from ...core.security import UserRole
from ...models.session import PortalSession
from ...services.api_client import BackendClient
from ...services.appointment_service import AppointmentService
from ...services.scheduling import DOCTOR_FILTERS, PATIENT_FILTERS, calendar_events
from ...schemas.appointment import (
    AppointmentForm, AppointmentList, AppointmentStatus, AppointmentView,
    AvailableDates, FormOptions, RescheduleRequest, SlotAvailability, StatusUpdate
)

router = APIRouter(prefix="/appointments", tags=["Appointments"])

DOCTOR_STATUS_CHANGES = (
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.REJECTED,
    AppointmentStatus.COMPLETED,
)

@router.get("/form-options", response_model=FormOptions)
async def get_form_options(
    session: PortalSession = Depends(get_current_session),
    client: BackendClient = Depends(get_backend_client)
):
    """Doctors, appointment types with fees, and locations for the booking form."""
    return await AppointmentService(client).get_form_options()

@router.get("/doctors/{doctor_id}/available-dates", response_model=AvailableDates)
async def get_available_dates(
    doctor_id: int,
    session: PortalSession = Depends(get_current_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await AppointmentService(client).get_available_dates(doctor_id, date.today())

@router.get("/doctors/{doctor_id}/slots", response_model=SlotAvailability)
async def get_time_slots(
    doctor_id: int,
    day: date = Query(..., alias="date"),
    session: PortalSession = Depends(get_current_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await AppointmentService(client).get_time_slots(doctor_id, day.isoformat())

@router.get("", response_model=AppointmentList)
async def list_appointments(
    filter: str = "all",
    search: str = "",
    session: PortalSession = Depends(get_current_session),
    client: BackendClient = Depends(get_backend_client)
):
    """Appointments of the signed-in doctor or patient, filtered and searched."""
    role = UserRole(session.user_type)
    allowed = PATIENT_FILTERS if role == UserRole.PATIENT else DOCTOR_FILTERS
    if role == UserRole.ADMIN or filter not in allowed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown filter. Use one of: {', '.join(allowed)}"
        )

    appointments = await AppointmentService(client).list_for_user(
        session.user_id, role, filter, date.today(), search
    )
    return AppointmentList(filter=filter, search=search, appointments=appointments)

@router.get("/calendar")
async def get_calendar(
    session: PortalSession = Depends(get_patient_session),
    client: BackendClient = Depends(get_backend_client)
):
    """Confirmed and completed appointments laid out as calendar events."""
    appointments = await AppointmentService(client).fetch_for_user(
        session.user_id, UserRole.PATIENT, "all", date.today()
    )
    return calendar_events(appointments)

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_appointment(
    form: AppointmentForm,
    session: PortalSession = Depends(get_patient_session),
    client: BackendClient = Depends(get_backend_client)
):
    """Book an appointment; it starts out scheduled, awaiting the doctor."""
    return await AppointmentService(client).create(form, session.user_id)

@router.put("/{appointment_id}/status", response_model=List[AppointmentView])
async def update_status(
    appointment_id: int,
    update: StatusUpdate,
    session: PortalSession = Depends(get_doctor_session),
    client: BackendClient = Depends(get_backend_client)
):
    """Change an appointment's status and return the doctor's updated list."""
    if update.status not in DOCTOR_STATUS_CHANGES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Appointments can only be confirmed, rejected or completed"
        )
    service = AppointmentService(client)
    appointments = await service.fetch_for_user(session.user_id, UserRole.DOCTOR, "all", date.today())
    updated = await service.update_status_in_list(appointments, appointment_id, update.status)
    return service.present(updated, UserRole.DOCTOR)

@router.delete("/{appointment_id}")
async def cancel_appointment(
    appointment_id: int,
    session: PortalSession = Depends(get_patient_session),
    client: BackendClient = Depends(get_backend_client)
):
    await AppointmentService(client).cancel(appointment_id)
    return {"id": appointment_id, "status": AppointmentStatus.CANCELLED.value}

@router.put("/{appointment_id}/reschedule", response_model=List[AppointmentView])
async def reschedule_appointment(
    appointment_id: int,
    request: RescheduleRequest,
    session: PortalSession = Depends(get_current_session),
    client: BackendClient = Depends(get_backend_client)
):
    """Move an appointment and return the refreshed list for the caller's role."""
    role = UserRole(session.user_type)
    service = AppointmentService(client)

    async def refetch():
        if role == UserRole.ADMIN:
            return await service.fetch_all()
        return await service.fetch_for_user(session.user_id, role, "all", date.today())

    appointments = await refetch()
    updated = await service.reschedule_in_list(appointments, appointment_id, request, role, refetch)
    return service.present(updated, role)
