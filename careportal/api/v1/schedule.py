from fastapi import APIRouter, Depends, status
from typing import List

from ...api.deps import get_backend_client, get_doctor_session
from ...models.session import PortalSession
from ...services.api_client import BackendClient
from ...services.appointment_service import AppointmentService
from ...schemas.appointment import ScheduleEntry, ScheduleSlotInput

router = APIRouter(prefix="/schedule", tags=["Doctor Schedule"])

@router.get("", response_model=List[ScheduleEntry])
async def get_my_schedule(
    session: PortalSession = Depends(get_doctor_session),
    client: BackendClient = Depends(get_backend_client)
):
    """Weekly working hours of the signed-in doctor."""
    return await AppointmentService(client).get_schedule(session.user_id)

@router.post("/slots", response_model=ScheduleEntry, status_code=status.HTTP_201_CREATED)
async def add_slot(
    slot: ScheduleSlotInput,
    session: PortalSession = Depends(get_doctor_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await AppointmentService(client).add_schedule_slot(session.user_id, slot)

@router.put("/slots/{slot_id}", response_model=ScheduleEntry)
async def update_slot(
    slot_id: int,
    slot: ScheduleSlotInput,
    session: PortalSession = Depends(get_doctor_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await AppointmentService(client).update_schedule_slot(session.user_id, slot_id, slot)

@router.delete("/slots/{slot_id}")
async def delete_slot(
    slot_id: int,
    session: PortalSession = Depends(get_doctor_session),
    client: BackendClient = Depends(get_backend_client)
):
    await AppointmentService(client).delete_schedule_slot(session.user_id, slot_id)
    return {"message": "Schedule slot deleted"}
