from datetime import datetime, timedelta
from fastapi import APIRouter, Depends, HTTPException, status
from typing import List, Optional

from ...api.deps import get_admin_session, get_backend_client
from ...models.session import PortalSession
from ...services.admin_service import AdminService
from ...services.api_client import BackendClient
from ...services.appointment_service import AppointmentService
from ...services.record_service import RecordService, search_records
from ...services.scheduling import parse_local_date
from ...schemas.admin import DoctorCredential, DoctorDecision
from ...schemas.appointment import Appointment, AppointmentView
from ...schemas.medical import (
    AccessLog, BulkRecordAccessUpdate, MedicalRecord, RecordAccessUpdate,
    RecordAnalytics, RecordDeletion, RecordModification
)

router = APIRouter(prefix="/admin", tags=["Administration"])

DATE_FILTERS = ("today", "tomorrow", "week", "month", "all")
RECORD_FILTERS = ("all", "recent", "emergency")

# Doctors and users
@router.get("/doctor-credentials", response_model=List[DoctorCredential])
async def get_doctor_credentials(
    filter: str = "pending",
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await AdminService(client).get_doctor_credentials(filter)

@router.put("/doctor-credentials/{doctor_id}")
async def decide_doctor(
    doctor_id: int,
    decision: DoctorDecision,
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    """Approve a doctor, or reject one with a reason."""
    if decision.status == "rejected" and not (decision.reason or "").strip():
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="A reason is required to reject a doctor"
        )
    await AdminService(client).decide_doctor(doctor_id, decision)
    return {"doctor_id": doctor_id, "status": decision.status}

@router.get("/users")
async def get_users(
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await AdminService(client).get_users()

@router.delete("/users/{user_id}")
async def delete_user(
    user_id: int,
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    if user_id == session.user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot delete your own account"
        )
    await AdminService(client).delete_user(user_id)
    return {"message": "User deleted"}

@router.get("/patients")
async def get_patients(
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await AdminService(client).get_patients()

@router.get("/system-stats")
async def get_system_stats(
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await AdminService(client).get_system_stats()

@router.get("/activities")
async def get_recent_activities(
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await AdminService(client).get_recent_activities()

# Appointments
@router.get("/appointments", response_model=List[AppointmentView])
async def get_appointments(
    date_filter: str = "all",
    status_filter: str = "all",
    search: str = "",
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    if date_filter not in DATE_FILTERS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown date filter. Use one of: {', '.join(DATE_FILTERS)}"
        )
    return await AppointmentService(client).list_all(date_filter, status_filter, search)

@router.get("/appointments/today", response_model=List[Appointment])
async def get_today_appointments(
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await AppointmentService(client).list_today()

# Medical records
@router.get("/records", response_model=List[MedicalRecord])
async def get_records(
    filter: str = "all",
    search: str = "",
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    """All records, only those created in the last week, or only emergency-accessed ones."""
    if filter not in RECORD_FILTERS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown filter. Use one of: {', '.join(RECORD_FILTERS)}"
        )

    service = RecordService(client)
    if filter == "emergency":
        records = await service.get_emergency_records()
    else:
        records = await service.get_all_records()

    if filter == "recent":
        one_week_ago = datetime.now() - timedelta(days=7)
        records = [
            r for r in records
            if r.created_at and (parse_local_date(r.created_at) or datetime.min) >= one_week_ago
        ]
    return search_records(records, search)

@router.get("/records/analytics", response_model=RecordAnalytics)
async def get_record_analytics(
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await RecordService(client).get_analytics()

@router.get("/records/access-patterns")
async def get_access_patterns(
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await RecordService(client).get_access_patterns()

@router.get("/reports/access-summary")
async def get_access_summary(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    record_type: Optional[str] = None,
    department: Optional[str] = None,
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await RecordService(client).get_access_summary(
        startDate=start_date,
        endDate=end_date,
        recordType=record_type,
        department=department,
    )

@router.put("/records/access", response_model=dict)
async def bulk_update_record_access(
    update: BulkRecordAccessUpdate,
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await RecordService(client).bulk_update_record_access(update.record_ids, update.action)

@router.get("/records/{record_id}/access-logs", response_model=List[AccessLog])
async def get_record_access_logs(
    record_id: int,
    emergency_only: bool = False,
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    service = RecordService(client)
    if emergency_only:
        return await service.get_emergency_access_logs(record_id)
    return await service.get_admin_access_logs(record_id)

@router.put("/records/{record_id}/access")
async def update_record_access(
    record_id: int,
    update: RecordAccessUpdate,
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    await RecordService(client).update_record_access(record_id, update.action)
    return {"id": record_id, "action": update.action}

@router.put("/records/{record_id}")
async def modify_record(
    record_id: int,
    updates: RecordModification,
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await RecordService(client).modify_record(record_id, updates)

@router.delete("/records/{record_id}")
async def delete_record(
    record_id: int,
    deletion: RecordDeletion,
    session: PortalSession = Depends(get_admin_session),
    client: BackendClient = Depends(get_backend_client)
):
    """Delete a record; the reason is recorded by the backend."""
    await RecordService(client).delete_record(record_id, deletion.reason)
    return {"message": "Medical record deleted"}
