from fastapi import APIRouter, Depends, File, Form, UploadFile
from typing import List, Optional

from ...api.deps import (
    get_backend_client, get_current_session, get_doctor_session,
    get_patient_session, get_staff_session
)
from ...core.security import UserRole
from ...models.session import PortalSession
from ...services.api_client import BackendClient
from ...services.record_service import RecordService, search_records
from ...schemas.medical import (
    AccessLog, ConsentStatus, ConsentUpdate, EmergencyAccessRequest,
    EmergencyAccessResult, FileLink, MedicalRecord, Patient, SensitivityLevel
)

router = APIRouter(prefix="/records", tags=["Medical Records"])

# Doctor
@router.get("/patients", response_model=List[Patient])
async def get_patients(
    session: PortalSession = Depends(get_doctor_session),
    client: BackendClient = Depends(get_backend_client)
):
    """Patients of the signed-in doctor with their restricted-record counts."""
    return await RecordService(client).get_associated_patients(session.user_id)

@router.get("/patients/{patient_id}", response_model=List[MedicalRecord])
async def get_patient_records(
    patient_id: int,
    search: str = "",
    session: PortalSession = Depends(get_doctor_session),
    client: BackendClient = Depends(get_backend_client)
):
    records = await RecordService(client).get_patient_records(patient_id)
    return search_records(records, search)

@router.post("/patients/{patient_id}/upload", response_model=List[MedicalRecord])
async def upload_record(
    patient_id: int,
    title: str = Form(...),
    record_type: str = Form(..., alias="type"),
    department: str = Form(...),
    sensitivity_level: SensitivityLevel = Form(SensitivityLevel.NORMAL, alias="sensitivityLevel"),
    file: UploadFile = File(...),
    session: PortalSession = Depends(get_doctor_session),
    client: BackendClient = Depends(get_backend_client)
):
    """Upload a record file and return the patient's refreshed records."""
    content = await file.read()
    return await RecordService(client).upload_record(
        patient_id,
        title,
        record_type,
        department,
        sensitivity_level.value,
        (file.filename, content, file.content_type or "application/octet-stream"),
    )

@router.get("/{record_id}/access-logs", response_model=List[AccessLog])
async def get_access_logs(
    record_id: int,
    session: PortalSession = Depends(get_doctor_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await RecordService(client).get_access_logs(record_id)

@router.post("/emergency-access", response_model=EmergencyAccessResult)
async def emergency_access(
    request: EmergencyAccessRequest,
    session: PortalSession = Depends(get_staff_session),
    client: BackendClient = Depends(get_backend_client)
):
    """Break-glass access to a patient's records; a reason is mandatory."""
    return await RecordService(client).emergency_access(UserRole(session.user_type), request)

# Files
@router.get("/{record_id}/view", response_model=FileLink)
async def view_record(
    record_id: int,
    patient_id: Optional[int] = None,
    session: PortalSession = Depends(get_current_session),
    client: BackendClient = Depends(get_backend_client)
):
    """URL to preview a record's file; signed when the backend can sign it."""
    service = RecordService(client)
    record = await service.find_record(UserRole(session.user_type), record_id, patient_id)
    return await service.view_link(record)

@router.get("/{record_id}/download", response_model=FileLink)
async def download_record(
    record_id: int,
    patient_id: Optional[int] = None,
    session: PortalSession = Depends(get_current_session),
    client: BackendClient = Depends(get_backend_client)
):
    service = RecordService(client)
    record = await service.find_record(UserRole(session.user_type), record_id, patient_id)
    return await service.download_link(record)

# Patient
@router.get("/mine", response_model=List[MedicalRecord])
async def get_own_records(
    search: str = "",
    session: PortalSession = Depends(get_patient_session),
    client: BackendClient = Depends(get_backend_client)
):
    records = await RecordService(client).get_own_records()
    return search_records(records, search)

@router.get("/consent", response_model=ConsentStatus)
async def get_consent(
    session: PortalSession = Depends(get_patient_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await RecordService(client).get_consent()

@router.post("/consent", response_model=ConsentStatus)
async def update_consent(
    update: ConsentUpdate,
    session: PortalSession = Depends(get_patient_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await RecordService(client).update_consent(update.consent)
