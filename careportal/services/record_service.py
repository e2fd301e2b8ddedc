from fastapi import HTTPException, status
from typing import Any, Dict, List, Optional, Tuple
import logging

from .api_client import BackendClient, BackendError, BackendUnavailable, FetchFailed
from ..core.security import UserRole
from ..schemas.medical import (
    AccessLog, ConsentStatus, EmergencyAccessRequest, EmergencyAccessResult,
    FileLink, MedicalRecord, Patient, RecordAnalytics, RecordModification
)

logger = logging.getLogger(__name__)

NO_CONSENT_MESSAGE = "Patient has not provided consent for viewing records"
LOAD_RECORDS_ERROR = "Failed to fetch medical records"
EMERGENCY_REASON_REQUIRED = "A reason is required for emergency access"

def file_extension(file_url: Optional[str]) -> str:
    """Lower-cased extension of a stored file, ``pdf`` when there is none."""
    if not file_url:
        return "pdf"
    parts = file_url.split(".")
    return parts[-1].lower() if len(parts) > 1 else "pdf"

def download_filename(record: MedicalRecord) -> str:
    return f"{record.title or 'medical-record'}.{file_extension(record.file_url)}"

def search_records(records: List[MedicalRecord], query: str = "") -> List[MedicalRecord]:
    query = (query or "").strip().lower()
    if not query:
        return records
    return [
        r for r in records
        if query in (r.title or "").lower()
        or query in (r.type or "").lower()
        or query in (r.department or "").lower()
        or query in (r.patient_name or "").lower()
    ]

def require_emergency_reason(request: EmergencyAccessRequest) -> str:
    reason = (request.reason or "").strip()
    if not reason:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=EMERGENCY_REASON_REQUIRED
        )
    if request.record_id is None and request.patient_id is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Select a patient or a record for emergency access"
        )
    return reason

class RecordService:
    """Medical records as seen by doctors, admins and patients."""

    def __init__(self, client: BackendClient):
        self.client = client

    # Doctor
    async def get_associated_patients(self, doctor_id: int) -> List[Patient]:
        """Patients of a doctor, each with the number of restricted records."""
        data = await self.client.get(
            f"/medical/doctor/patients/{doctor_id}",
            fallback_error="Failed to fetch patients"
        )
        patients = []
        for item in data or []:
            patient = Patient.model_validate(item)
            patient.restricted_count = await self.get_restricted_count(patient.id)
            patients.append(patient)
        return patients

    async def get_restricted_count(self, patient_id: int) -> int:
        try:
            data = await self.client.get(f"/medical/patients/{patient_id}/restricted-count")
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Error fetching restricted records count: {e.detail}")
            return 0
        return int((data or {}).get("count", 0))

    async def get_patient_records(self, patient_id: int) -> List[MedicalRecord]:
        try:
            data = await self.client.get(f"/medical/records/{patient_id}")
        except BackendError as e:
            logger.error(f"Error fetching patient records: {e.detail}")
            if e.status_code == status.HTTP_403_FORBIDDEN:
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=NO_CONSENT_MESSAGE)
            raise
        return [MedicalRecord.model_validate(r) for r in data or []]

    async def upload_record(
        self,
        patient_id: int,
        title: str,
        record_type: str,
        department: str,
        sensitivity_level: str,
        file: Tuple[str, bytes, str],
    ) -> List[MedicalRecord]:
        """Upload a file, then return the patient's refreshed record list.

        The two calls are independent: a failed refresh after a successful
        upload surfaces as an error although the record was stored.
        """
        await self.client.post(
            "/medical/records/upload",
            data={
                "patientId": str(patient_id),
                "title": title,
                "type": record_type,
                "department": department,
                "sensitivityLevel": sensitivity_level,
            },
            files={"file": file},
            fallback_error="Failed to upload medical record"
        )
        logger.info(f"Uploaded medical record '{title}' for patient {patient_id}")
        return await self.get_patient_records(patient_id)

    async def get_access_logs(self, record_id: int) -> List[AccessLog]:
        data = await self.client.get(
            f"/medical/records/{record_id}/access-logs",
            fallback_error="Failed to fetch access history"
        )
        return [AccessLog.model_validate(log) for log in data or []]

    async def view_link(self, record: MedicalRecord) -> FileLink:
        """Signed preview URL, or the stored file URL when signing fails."""
        if not record.file_url:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No file URL available")
        try:
            data = await self.client.get(
                f"/medical/records/{record.id}/signed-url",
                params={"preview": "true"}
            )
            if data and data.get("signedUrl"):
                return FileLink(url=data["signedUrl"], signed=True)
        except (BackendError, BackendUnavailable) as e:
            logger.warning(f"Failed to get signed URL, falling back to direct URL: {e.detail}")
        return FileLink(url=record.file_url, signed=False)

    async def download_link(self, record: MedicalRecord) -> FileLink:
        data = await self.client.get(
            f"/medical/records/{record.id}/signed-url",
            params={"preview": "false"},
            fallback_error="Failed to download file"
        )
        if not data or not data.get("signedUrl"):
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Failed to generate download URL"
            )
        return FileLink(url=data["signedUrl"], signed=True, filename=download_filename(record))

    async def find_record(self, role: UserRole, record_id: int, patient_id: Optional[int] = None) -> MedicalRecord:
        if role == UserRole.ADMIN:
            records = await self.get_all_records()
        elif role == UserRole.PATIENT:
            records = await self.get_own_records()
        else:
            if patient_id is None:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="patientId is required"
                )
            records = await self.get_patient_records(patient_id)
        record = next((r for r in records if r.id == record_id), None)
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Medical record not found")
        return record

    # Emergency access
    async def emergency_access(self, role: UserRole, request: EmergencyAccessRequest) -> EmergencyAccessResult:
        """Override restrictions for a patient, logged by the backend.

        With a record id the result carries that record; with only a patient
        id it carries all of the patient's records.
        """
        reason = require_emergency_reason(request)
        if request.patient_id is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="patientId is required"
            )

        path = (
            "/admin/medical-records/emergency-access"
            if role == UserRole.ADMIN
            else "/medical/records/emergency-access"
        )
        data = await self.client.post(
            path,
            json={"patientId": request.patient_id, "reason": reason},
            fallback_error="Failed to confirm emergency access"
        )
        records = [MedicalRecord.model_validate(r) for r in data or []]
        logger.warning(f"Emergency access by {role.value} to patient {request.patient_id}: {reason}")

        if request.record_id is not None:
            record = next((r for r in records if r.id == request.record_id), None)
            return EmergencyAccessResult(patient_id=request.patient_id, record=record)
        return EmergencyAccessResult(patient_id=request.patient_id, records=records)

    # Admin
    async def get_all_records(self) -> List[MedicalRecord]:
        try:
            data = await self.client.get("/admin/medical-records")
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Error fetching records: {e.detail}")
            raise FetchFailed(LOAD_RECORDS_ERROR)
        return [MedicalRecord.model_validate(r) for r in data or []]

    async def get_emergency_records(self) -> List[MedicalRecord]:
        """Records that have been opened through emergency access."""
        try:
            data = await self.client.get("/admin/medical-records/emergency")
            return [
                MedicalRecord.model_validate({**r, "has_emergency_access": True})
                for r in data or []
            ]
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Error fetching emergency records, falling back to manual check: {e.detail}")

        flagged = []
        for record in await self.get_all_records():
            try:
                logs = await self.get_admin_access_logs(record.id)
            except (BackendError, BackendUnavailable) as e:
                logger.error(f"Error checking emergency logs for record {record.id}: {e.detail}")
                logs = []
            if any(log.is_emergency for log in logs):
                flagged.append(record.model_copy(update={"has_emergency_access": True}))
        return flagged

    async def get_admin_access_logs(self, record_id: int) -> List[AccessLog]:
        data = await self.client.get(
            f"/admin/medical-records/{record_id}/access-logs",
            fallback_error="Failed to fetch access logs"
        )
        return [AccessLog.model_validate(log) for log in data or []]

    async def get_emergency_access_logs(self, record_id: int) -> List[AccessLog]:
        return [log for log in await self.get_admin_access_logs(record_id) if log.is_emergency]

    async def update_record_access(self, record_id: int, action: str) -> Any:
        return await self.client.put(
            f"/admin/medical-records/{record_id}/access",
            json={"action": action},
            fallback_error=f"Failed to {action} record"
        )

    async def bulk_update_record_access(self, record_ids: List[int], action: str) -> Dict[str, List[int]]:
        """Apply ``action`` to each record in turn; stops at the first failure."""
        updated = []
        for record_id in record_ids:
            await self.update_record_access(record_id, action)
            updated.append(record_id)
        return {"updated": updated}

    async def modify_record(self, record_id: int, updates: RecordModification) -> Any:
        payload = updates.model_dump(exclude_none=True, mode="json")
        if not payload:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Nothing to update")
        return await self.client.put(
            f"/admin/medical-records/{record_id}",
            json=payload,
            fallback_error="Failed to modify record"
        )

    async def delete_record(self, record_id: int, reason: str) -> Any:
        result = await self.client.delete(
            f"/admin/medical-records/{record_id}",
            json={"reason": reason},
            fallback_error="Failed to delete record"
        )
        logger.warning(f"Medical record {record_id} deleted: {reason}")
        return result

    async def get_analytics(self) -> RecordAnalytics:
        data = await self.client.get(
            "/admin/medical-records/analytics",
            fallback_error="Failed to fetch analytics"
        )
        return RecordAnalytics.model_validate(data or {})

    async def get_access_patterns(self) -> dict:
        return await self.client.get(
            "/admin/medical-records/access-patterns",
            fallback_error="Failed to fetch access patterns"
        ) or {}

    async def get_access_summary(self, **filters: Optional[str]) -> Any:
        params = {key: value for key, value in filters.items() if value}
        return await self.client.get(
            "/admin/reports/access-summary",
            params=params,
            fallback_error="Failed to generate report"
        )

    # Patient
    async def get_own_records(self) -> List[MedicalRecord]:
        try:
            data = await self.client.get("/medical/records/patient")
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Error fetching own records: {e.detail}")
            return []
        return [MedicalRecord.model_validate(r) for r in data or []]

    async def get_consent(self) -> ConsentStatus:
        data = await self.client.get("/medical/consent", fallback_error="Failed to load consent status")
        return ConsentStatus.model_validate(data or {})

    async def update_consent(self, consent: bool) -> ConsentStatus:
        data = await self.client.post(
            "/medical/consent",
            json={"consent": consent},
            fallback_error="Failed to update consent"
        )
        return ConsentStatus.model_validate(data or {"consentGiven": consent})
