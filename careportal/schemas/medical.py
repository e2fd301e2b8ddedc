from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Literal
from enum import Enum

class SensitivityLevel(str, Enum):
    NORMAL = "normal"
    SENSITIVE = "sensitive"
    RESTRICTED = "restricted"

class MedicalRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    patient_id: Optional[int] = None
    patient_name: Optional[str] = None
    doctor_id: Optional[int] = None
    doctor_name: Optional[str] = None
    title: str = ""
    type: str = ""
    department: str = ""
    file_url: Optional[str] = None
    sensitivity_level: str = SensitivityLevel.NORMAL.value
    content: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    has_emergency_access: bool = False

class AccessLog(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    record_id: Optional[int] = Field(None, alias="recordId")
    accessed_by: Optional[str] = Field(None, alias="accessedBy")
    accessed_by_name: Optional[str] = Field(None, alias="accessedByName")
    accessor_role: Optional[str] = Field(None, alias="accessorRole")
    timestamp: Optional[str] = None
    reason: Optional[str] = None
    is_emergency: bool = Field(False, alias="isEmergency")

class Patient(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = ""
    email: str = ""
    record_count: int = 0
    last_record_date: Optional[str] = None
    consent_given: bool = False
    restricted_count: int = 0

class EmergencyAccessRequest(BaseModel):
    """Either ``record_id`` or ``patient_id`` selects the flow."""
    model_config = ConfigDict(populate_by_name=True)

    reason: str = ""
    record_id: Optional[int] = Field(None, alias="recordId")
    patient_id: Optional[int] = Field(None, alias="patientId")

class EmergencyAccessResult(BaseModel):
    patient_id: int
    record: Optional[MedicalRecord] = None
    records: List[MedicalRecord] = []

class RecordAccessUpdate(BaseModel):
    action: Literal["restrict", "unrestrict"]

class BulkRecordAccessUpdate(BaseModel):
    record_ids: List[int] = Field(..., alias="recordIds", min_length=1)
    action: Literal["restrict", "unrestrict"]

    model_config = ConfigDict(populate_by_name=True)

class RecordModification(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    type: Optional[str] = None
    department: Optional[str] = None
    sensitivity_level: Optional[SensitivityLevel] = None
    content: Optional[str] = None

class RecordDeletion(BaseModel):
    reason: str = Field(..., min_length=1)

class FileLink(BaseModel):
    """Where the caller should open or download the record's file."""
    url: str
    signed: bool = True
    filename: Optional[str] = None

class ConsentStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    consent_given: bool = Field(False, alias="consentGiven")
    updated_at: Optional[str] = Field(None, alias="updatedAt")

class ConsentUpdate(BaseModel):
    consent: bool

class RecordAnalytics(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    total_records: int = Field(0, alias="totalRecords")
    records_by_type: Dict[str, int] = Field(default_factory=dict, alias="recordsByType")
    records_by_department: Dict[str, int] = Field(default_factory=dict, alias="recordsByDepartment")
