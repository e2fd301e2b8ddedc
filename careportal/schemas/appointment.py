from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict
from enum import Enum

from ..core.config import settings

class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"

class RescheduledBy(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"
    ADMIN = "admin"

class Appointment(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    patient_id: Optional[int] = None
    doctor_id: Optional[int] = None
    patient_name: str = "Patient"
    doctor_name: str = ""
    date: str
    time: str
    type: str = "Consultation"
    status: str = AppointmentStatus.SCHEDULED.value
    location: str = settings.DEFAULT_LOCATION
    notes: str = ""
    reschedule_count: int = 0

    @field_validator("date", mode="before")
    @classmethod
    def strip_time_component(cls, v):
        # Keep the calendar day only so no timezone shift can move it
        if isinstance(v, str):
            return v.split("T")[0]
        return v

    @field_validator("time", mode="before")
    @classmethod
    def trim_seconds(cls, v):
        if isinstance(v, str):
            return v[:5]
        return v

    @field_validator("patient_name", "doctor_name", "notes", mode="before")
    @classmethod
    def none_to_default(cls, v, info):
        if v is None:
            return "Patient" if info.field_name == "patient_name" else ""
        return v

    @field_validator("type", "status", "location", mode="before")
    @classmethod
    def empty_to_default(cls, v, info):
        if not v:
            return {
                "type": "Consultation",
                "status": AppointmentStatus.SCHEDULED.value,
                "location": settings.DEFAULT_LOCATION,
            }[info.field_name]
        return v

    @field_validator("reschedule_count", mode="before")
    @classmethod
    def none_to_zero(cls, v):
        return v or 0

class AppointmentView(Appointment):
    """Appointment decorated with the actions the current role may take."""
    actions: List[str] = []

class AppointmentForm(BaseModel):
    """Raw appointment form; presence is checked by ``validate_appointment_form``."""
    model_config = ConfigDict(populate_by_name=True)

    doctor_id: Optional[int] = Field(None, alias="doctorId")
    date: Optional[str] = None
    time: Optional[str] = None
    type: Optional[str] = "Consultation"
    reason: Optional[str] = ""
    location: Optional[str] = settings.DEFAULT_LOCATION

class StatusUpdate(BaseModel):
    status: AppointmentStatus

class RescheduleRequest(BaseModel):
    date: Optional[str] = None
    time: Optional[str] = None

class ScheduleEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    break_start: Optional[str] = None
    break_end: Optional[str] = None
    max_patients: Optional[int] = None

class ScheduleSlotInput(BaseModel):
    """Weekly slot as a doctor edits it; sent in the backend's camelCase."""
    model_config = ConfigDict(populate_by_name=True)

    day_of_week: int = Field(..., alias="dayOfWeek", ge=0, le=6)
    start_time: str = Field(..., alias="startTime")
    end_time: str = Field(..., alias="endTime")
    break_start: Optional[str] = Field(None, alias="breakStart")
    break_end: Optional[str] = Field(None, alias="breakEnd")
    max_patients: int = Field(4, alias="maxPatients", ge=1)

class TimeSlot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    time: str
    available: bool = True

    @field_validator("time", mode="before")
    @classmethod
    def trim_seconds(cls, v):
        if isinstance(v, str):
            return v[:5]
        return v

class SlotAvailability(BaseModel):
    doctor_id: int
    date: str
    slots: List[TimeSlot] = []
    message: str = ""

class AvailableDates(BaseModel):
    doctor_id: int
    dates: List[str] = []

class Doctor(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    specialty: Optional[str] = None

class FormOptions(BaseModel):
    doctors: List[Doctor] = []
    appointment_types: Dict[str, int] = {}
    locations: List[str] = []
    default_location: str = settings.DEFAULT_LOCATION

class AppointmentList(BaseModel):
    filter: str
    search: str = ""
    appointments: List[AppointmentView] = []
