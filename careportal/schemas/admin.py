from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Literal

class DoctorCredential(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    doctor_id: int = Field(..., alias="doctorId")
    doctor_name: Optional[str] = Field(None, alias="doctorName")
    email: Optional[str] = None
    degree: Optional[str] = None
    license_number: Optional[str] = Field(None, alias="licenseNumber")
    specialization: Optional[str] = None
    years_of_experience: Optional[int] = Field(None, alias="yearsOfExperience")
    submitted_at: Optional[str] = Field(None, alias="submittedAt")
    status: str = "pending"
    biography: Optional[str] = None
    education_history: Optional[str] = Field(None, alias="educationHistory")

class DoctorDecision(BaseModel):
    status: Literal["approved", "rejected"]
    reason: Optional[str] = None

class CredentialSubmission(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    degree: str = Field(..., min_length=1)
    license_number: str = Field(..., alias="licenseNumber", min_length=1)
    specialization: str = Field(..., min_length=1)
    years_of_experience: int = Field(..., alias="yearsOfExperience", ge=0)
    biography: Optional[str] = None
    education_history: Optional[str] = Field(None, alias="educationHistory")
