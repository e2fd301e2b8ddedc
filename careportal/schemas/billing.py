from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

class Invoice(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    appointment_id: Optional[int] = None
    patient_id: Optional[int] = None
    doctor_id: Optional[int] = None
    patient_name: Optional[str] = None
    doctor_name: Optional[str] = None
    amount: float = 0
    remaining_amount: Optional[float] = None
    status: str = "pending"
    due_date: Optional[str] = None
    created_at: Optional[str] = None

class InvoiceCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    patient_id: int = Field(..., alias="patientId")
    appointment_id: Optional[int] = Field(None, alias="appointmentId")
    amount: float = Field(..., gt=0)
    description: Optional[str] = None
    due_date: Optional[str] = Field(None, alias="dueDate")

class InvoiceUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    amount: Optional[float] = Field(None, gt=0)
    description: Optional[str] = None
    status: Optional[str] = None
    due_date: Optional[str] = Field(None, alias="dueDate")

class PaymentCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    invoice_id: int = Field(..., alias="invoiceId")
    amount: float = Field(..., gt=0)
    payment_method: str = Field(..., alias="paymentMethod", min_length=1)

class PendingPaymentAppointment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    date: str
    time: str
    status: str
    doctor_name: Optional[str] = None
    invoice_id: Optional[int] = None
    amount: float = 0
    remaining_amount: float = 0
    invoice_status: Optional[str] = None
