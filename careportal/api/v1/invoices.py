from fastapi import APIRouter, Depends, HTTPException, status
from typing import List

from ...api.deps import get_backend_client, get_patient_session, get_staff_session
from ...core.security import UserRole
from ...models.session import PortalSession
from ...services.api_client import BackendClient
from ...services.invoice_service import InvoiceService
from ...schemas.billing import (
    Invoice, InvoiceCreate, InvoiceUpdate, PaymentCreate, PendingPaymentAppointment
)

router = APIRouter(prefix="/invoices", tags=["Invoices & Payments"])

# Admin and doctor
@router.get("", response_model=List[Invoice])
async def list_invoices(
    session: PortalSession = Depends(get_staff_session),
    client: BackendClient = Depends(get_backend_client)
):
    """Every invoice for admins; invoices of the doctor's patients for doctors."""
    return await InvoiceService(client).list_invoices(UserRole(session.user_type), session.user_id)

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_invoice(
    invoice: InvoiceCreate,
    session: PortalSession = Depends(get_staff_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await InvoiceService(client).create_invoice(invoice)

@router.put("/{invoice_id}")
async def update_invoice(
    invoice_id: int,
    invoice: InvoiceUpdate,
    session: PortalSession = Depends(get_staff_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await InvoiceService(client).update_invoice(invoice_id, invoice)

@router.delete("/{invoice_id}")
async def delete_invoice(
    invoice_id: int,
    session: PortalSession = Depends(get_staff_session),
    client: BackendClient = Depends(get_backend_client)
):
    await InvoiceService(client).delete_invoice(invoice_id)
    return {"message": "Invoice deleted"}

@router.put("/{invoice_id}/approve")
async def approve_invoice(
    invoice_id: int,
    session: PortalSession = Depends(get_staff_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await InvoiceService(client).approve_invoice(invoice_id)

# Patient
@router.get("/mine", response_model=List[Invoice])
async def get_my_invoices(
    session: PortalSession = Depends(get_patient_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await InvoiceService(client).get_patient_invoices(session.user_id)

@router.get("/pending-appointments", response_model=List[PendingPaymentAppointment])
async def get_unpaid_appointments(
    session: PortalSession = Depends(get_patient_session),
    client: BackendClient = Depends(get_backend_client)
):
    """Confirmed appointments that still have an outstanding invoice."""
    return await InvoiceService(client).get_confirmed_unpaid(session.user_id)

@router.get("/{invoice_id}", response_model=Invoice)
async def get_invoice(
    invoice_id: int,
    session: PortalSession = Depends(get_patient_session),
    client: BackendClient = Depends(get_backend_client)
):
    invoice = await InvoiceService(client).get_invoice(invoice_id)
    if invoice.patient_id is not None and invoice.patient_id != session.user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    return invoice

@router.post("/payments")
async def process_payment(
    payment: PaymentCreate,
    session: PortalSession = Depends(get_patient_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await InvoiceService(client).process_payment(payment)
