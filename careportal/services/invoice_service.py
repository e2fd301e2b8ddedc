from typing import Any, List
import logging

from .api_client import BackendClient, BackendError, BackendUnavailable, FetchFailed
from ..core.security import UserRole
from ..schemas.billing import (
    Invoice, InvoiceCreate, InvoiceUpdate, PaymentCreate, PendingPaymentAppointment
)

logger = logging.getLogger(__name__)

class InvoiceService:
    def __init__(self, client: BackendClient):
        self.client = client

    async def list_invoices(self, role: UserRole, user_id: int) -> List[Invoice]:
        """All invoices for admins, the doctor's patients' invoices for doctors."""
        path = "/payments/invoices" if role == UserRole.ADMIN else f"/payments/invoices/doctor/{user_id}"
        try:
            data = await self.client.get(path)
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Error fetching invoices: {e.detail}")
            raise FetchFailed("Failed to load invoices")
        return [Invoice.model_validate(i) for i in data or []]

    async def create_invoice(self, invoice: InvoiceCreate) -> Any:
        data = await self.client.post(
            "/payments/invoices",
            json=invoice.model_dump(by_alias=True, exclude_none=True),
            fallback_error="Failed to create invoice"
        )
        logger.info(f"Created invoice for patient {invoice.patient_id}")
        return data

    async def update_invoice(self, invoice_id: int, invoice: InvoiceUpdate) -> Any:
        return await self.client.put(
            f"/payments/invoices/{invoice_id}",
            json=invoice.model_dump(by_alias=True, exclude_none=True),
            fallback_error="Failed to update invoice"
        )

    async def delete_invoice(self, invoice_id: int) -> Any:
        return await self.client.delete(
            f"/payments/invoices/{invoice_id}",
            fallback_error="Failed to delete invoice"
        )

    async def approve_invoice(self, invoice_id: int) -> Any:
        return await self.client.put(
            f"/payments/invoices/{invoice_id}/approve",
            fallback_error="Failed to approve invoice"
        )

    # Patient side
    async def get_patient_invoices(self, patient_id: int) -> List[Invoice]:
        try:
            data = await self.client.get(f"/payments/invoices/patient/{patient_id}")
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Error fetching patient invoices: {e.detail}")
            raise FetchFailed("Failed to load invoices")
        return [Invoice.model_validate(i) for i in data or []]

    async def get_invoice(self, invoice_id: int) -> Invoice:
        data = await self.client.get(
            f"/payments/invoices/{invoice_id}",
            fallback_error="Failed to load invoice details"
        )
        return Invoice.model_validate(data)

    async def process_payment(self, payment: PaymentCreate) -> Any:
        data = await self.client.post(
            "/payments/payments",
            json=payment.model_dump(by_alias=True),
            fallback_error="Payment failed. Please try again."
        )
        logger.info(f"Payment of {payment.amount} submitted for invoice {payment.invoice_id}")
        return data

    async def get_confirmed_unpaid(self, patient_id: int) -> List[PendingPaymentAppointment]:
        try:
            data = await self.client.get(f"/appointments/patient/{patient_id}/confirmed-unpaid")
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Error fetching confirmed unpaid appointments: {e.detail}")
            return []
        return [PendingPaymentAppointment.model_validate(a) for a in data or []]
