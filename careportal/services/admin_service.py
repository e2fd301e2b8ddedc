from typing import Any, List
import logging

from .api_client import BackendClient, BackendError, BackendUnavailable, FetchFailed
from ..schemas.admin import DoctorCredential, DoctorDecision

logger = logging.getLogger(__name__)

CREDENTIAL_FILTERS = ("pending", "all")

class AdminService:
    def __init__(self, client: BackendClient):
        self.client = client

    async def get_doctor_credentials(self, filter_name: str = "pending") -> List[DoctorCredential]:
        if filter_name not in CREDENTIAL_FILTERS:
            filter_name = "pending"
        try:
            data = await self.client.get("/admin/doctor-credentials", params={"filter": filter_name})
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Error fetching doctor credentials: {e.detail}")
            raise FetchFailed("Failed to load doctor credentials")
        return [DoctorCredential.model_validate(c) for c in data or []]

    async def decide_doctor(self, doctor_id: int, decision: DoctorDecision) -> Any:
        """Approve or reject a doctor's credentials."""
        payload = {"status": decision.status}
        if decision.reason:
            payload["reason"] = decision.reason
        data = await self.client.put(
            f"/admin/doctor-credentials/status/{doctor_id}",
            json=payload,
            fallback_error="Failed to update doctor status"
        )
        logger.info(f"Doctor {doctor_id} marked {decision.status}")
        return data

    async def get_users(self) -> List[dict]:
        return await self.client.get("/admin/users", fallback_error="Failed to load users") or []

    async def delete_user(self, user_id: int) -> Any:
        data = await self.client.delete(f"/admin/users/{user_id}", fallback_error="Failed to delete user")
        logger.info(f"Deleted user {user_id}")
        return data

    async def get_system_stats(self) -> dict:
        return await self.client.get("/admin/system-stats", fallback_error="Failed to load statistics") or {}

    async def get_recent_activities(self) -> List[dict]:
        try:
            data = await self.client.get("/admin/activities")
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Error fetching activities: {e.detail}")
            return []
        return data or []

    async def get_patients(self) -> List[dict]:
        return await self.client.get("/admin/patients", fallback_error="Failed to load patients") or []
