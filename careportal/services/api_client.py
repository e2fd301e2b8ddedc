from fastapi import HTTPException, status
from typing import Any, Callable, Dict, Optional, Tuple
import httpx
import logging

from ..core.config import settings
from ..core.security import AuthenticationError, backend_token_expired

logger = logging.getLogger(__name__)

# Requests that must never trigger a token refresh
NO_REFRESH_PATHS = ("/auth/login", "/auth/register", "/auth/refresh-token", "/auth/logout")

class BackendError(HTTPException):
    """An error answer from the backend, with its message passed through verbatim."""
    def __init__(self, status_code: int, detail: str):
        super().__init__(status_code=status_code, detail=detail)

class BackendUnavailable(HTTPException):
    def __init__(self, detail: str = "Backend service is unavailable"):
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)

class FetchFailed(HTTPException):
    """A list or detail fetch failed; carries the generic banner text."""
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)

def extract_error_message(response: httpx.Response, fallback: str) -> str:
    """Return the backend's own error text, or ``fallback`` if it sent none."""
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return fallback

class BackendClient:
    """Thin async wrapper over the backend REST API.

    Attaches the bearer token, refreshes it once on a 401 and replays the
    original request, and turns error answers into ``BackendError``.
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_tokens_refreshed: Optional[Callable[[str, Optional[str]], None]] = None,
        on_session_expired: Optional[Callable[[], None]] = None,
        load_tokens: Optional[Callable[[], Tuple[Optional[str], Optional[str]]]] = None,
    ):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.on_tokens_refreshed = on_tokens_refreshed
        self.on_session_expired = on_session_expired
        self.load_tokens = load_tokens
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.BACKEND_API_URL,
            timeout=settings.BACKEND_TIMEOUT,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        if self.access_token:
            return {"Authorization": f"Bearer {self.access_token}"}
        return {}

    def _can_refresh(self, path: str) -> bool:
        return bool(self.refresh_token) and not path.startswith(NO_REFRESH_PATHS)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json: Any = None,
        data: Optional[dict] = None,
        files: Optional[dict] = None,
        fallback_error: str = "Request failed",
        retry: bool = True,
    ) -> Any:
        if retry and self._can_refresh(path) and backend_token_expired(self.access_token):
            await self._refresh_or_expire()

        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                json=json,
                data=data,
                files=files,
                headers=self._headers(),
            )
        except httpx.RequestError as exc:
            logger.error(f"{method} {path} failed: {exc!r}")
            raise BackendUnavailable()

        if response.status_code == status.HTTP_401_UNAUTHORIZED and retry and self._can_refresh(path):
            await self._refresh_or_expire()
            return await self.request(
                method, path,
                params=params, json=json, data=data, files=files,
                fallback_error=fallback_error, retry=False,
            )

        if response.is_error:
            message = extract_error_message(response, fallback_error)
            logger.info(f"{method} {path} - Status: {response.status_code} - {message}")
            raise BackendError(response.status_code, message)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def get(self, path: str, **kwargs) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> Any:
        return await self.request("DELETE", path, **kwargs)

    async def refresh(self) -> dict:
        """Exchange the refresh token for a new token pair."""
        if not self.refresh_token:
            raise AuthenticationError("No refresh token available")

        data = await self.request(
            "POST",
            "/auth/refresh-token",
            json={"refreshToken": self.refresh_token},
            fallback_error="Failed to refresh session",
            retry=False,
        ) or {}
        if not data.get("accessToken"):
            raise AuthenticationError("Backend did not issue an access token")
        self.access_token = data.get("accessToken")
        self.refresh_token = data.get("refreshToken") or self.refresh_token
        if self.on_tokens_refreshed:
            self.on_tokens_refreshed(self.access_token, self.refresh_token)
        return data

    def _adopt_stored_tokens(self) -> bool:
        """Take over a newer live token pair stored by another client of the session."""
        if not self.load_tokens:
            return False
        access_token, refresh_token = self.load_tokens()
        if not access_token or access_token == self.access_token or backend_token_expired(access_token):
            return False
        self.access_token = access_token
        self.refresh_token = refresh_token
        return True

    async def _refresh_or_expire(self):
        if self._adopt_stored_tokens():
            return
        try:
            await self.refresh()
        except (BackendError, BackendUnavailable, AuthenticationError):
            logger.warning("Token refresh failed, clearing session")
            self.access_token = None
            self.refresh_token = None
            if self.on_session_expired:
                self.on_session_expired()
            raise AuthenticationError("Session expired, please log in again")
