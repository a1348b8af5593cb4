"""Async HTTP client for the portal backend.

Transport failures surface as :class:`NetworkUnavailable`, a 401 as
:class:`InvalidCredentials`, and any other non-2xx answer as
:class:`ApiError`.
"""

import logging
import os
from typing import Any

import httpx

from .errors import ApiError, InvalidCredentials, NetworkUnavailable, StorageError
from .models import Announcement, AppRole, Notification, Profile, Registration, Session, SignUpMetadata, User


logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:8000"
API_PREFIX = "/api/v1/portal"


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        detail = body.get("detail", body.get("error"))
        if detail is not None:
            return detail if isinstance(detail, str) else str(detail)
    return str(body)


class PortalApi:
    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url or os.getenv("PORTAL_API_URL", DEFAULT_API_URL)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "PortalApi":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, *, token: str | None = None, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            response = await self._client.request(method, f"{API_PREFIX}{path}", headers=headers, **kwargs)
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkUnavailable(str(exc) or "Network unavailable") from exc

        if response.status_code == 401:
            raise InvalidCredentials(_detail(response))
        if response.is_error:
            raise ApiError(response.status_code, _detail(response))
        return response.json()

    # auth

    async def sign_up(self, email: str, password: str, metadata: SignUpMetadata) -> User:
        data = await self._request(
            "POST",
            "/auth/signup",
            json={"email": email, "password": password, "metadata": metadata.model_dump(mode="json")},
        )
        return User.model_validate(data["user"])

    async def sign_in(self, email: str, password: str) -> Session:
        data = await self._request("POST", "/auth/token", json={"email": email, "password": password})
        return Session.from_token_response(data)

    async def refresh(self, refresh_token: str) -> Session:
        data = await self._request("POST", "/auth/refresh", json={"refresh_token": refresh_token})
        return Session.from_token_response(data)

    async def sign_out(self, refresh_token: str | None) -> None:
        await self._request("POST", "/auth/logout", json={"refresh_token": refresh_token})

    # own records

    async def fetch_profile(self, token: str) -> Profile | None:
        data = await self._request("GET", "/me/profile", token=token)
        return Profile.model_validate(data) if data else None

    async def fetch_role(self, token: str) -> AppRole | None:
        data = await self._request("GET", "/me/role", token=token)
        role = data.get("role") if data else None
        return AppRole(role) if role else None

    async def fetch_registration(self, token: str) -> Registration | None:
        data = await self._request("GET", "/me/registration", token=token)
        return Registration.model_validate(data) if data else None

    async def upload_document(self, token: str, kind: str, filename: str, content: bytes) -> str:
        try:
            data = await self._request(
                "POST",
                f"/me/registration/documents/{kind}",
                token=token,
                files={"file": (filename, content)},
            )
        except ApiError as exc:
            raise StorageError(exc.detail) from exc
        return data["url"]

    # feed

    async def list_announcements(self, token: str) -> list[Announcement]:
        data = await self._request("GET", "/announcements", token=token)
        return [Announcement.model_validate(item) for item in data]

    async def list_notifications(self, token: str) -> list[Notification]:
        data = await self._request("GET", "/notifications", token=token)
        return [Notification.model_validate(item) for item in data]

    async def mark_notification_read(self, token: str, notification_id: str) -> Notification:
        data = await self._request("POST", f"/notifications/{notification_id}/read", token=token)
        return Notification.model_validate(data)
