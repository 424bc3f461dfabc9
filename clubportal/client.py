"""
Async HTTP client for the portal API.

Every call resolves to an ``ActionResult``; transport problems are folded
into a failed envelope so callers only ever deal with one shape.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from clubportal.schemas import ActionResult

logger = logging.getLogger(__name__)

NETWORK_ERROR = "Could not reach the server. Please try again."


class PortalClient:
    """Thin wrapper around ``httpx.AsyncClient`` for the action routes."""

    def __init__(
        self,
        base_url: str,
        *,
        api_prefix: str = "/api",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.api_prefix = api_prefix.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=base_url, transport=transport, timeout=timeout
        )

    async def __aenter__(self) -> "PortalClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, path: str, **kwargs: Any) -> ActionResult:
        try:
            response = await self._client.request(
                method, f"{self.api_prefix}{path}", **kwargs
            )
            response.raise_for_status()
            return ActionResult.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            return ActionResult(success=False, error=NETWORK_ERROR)

    async def login(self, email: str, password: str) -> ActionResult:
        return await self._call(
            "POST", "/auth/login", json={"email": email, "password": password}
        )

    async def logout(self) -> ActionResult:
        return await self._call("POST", "/auth/logout")

    async def change_password(
        self, new_password: str, confirm_password: str
    ) -> ActionResult:
        return await self._call(
            "POST",
            "/account/change-password",
            json={"new_password": new_password, "confirm_password": confirm_password},
        )

    async def request_upload_url(self, file_type: str, file_size: int) -> ActionResult:
        return await self._call(
            "POST",
            "/blogs/upload-url",
            json={"file_type": file_type, "file_size": file_size},
        )

    async def get_available_events(self, ranklist_id: int) -> ActionResult:
        return await self._call("GET", f"/ranklists/{ranklist_id}/available-events")

    async def attach_event(
        self, ranklist_id: int, event_id: int, weight: float
    ) -> ActionResult:
        return await self._call(
            "POST",
            f"/ranklists/{ranklist_id}/events",
            json={"event_id": event_id, "weight": weight},
        )

    async def search_users(self, ranklist_id: int, query: str) -> ActionResult:
        return await self._call(
            "GET",
            f"/ranklists/{ranklist_id}/users/search",
            params={"query": query},
        )

    async def add_user(self, ranklist_id: int, user_id: int) -> ActionResult:
        return await self._call(
            "POST", f"/ranklists/{ranklist_id}/users", json={"user_id": user_id}
        )
