from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from app.config import settings
from app.core.exceptions import IntegrationError

logger = logging.getLogger(__name__)


class SupabaseAuthAdmin:
    """Read access to Supabase auth users through the GoTrue admin API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_role_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        per_page: int = 1000,
    ):
        self.base_url = (base_url or settings.supabase_url or "").rstrip("/")
        if service_role_key is None and settings.supabase_service_role_key:
            service_role_key = settings.supabase_service_role_key.get_secret_value()
        self.service_role_key = service_role_key
        self.transport = transport
        self.per_page = per_page

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.service_role_key or "",
            "Authorization": f"Bearer {self.service_role_key}",
        }

    async def list_users(self) -> List[Dict[str, Any]]:
        if not self.base_url or not self.service_role_key:
            raise IntegrationError("Supabase admin credentials are not configured")

        users: List[Dict[str, Any]] = []
        page = 1
        async with httpx.AsyncClient(timeout=20.0, transport=self.transport) as client:
            while True:
                response = await client.get(
                    f"{self.base_url}/auth/v1/admin/users",
                    headers=self._headers(),
                    params={"page": page, "per_page": self.per_page},
                )
                response.raise_for_status()
                batch = response.json().get("users") or []
                users.extend(batch)
                if len(batch) < self.per_page:
                    break
                page += 1
        return users

    async def emails_for(self, user_ids: Iterable[str]) -> List[Dict[str, Optional[str]]]:
        wanted = set(user_ids)
        try:
            users = await self.list_users()
        except httpx.HTTPError as e:
            logger.error(f"Error fetching users: {str(e)}")
            raise IntegrationError("Failed to fetch users")
        return [
            {"id": user.get("id"), "email": user.get("email")}
            for user in users
            if user.get("id") in wanted
        ]
