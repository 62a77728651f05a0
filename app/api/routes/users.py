from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from app.core.exceptions import ValidationError
from app.integrations.supabase_auth import SupabaseAuthAdmin
from app.schemas.funding import UserEmailsRequest

router = APIRouter()


def get_auth_admin() -> SupabaseAuthAdmin:
    return SupabaseAuthAdmin()


@router.post("/emails")
async def user_emails(
    payload: UserEmailsRequest,
    auth_admin: SupabaseAuthAdmin = Depends(get_auth_admin),
) -> Dict[str, Any]:
    user_ids = payload.user_ids
    if not isinstance(user_ids, list) or not all(isinstance(user_id, str) for user_id in user_ids):
        raise ValidationError("Invalid user IDs")
    return {"data": await auth_admin.emails_for(user_ids)}
