"""Caller identity resolution for identity-scoped endpoints."""
from __future__ import annotations

from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings
from app.core.exceptions import AuthenticationError

ALGORITHM = "HS256"
AUDIENCE = "authenticated"
AUTH_SCHEME = HTTPBearer(auto_error=False)


def decode_token(token: str) -> Dict[str, Any]:
    secret = settings.supabase_jwt_secret.get_secret_value()
    return jwt.decode(token, secret, algorithms=[ALGORITHM], audience=AUDIENCE)


def get_caller_id(
    creds: HTTPAuthorizationCredentials | None = Depends(AUTH_SCHEME),
    x_user_id: Optional[str] = Header(default=None),
) -> str:
    """
    Resolve the caller's user id.

    A Supabase access token is verified when the JWT secret is configured;
    otherwise the client-supplied ``x-user-id`` header is trusted as is.
    """
    if creds is not None and creds.credentials and settings.supabase_jwt_secret:
        try:
            payload = decode_token(creds.credentials)
        except jwt.PyJWTError:
            raise AuthenticationError("Invalid or expired token")
        subject = str(payload.get("sub", "")).strip()
        if not subject:
            raise AuthenticationError("Invalid token subject")
        return subject

    if not x_user_id:
        raise AuthenticationError("No user ID")
    return x_user_id
