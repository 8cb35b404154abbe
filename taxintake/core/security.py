from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

from jose import jwt

from taxintake.core.config import settings

JWT_ALGORITHM = "HS256"


def create_jwt(payload: dict, secret: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    data = payload.copy()
    data.update({"iat": int(now.timestamp()), "exp": int((now + expires_delta).timestamp())})
    return jwt.encode(data, secret, algorithm=JWT_ALGORITHM)


def decode_jwt(token: str, secret: str) -> dict:
    return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])


def create_member_token(
    *,
    member_id: str | UUID,
    firm_id: str | UUID,
    role: str = "LAWYER",
    email: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Issue a firm-member token in the same shape the auth provider does.

    Used by operator tooling and tests; production tokens come from the
    hosted auth provider and are only verified here.
    """
    payload = {"sub": str(member_id), "firm_id": str(firm_id), "role": role.upper()}
    if email:
        payload["email"] = email
    ttl = expires_delta or timedelta(minutes=settings.FIRM_JWT_TTL_MINUTES)
    return create_jwt(payload, settings.FIRM_JWT_SECRET, ttl)
