from uuid import UUID

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError

from taxintake.core.config import settings
from taxintake.core.security import decode_jwt

bearer = HTTPBearer(auto_error=False)

FIRM_ROLES = ("ADMIN", "LAWYER", "STAFF")

def get_current_member(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> dict:
    if not creds:
        raise HTTPException(status_code=401, detail="Missing authorization token")
    try:
        claims = decode_jwt(creds.credentials, settings.FIRM_JWT_SECRET)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    try:
        claims["firm_id"] = UUID(str(claims.get("firm_id") or ""))
    except ValueError:
        raise HTTPException(status_code=401, detail="Token is not bound to a firm")
    return claims

def require_role(*roles: str):
    def _inner(member: dict = Depends(get_current_member)) -> dict:
        if str(member.get("role") or "").upper() not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return member
    return _inner

firm_member = require_role(*FIRM_ROLES)
