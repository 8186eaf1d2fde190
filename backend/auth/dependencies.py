from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWTError

from backend.auth import jwt_handler

security = HTTPBearer()


@dataclass(frozen=True)
class Caller:
    """Identity attached to a request by the identity provider's token."""

    user_id: str
    role: str


def get_current_caller(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Caller:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    role = str(payload.get("role") or "").strip().upper()
    if not role:
        raise HTTPException(status_code=401, detail="Invalid token role")

    return Caller(user_id=str(user_id), role=role)
