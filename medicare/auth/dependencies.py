from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from medicare.auth import jwt_handler
from medicare.models.user import ROLES

security = HTTPBearer()


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, passed explicitly into every service call."""

    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'


def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    role = payload.get("role")
    if not subject or not str(subject).isdigit():
        raise HTTPException(status_code=401, detail="Invalid token subject")
    if role not in ROLES:
        raise HTTPException(status_code=401, detail="Invalid token role")

    return Principal(user_id=int(subject), role=role)


def require_roles(*roles: str):
    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(status_code=403, detail="Access denied")
        return principal

    return dependency
