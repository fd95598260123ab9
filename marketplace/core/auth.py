from dataclasses import dataclass
from typing import Optional
import jwt
from sqlalchemy.orm import Session
from marketplace.core.config import Settings
from marketplace.core.errors import Unauthenticated, Unauthorized
from marketplace.db.models import Role, User
from marketplace.security.utils import decode_token


@dataclass(frozen=True)
class Caller:
    user_id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def resolve_caller(token: Optional[str], db: Session, settings: Optional[Settings] = None) -> Caller:
    """Turn a bearer token into the caller's identity.

    The role is read from the stored user row rather than the token claim so
    that role changes made by an admin apply on the caller's next request.
    """
    if not token:
        raise Unauthenticated("Not authenticated")
    try:
        payload = decode_token(token, settings)
    except jwt.PyJWTError:
        raise Unauthenticated("Invalid token")
    if payload.get("type") != "access":
        raise Unauthenticated("Invalid access token")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise Unauthenticated("Invalid token subject")
    user = db.get(User, user_id)
    if not user:
        raise Unauthenticated("User not found")
    return Caller(user_id=user.id, role=Role(user.role))


def require_role(caller: Caller, *roles: Role) -> Caller:
    if caller.role not in roles:
        raise Unauthorized(f"Requires role {' or '.join(r.value for r in roles)}")
    return caller
