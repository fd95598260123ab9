from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
import jwt
from typing import Optional, Tuple
from marketplace.core.config import Settings, settings as default_settings

pwd_ctx = CryptContext(schemes=['bcrypt'], deprecated='auto')

def hash_password(p: str) -> str: return pwd_ctx.hash(p)

def verify_password(p: str, h: str) -> bool: return pwd_ctx.verify(p, h)

def create_access_token(user_id: int, role: str, settings: Optional[Settings] = None) -> Tuple[str, datetime]:
    settings = settings or default_settings
    exp = datetime.now(timezone.utc) + timedelta(seconds=settings.ACCESS_TOKEN_EXPIRES_SECONDS)
    payload = {'sub': str(user_id), 'role': role, 'exp': exp, 'type': 'access'}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM), exp

def decode_token(token: str, settings: Optional[Settings] = None) -> dict:
    settings = settings or default_settings
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
