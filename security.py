from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.hash import bcrypt
from pydantic import BaseModel

from config import Settings, get_settings
from schemas import Role, User

logger = structlog.get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class Principal(BaseModel):
    """The authenticated caller, as carried by the bearer token"""
    subject_id: str
    email: str
    role: Role

    def is_in_role(self, role: Role) -> bool:
        return self.role == role


# ---------- Passwords ----------

def hash_password(password: str) -> str:
    return bcrypt.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return bcrypt.verify(password, password_hash)


# ---------- Tokens ----------

def create_access_token(user: User, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user.id,
        "email": user.email,
        "role": Role(user.role).value,
        "iss": settings.jwt.issuer,
        "aud": settings.jwt.audience,
        "iat": now,
        "exp": now + timedelta(days=settings.jwt.expire_days),
    }
    return jwt.encode(claims, settings.jwt.key, algorithm=settings.jwt.algorithm)


def decode_access_token(token: str, settings: Settings) -> Optional[Principal]:
    try:
        payload = jwt.decode(
            token,
            settings.jwt.key,
            algorithms=[settings.jwt.algorithm],
            audience=settings.jwt.audience,
            issuer=settings.jwt.issuer,
        )
    except jwt.ExpiredSignatureError:
        logger.info("token_expired")
        return None
    except jwt.InvalidTokenError as exc:
        logger.info("token_rejected", reason=str(exc))
        return None

    try:
        return Principal(
            subject_id=payload["sub"],
            email=payload.get("email", ""),
            role=Role(payload.get("role")),
        )
    except (KeyError, ValueError):
        return None


# ---------- Dependencies ----------

def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> Principal:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise credentials_exception

    principal = decode_access_token(credentials.credentials, settings)
    if principal is None or not principal.subject_id:
        raise credentials_exception
    return principal


def require_roles(*roles: Role):
    """Role-based authorization dependency"""
    allowed = set(roles)

    def role_checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Operation not permitted for role " + Role(principal.role).value,
            )
        return principal

    return role_checker
