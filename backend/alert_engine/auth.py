"""
Alert Engine - Authentication Utilities
Bearer token validation for user commands (dismiss, action, acknowledge).
Tokens are issued by the main application; this service only verifies them.
"""
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

# Configuration
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "alert-engine-secret-key-change-in-production")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_HOURS = 24

# Bearer token security
security = HTTPBearer()


@dataclass(frozen=True)
class CurrentUser:
    """Identity carried by a validated token."""
    id: str
    email: Optional[str] = None
    role: str = "user"


def create_access_token(user_id: str, email: str = None, role: str = "user", expires_hours: float = None) -> str:
    """Create a JWT access token with role claim (used by tooling and tests)."""
    hours = ACCESS_TOKEN_EXPIRE_HOURS if expires_hours is None else expires_hours
    expire = datetime.utcnow() + timedelta(hours=hours)
    to_encode = {
        "sub": user_id,
        "email": email,
        "role": role,
        "exp": expire
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT token. Expired or tampered tokens yield None."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return payload
    except JWTError:
        return None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """
    Dependency to get the current authenticated user from the bearer token.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise credentials_exception

    user_id: str = payload.get("sub")
    if user_id is None:
        raise credentials_exception

    return CurrentUser(
        id=user_id,
        email=payload.get("email"),
        role=payload.get("role") or "user",
    )
