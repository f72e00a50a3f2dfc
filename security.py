import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Header
from jose import JWTError, jwt
from passlib.context import CryptContext

from database import get_document, to_public
from errors import AuthenticationRequired, AuthorizationDenied

logger = logging.getLogger(__name__)

# =====================
# Auth / Security Setup
# =====================
SECRET_KEY = os.getenv("JWT_SECRET", "super-secret-key-change")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 12))

# Use pbkdf2_sha256 to avoid external bcrypt dependency issues
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    return jwt.encode({"sub": user_id, "role": role, "exp": expire}, SECRET_KEY, algorithm=ALGORITHM)


def public_user(user: dict) -> dict:
    user = to_public(user)
    user.pop("passwordHash", None)
    return user


# ==================
# Authorization gate
# ==================

def get_current_user(authorization: Optional[str] = Header(None)) -> dict:
    """Resolve the bearer credential to a user, or fail with 401.

    The returned user carries the role encoded in the token.
    """
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthenticationRequired("Not authenticated")
    token = authorization.split(" ", 1)[1].strip()
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise AuthenticationRequired("Invalid or expired token")
    user_id = payload.get("sub")
    role = payload.get("role")
    if not user_id or not role:
        raise AuthenticationRequired("Invalid token payload")
    user = get_document("user", user_id)
    if not user:
        logger.info("Token for unknown user %s rejected", user_id)
        raise AuthenticationRequired("User not found")
    user = public_user(user)
    user["role"] = role
    return user


def get_current_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise AuthorizationDenied("Admin access required")
    return user


def get_optional_admin(authorization: Optional[str] = Header(None)) -> Optional[dict]:
    """The admin behind the request, or None for anyone else.

    Used where admins get a wider view than the public; a bad or
    non-admin credential falls back to the public view instead of failing.
    """
    if not authorization:
        return None
    try:
        user = get_current_user(authorization)
    except AuthenticationRequired:
        return None
    return user if user.get("role") == "admin" else None
