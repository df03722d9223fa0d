"""
Security helpers for the admin console.

Responsibilities:
- Password hashing and verification (Argon2id)
- JWT access token creation and decoding
- Authentication of operators by email/password
- FastAPI dependency resolving the current admin from a bearer token
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from registry.database import get_db
from registry.errors import AuthenticationError
from registry.models.admin_user import AdminUser
from registry.logging_config import admin_id_var, get_logger, log_with_context

logger = get_logger("auth")

# In production, ALWAYS override these via environment variables.
SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_IN_PRODUCTION")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

try:
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
except ValueError:
    ACCESS_TOKEN_EXPIRE_MINUTES = 60

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

_pwd_hasher = PasswordHasher(
    time_cost=int(os.getenv("ARGON2_TIME_COST", "3")),
    memory_cost=int(os.getenv("ARGON2_MEMORY_COST", "65536")),
    parallelism=int(os.getenv("ARGON2_PARALLELISM", "2")),
)


def get_password_hash(password: str) -> str:
    return _pwd_hasher.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not plain_password or not hashed_password:
        return False
    try:
        return _pwd_hasher.verify(hashed_password, plain_password)
    except (VerifyMismatchError, VerificationError, InvalidHash):
        return False


def create_access_token(*, data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed JWT.

    `data` should already include the subject, e.g. {"sub": admin.id}.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta if expires_delta is not None
        else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def authenticate(db: Session, email: str, password: str) -> AdminUser:
    """
    Check operator credentials.

    Raises:
        AuthenticationError: unknown email, wrong password or inactive account
    """
    normalized = (email or "").strip().lower()
    admin = db.query(AdminUser).filter(AdminUser.email == normalized).first()
    if admin is None or not admin.is_active or not verify_password(password, admin.hashed_password):
        log_with_context(logger, "WARNING", "Login rejected",
                         extra_data={"email": normalized})
        raise AuthenticationError()
    log_with_context(logger, "INFO", "Login accepted", context={"admin_id": admin.id})
    return admin


def session_for(admin: AdminUser) -> dict:
    """The session object handed to the console on a session change."""
    return {"admin_id": admin.id, "email": admin.email, "full_name": admin.full_name}


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_admin(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> AdminUser:
    """Decode the bearer token and return the active AdminUser it names."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise _credentials_exception()
    admin_id = payload.get("sub")
    if admin_id is None:
        raise _credentials_exception()

    admin = db.query(AdminUser).filter(AdminUser.id == str(admin_id)).first()
    if admin is None or not admin.is_active:
        raise _credentials_exception()
    return admin


async def require_admin(admin: AdminUser = Depends(get_current_admin)) -> AdminUser:
    """
    Route dependency for admin endpoints.

    Binds the operator id to the logging context for the rest of the request.
    """
    admin_id_var.set(admin.id)
    return admin
