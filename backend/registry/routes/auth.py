"""
Auth API routes - operator sign in / sign out.

Signing in bootstraps the operator's console (mode ADMIN plus a full data
load); signing out drops it, which returns it to PUBLIC mode.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from registry.console import ConsoleRegistry, get_console_registry
from registry.database import get_db
from registry.models.admin_user import AdminUser
from registry.security import authenticate, create_access_token, require_admin, session_for

router = APIRouter()


class LoginRequest(BaseModel):
    email: str
    password: str


@router.post("/api/auth/login")
def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    consoles: ConsoleRegistry = Depends(get_console_registry)
):
    admin = authenticate(db, request.email, request.password)
    token = create_access_token(data={"sub": admin.id})
    console = consoles.open(db, session_for(admin))
    return {
        "access_token": token,
        "token_type": "bearer",
        "session": console.session,
        "console": console.snapshot(),
    }


@router.post("/api/auth/logout")
def logout(
    admin: AdminUser = Depends(require_admin),
    consoles: ConsoleRegistry = Depends(get_console_registry)
):
    consoles.close(admin.id)
    return {"status": "signed_out"}


@router.get("/api/auth/me")
def me(admin: AdminUser = Depends(require_admin)):
    return session_for(admin)
