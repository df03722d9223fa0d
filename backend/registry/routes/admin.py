"""
Admin API routes - the operator console.

Every endpoint requires a bearer token and works through the operator's
RegistryConsole, so the cached trainer list, activity log, toasts and the
email workflow stay consistent with what the UI shows.

Provides endpoints for:
- Console snapshot, reload and tab selection
- Registering, updating and revoking trainers
- Uploading certificates and attachments
- Drafting, reviewing and sending notification emails
- Email log history
- AI helpers (trainer bio, certificate OCR)
"""

import time
from typing import List, Optional
from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from registry.console import AdminTab, ConsoleRegistry, RegistryConsole, get_console_registry
from registry.database import get_db
from registry.models.admin_user import AdminUser
from registry.models.email_log import NotificationType
from registry.security import require_admin, session_for
from registry.services import ai_assistant, notifications, storage
from registry.services.notifications import serialize_email_log
from registry.logging_config import get_logger, log_with_context

router = APIRouter(prefix="/api/admin")
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class TrainerFilePayload(BaseModel):
    name: str
    url: str
    type: str = "DOC"
    uploaded_at: Optional[str] = None


class TrainerPayload(BaseModel):
    """
    Trainer fields as sent by the registration form.

    Dates are YYYY-MM-DD strings; an empty string clears the date.
    id, certification_id and created_at are accepted but never written.
    """
    full_name: Optional[str] = None
    email: Optional[str] = None
    specialties: Optional[List[str]] = None
    issue_date: Optional[str] = None
    expiry_date: Optional[str] = None
    renewal_due_date: Optional[str] = None
    status: Optional[str] = None
    photo_url: Optional[str] = None
    bio: Optional[str] = None
    files: Optional[List[TrainerFilePayload]] = None
    id: Optional[str] = None
    certification_id: Optional[str] = None
    created_at: Optional[str] = None


class TabRequest(BaseModel):
    tab: AdminTab


class EmailDraftRequest(BaseModel):
    trainer_id: str
    type: NotificationType
    context: Optional[str] = None


class EmailPreviewUpdate(BaseModel):
    subject: Optional[str] = None
    body: Optional[str] = None


class BioRequest(BaseModel):
    full_name: str
    specialties: List[str] = []


class CertificateImageRequest(BaseModel):
    image: str


def get_console(
    admin: AdminUser = Depends(require_admin),
    db: Session = Depends(get_db),
    consoles: ConsoleRegistry = Depends(get_console_registry)
) -> RegistryConsole:
    """The caller's console, bootstrapped on first use after a restart."""
    console = consoles.get(admin.id)
    if console.session is None:
        console.bootstrap(db, session_for(admin))
    return console


def _email_state(console: RegistryConsole) -> dict:
    snapshot = console.snapshot()
    return {
        "email_stage": snapshot["email_stage"],
        "email_preview": snapshot["email_preview"],
        "toast": snapshot["toast"],
    }


# ── Console ──────────────────────────────────────────────────

@router.get("/console")
def console_snapshot(console: RegistryConsole = Depends(get_console)):
    return console.snapshot()


@router.post("/console/reload")
def reload_console(console: RegistryConsole = Depends(get_console), db: Session = Depends(get_db)):
    """Reload trainers and email logs from the database."""
    console.load_data(db)
    return console.snapshot()


@router.put("/console/tab")
def select_tab(request: TabRequest, console: RegistryConsole = Depends(get_console)):
    console.select_tab(request.tab)
    return {"active_tab": console.active_tab.value}


@router.delete("/console/toast", status_code=204)
def dismiss_toast(console: RegistryConsole = Depends(get_console)):
    console.dismiss_toast()


# ── Trainers ─────────────────────────────────────────────────

@router.post("/trainers", status_code=201)
def create_trainer(
    request: TrainerPayload,
    console: RegistryConsole = Depends(get_console),
    db: Session = Depends(get_db)
):
    """Register a trainer; the certification number is issued server side."""
    return console.save_trainer(db, request.model_dump(exclude_unset=True))


@router.put("/trainers/{trainer_id}")
def update_trainer(
    trainer_id: str,
    request: TrainerPayload,
    console: RegistryConsole = Depends(get_console),
    db: Session = Depends(get_db)
):
    """Partially update a trainer. Only the fields sent are changed."""
    return console.save_trainer(db, request.model_dump(exclude_unset=True), editing_id=trainer_id)


@router.delete("/trainers/{trainer_id}")
def delete_trainer(
    trainer_id: str,
    console: RegistryConsole = Depends(get_console),
    db: Session = Depends(get_db)
):
    console.delete_trainer(db, trainer_id)
    return {"status": "deleted", "id": trainer_id}


@router.post("/trainers/{trainer_id}/documents", status_code=201)
def upload_document(
    trainer_id: str,
    file: UploadFile = File(...),
    admin: AdminUser = Depends(require_admin)
):
    """
    Store a certificate or attachment and return its file entry.

    The entry is meant to be sent back in the `files` list when the
    trainer is registered, so trainer_id may be a client draft key for a
    record that does not exist yet.
    """
    content = file.file.read()
    url = storage.upload_document(trainer_id, file.filename, content)
    log_with_context(logger, "INFO", "Document uploaded for {}".format(trainer_id),
                     context={"trainer_id": trainer_id, "admin_id": admin.id})
    return storage.describe_document(file.filename, url)


# ── Email workflow ───────────────────────────────────────────

@router.post("/emails/draft")
def draft_email(request: EmailDraftRequest, console: RegistryConsole = Depends(get_console)):
    """Draft an email for review. No preview is returned when drafting is unavailable."""
    console.trigger_email(request.trainer_id, request.type, request.context)
    return _email_state(console)


@router.put("/emails/preview")
def edit_preview(request: EmailPreviewUpdate, console: RegistryConsole = Depends(get_console)):
    console.edit_preview(subject=request.subject, body=request.body)
    return _email_state(console)


@router.post("/emails/send")
def send_email(console: RegistryConsole = Depends(get_console), db: Session = Depends(get_db)):
    """Send the reviewed draft. A FAILED log entry is still a 200 response."""
    entry = console.send_email(db)
    state = _email_state(console)
    state["log"] = entry
    return state


@router.delete("/emails/preview")
def cancel_preview(console: RegistryConsole = Depends(get_console)):
    console.cancel_preview()
    return _email_state(console)


@router.get("/email-logs")
def list_email_logs(admin: AdminUser = Depends(require_admin), db: Session = Depends(get_db)):
    """Full email history, newest first."""
    start_time = time.time()
    logs = [serialize_email_log(log) for log in notifications.get_logs(db)]
    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO", "Listed {} email logs".format(len(logs)),
                     extra_data={"duration_ms": round(duration_ms, 2)})
    return {"data": logs, "total": len(logs)}


# ── AI helpers ───────────────────────────────────────────────

@router.post("/ai/bio")
def generate_bio(request: BioRequest, admin: AdminUser = Depends(require_admin)):
    return {"bio": ai_assistant.generate_trainer_bio(request.full_name, request.specialties)}


@router.post("/ai/analyze-certificate")
def analyze_certificate(request: CertificateImageRequest, admin: AdminUser = Depends(require_admin)):
    """Pre-fill form fields from a certificate scan; `fields` is null when unreadable."""
    return {"fields": ai_assistant.analyze_certificate_image(request.image)}
