"""
Public API routes - the verification portal and trainer directory.

No authentication. Records are served in their public form (no email
address, no attachments).

Provides endpoints for:
- Directory listing with search and an auto-verify query parameter
- Verifying a certification number or record id
- Spoken announcement of a verification result
- Reading a certification number off a photographed ID card
"""

import time
from typing import Optional
from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from registry.database import get_db
from registry.services import ai_assistant, trainer_store
from registry.services.trainer_store import serialize_trainer
from registry.services.verification import filter_directory, verify
from registry.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class CardImageRequest(BaseModel):
    """Base64 image (bare or data URI) of a trainer ID card."""
    image: str


def _public_trainers(db: Session) -> list:
    return [serialize_trainer(t, public=True) for t in trainer_store.list_trainers(db)]


@router.get("/api/public/portal")
def portal(
    verify_term: Optional[str] = Query(None, alias="verify", description="Certification ID to verify on load"),
    q: Optional[str] = Query(None, description="Search by name or specialty"),
    db: Session = Depends(get_db)
):
    """
    Directory view of the public portal.

    A `verify` parameter (e.g. from a scanned QR code) is resolved
    immediately and returned next to the directory.
    """
    start_time = time.time()
    trainers = _public_trainers(db)
    directory = filter_directory(trainers, q)

    verification = None
    if verify_term:
        verification = verify(verify_term, trainers).to_dict()

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Portal served {} of {} trainers".format(len(directory), len(trainers)),
        extra_data={"duration_ms": round(duration_ms, 2), "auto_verify": bool(verify_term)})

    return {
        "directory": directory,
        "total": len(trainers),
        "query": q or "",
        "verification": verification,
    }


@router.get("/api/verify/{term}")
def verify_trainer(term: str, db: Session = Depends(get_db)):
    """Resolve a certification number or record id; 404 when not found."""
    result = verify(term, _public_trainers(db))
    if not result.found:
        return JSONResponse(status_code=404, content=result.to_dict())
    return result.to_dict()


@router.get("/api/verify/{term}/announcement")
def verification_announcement(term: str, db: Session = Depends(get_db)):
    """Spoken confirmation of a verified trainer as audio/mpeg."""
    result = verify(term, _public_trainers(db))
    if not result.found:
        return JSONResponse(status_code=404, content=result.to_dict())

    audio = ai_assistant.speak_verification_result(
        result.trainer["full_name"], result.trainer["status"])
    if audio is None:
        return Response(status_code=204)
    return Response(content=audio, media_type="audio/mpeg")


@router.post("/api/public/extract-id")
def extract_id(request: CardImageRequest):
    """Read the certification number printed on a card photo."""
    certification_id = ai_assistant.extract_id_from_card(request.image)
    return {"certification_id": certification_id}
