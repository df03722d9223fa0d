"""
Document storage - official certificates and attachments per trainer.

Files are written under <STORAGE_DIR>/<bucket>/documents/<trainer_id>/ with a
random name that keeps the original extension, and are served publicly
from STORAGE_PUBLIC_URL (the /files static mount by default).
"""

import os
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path

from registry.errors import RemoteRejectionError, ValidationError
from registry.logging_config import get_logger, log_with_context

logger = get_logger("registry")

STORAGE_DIR = os.getenv("STORAGE_DIR", "./storage")
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "trainer-vault")
STORAGE_PUBLIC_URL = os.getenv("STORAGE_PUBLIC_URL", "/files").rstrip("/")
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp")

# Folder keys are record ids or client draft keys, one path segment each
FOLDER_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def upload_document(trainer_id: str, filename: str, content: bytes,
                    storage_dir: str = None) -> str:
    """
    Store an uploaded document and return its public URL.

    Raises:
        ValidationError: empty or oversized upload, or a trainer_id that is
            not a single folder name
        RemoteRejectionError: the file could not be written
    """
    if not FOLDER_KEY_PATTERN.match(trainer_id or ""):
        raise ValidationError("Invalid trainer id for document storage: '{}'".format(trainer_id))
    if not content:
        raise ValidationError("Uploaded document is empty")
    if len(content) > MAX_UPLOAD_BYTES:
        raise ValidationError("Uploaded document exceeds {} bytes".format(MAX_UPLOAD_BYTES))

    ext = Path(filename or "").suffix.lstrip(".").lower()
    if not ext.isalnum():
        ext = "bin"
    relative_path = "documents/{}/{}.{}".format(trainer_id, uuid.uuid4().hex, ext)
    target = Path(storage_dir or STORAGE_DIR) / STORAGE_BUCKET / relative_path

    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
    except OSError as e:
        log_with_context(logger, "ERROR", "Document upload failed: {}".format(e),
                         context={"trainer_id": trainer_id})
        raise RemoteRejectionError("Document upload failed: {}".format(e)) from e

    log_with_context(logger, "INFO", "Stored document {}".format(relative_path),
                     context={"trainer_id": trainer_id},
                     extra_data={"bytes": len(content)})
    return "{}/{}/{}".format(STORAGE_PUBLIC_URL, STORAGE_BUCKET, relative_path)


def document_type(filename: str) -> str:
    ext = Path(filename or "").suffix.lstrip(".").lower()
    if ext == "pdf":
        return "PDF"
    if ext in IMAGE_EXTENSIONS:
        return "IMAGE"
    return "DOC"


def describe_document(filename: str, url: str) -> dict:
    """The attachment entry stored in a trainer's files list."""
    return {
        "name": filename,
        "url": url,
        "type": document_type(filename),
        "uploaded_at": datetime.now(timezone.utc).isoformat(),
    }
