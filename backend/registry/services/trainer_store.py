"""
Trainer Store - CRUD over the trainers table.

Implements the record store used by the admin console and the public portal:
1. list: all trainers, most recent first
2. create: issues id, certification number and creation timestamp
3. update: partial patch; id, certification number, created_at and files
   are stripped from the patch and never written through this path
4. delete: unconditional hard delete by id

Every write is validated before the database is touched. Empty-string
dates are stored as NULL. Store failures are wrapped in the prefixed
errors from registry.errors; no write is retried except certification
number issuance, which retries on a uniqueness collision.
"""

import os
import json
import time
from datetime import date, datetime, timezone
from typing import Optional
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from registry.database import is_missing_table_error, is_unique_violation
from registry.errors import (
    CertificationIdCollision, ConnectivityError, DeleteFailedError,
    SaveFailedError, SchemaMissingError, UpdateFailedError, ValidationError
)
from registry.models.trainer import Trainer, TrainerStatus
from registry.services.identifiers import format_certification_id, generate_record_id
from registry.logging_config import get_logger, log_with_context

logger = get_logger("registry")
db_logger = get_logger("db")

# Upper bound on certification-number collisions resolved per create
CERT_ID_MAX_ATTEMPTS = int(os.getenv("CERT_ID_MAX_ATTEMPTS", "5"))

DATE_FIELDS = ("issue_date", "expiry_date", "renewal_due_date")
REQUIRED_FIELDS = ("full_name", "email")
IMMUTABLE_FIELDS = ("id", "certification_id", "certificationId", "created_at", "createdAt", "files")
WRITABLE_FIELDS = (
    "full_name", "email", "specialties", "issue_date", "expiry_date",
    "renewal_due_date", "status", "photo_url", "bio",
)
STATUS_VALUES = [s.value for s in TrainerStatus]

CONNECTIVITY_MESSAGE = (
    "Unable to connect to the secure registry. "
    "Please check your network or project status."
)
SCHEMA_MISSING_MESSAGE = (
    "The registry tables are not provisioned. "
    "Run the database setup before using the console."
)


def _cause(exc: Exception) -> str:
    """Driver message of a SQLAlchemy error, without the SQL statement."""
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


def normalize_dates(fields: dict) -> dict:
    """
    Coerce the date fields of a payload to date objects or None.

    Empty or whitespace-only strings become None so they are stored as
    NULL, never as ''. Fields absent from the payload stay absent.
    """
    normalized = dict(fields)
    for name in DATE_FIELDS:
        if name not in normalized:
            continue
        value = normalized[name]
        if value is None or (isinstance(value, str) and not value.strip()):
            normalized[name] = None
        elif isinstance(value, datetime):
            normalized[name] = value.date()
        elif isinstance(value, str):
            try:
                normalized[name] = date.fromisoformat(value.strip()[:10])
            except ValueError:
                raise ValidationError("{} must be a YYYY-MM-DD date, got '{}'".format(name, value))
    return normalized


def validate_trainer_fields(fields: dict, partial: bool = False):
    """
    Check required fields and the status value.

    For a partial update only the fields present are checked, but a
    present full_name or email must still be non-empty and a present
    status (even an explicit null) must be a known value.
    """
    for name in REQUIRED_FIELDS:
        if partial and name not in fields:
            continue
        value = fields.get(name)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(
                "Full Name and Email are mandatory fields for institutional registration."
            )

    if "status" in fields:
        status = fields["status"]
        status = status.value if isinstance(status, TrainerStatus) else status
        if status not in STATUS_VALUES:
            raise ValidationError("status must be one of: {}".format(", ".join(STATUS_VALUES)))


def _to_columns(fields: dict) -> dict:
    """Map an API payload onto trainer columns, serializing JSON fields."""
    columns = {}
    for name in WRITABLE_FIELDS:
        if name not in fields:
            continue
        value = fields[name]
        if name == "specialties":
            value = json.dumps([str(s) for s in (value or [])])
        elif name == "status" and isinstance(value, TrainerStatus):
            value = value.value
        elif name in REQUIRED_FIELDS:
            value = value.strip()
        columns[name] = value
    return columns


def serialize_trainer(trainer: Trainer, public: bool = False) -> dict:
    """
    Serialize a Trainer ORM object for API responses.

    The public view (verification portal, directory) omits the email
    address and the attachment list.
    """
    result = {
        "id": str(trainer.id),
        "certification_id": trainer.certification_id,
        "full_name": trainer.full_name,
        "email": trainer.email,
        "specialties": trainer.specialties_list,
        "issue_date": trainer.issue_date.isoformat() if trainer.issue_date else None,
        "expiry_date": trainer.expiry_date.isoformat() if trainer.expiry_date else None,
        "renewal_due_date": trainer.renewal_due_date.isoformat() if trainer.renewal_due_date else None,
        "status": trainer.status,
        "photo_url": trainer.photo_url,
        "bio": trainer.bio,
        "files": trainer.files_list,
        "created_at": trainer.created_at.isoformat() if trainer.created_at else None,
    }
    if public:
        result.pop("email")
        result.pop("files")
    return result


def list_trainers(db: Session) -> list:
    """
    Return all trainers ordered by creation time, newest first.

    Raises:
        SchemaMissingError: the trainers table does not exist
        ConnectivityError: the database could not be reached

    Any other read failure is logged and yields an empty list.
    """
    start_time = time.time()
    try:
        trainers = db.query(Trainer).order_by(
            Trainer.created_at.desc(), Trainer.id.desc()
        ).all()
    except SQLAlchemyError as e:
        db.rollback()
        if is_missing_table_error(e):
            log_with_context(db_logger, "ERROR", "Trainer table missing: {}".format(_cause(e)))
            raise SchemaMissingError(SCHEMA_MISSING_MESSAGE) from e
        if isinstance(e, OperationalError):
            log_with_context(db_logger, "ERROR", "Registry unreachable: {}".format(_cause(e)))
            raise ConnectivityError(CONNECTIVITY_MESSAGE) from e
        log_with_context(db_logger, "ERROR", "Trainer fetch failed: {}".format(_cause(e)))
        return []

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(db_logger, "DEBUG", "Listed {} trainers".format(len(trainers)),
                     extra_data={"duration_ms": round(duration_ms, 2)})
    return trainers


def get_trainer(db: Session, trainer_id: str) -> Optional[Trainer]:
    return db.query(Trainer).filter(Trainer.id == trainer_id).first()


def count_trainers(db: Session) -> int:
    return db.query(func.count(Trainer.id)).scalar() or 0


def _insert_trainer(db: Session, columns: dict, files: list, year: int, offset: int) -> Trainer:
    """
    One issuance attempt: read the count, derive the number, insert.

    offset skips past numbers already found taken by earlier attempts
    (concurrent creations or gaps left by deletions).
    """
    count = count_trainers(db)
    certification_id = format_certification_id(count + offset, year)

    trainer = Trainer(
        id=generate_record_id(),
        certification_id=certification_id,
        created_at=datetime.now(timezone.utc),
        files=json.dumps(files or []),
        **columns
    )
    db.add(trainer)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if is_unique_violation(e):
            log_with_context(logger, "WARNING",
                "Certification ID {} already issued, advancing sequence".format(certification_id),
                context={"certification_id": certification_id},
                extra_data={"count": count, "offset": offset})
            raise CertificationIdCollision(
                "Certification ID {} is already issued".format(certification_id)) from e
        raise
    db.refresh(trainer)
    return trainer


def create_trainer(db: Session, fields: dict, year: int = None) -> Trainer:
    """
    Register a new trainer.

    The id, certification number and created_at are assigned here; any
    values for them in the payload are ignored.

    Args:
        db: Database session
        fields: Trainer payload (full_name, email, specialties, dates, ...)
        year: Issuance year (defaults to the current UTC year)

    Returns:
        The persisted Trainer

    Raises:
        ValidationError: required field missing or malformed date/status
        SaveFailedError: the store rejected the insert
    """
    start_time = time.time()
    fields = normalize_dates(fields)
    if "status" not in fields or fields["status"] is None:
        fields["status"] = TrainerStatus.ACTIVE.value
    validate_trainer_fields(fields)
    columns = _to_columns(fields)
    year = year or datetime.now(timezone.utc).year

    try:
        for attempt in Retrying(
            stop=stop_after_attempt(CERT_ID_MAX_ATTEMPTS),
            wait=wait_exponential(multiplier=0.02, max=0.5),
            retry=retry_if_exception_type(CertificationIdCollision),
            reraise=True,
        ):
            with attempt:
                offset = attempt.retry_state.attempt_number - 1
                trainer = _insert_trainer(db, columns, fields.get("files"), year, offset)
    except CertificationIdCollision as e:
        raise SaveFailedError(
            "{} (gave up after {} attempts)".format(e, CERT_ID_MAX_ATTEMPTS), status_code=409) from e
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(db_logger, "ERROR", "Trainer insert failed: {}".format(_cause(e)))
        raise SaveFailedError(_cause(e)) from e

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Registered trainer {} as {}".format(trainer.full_name, trainer.certification_id),
        context={"trainer_id": trainer.id, "certification_id": trainer.certification_id},
        extra_data={"duration_ms": round(duration_ms, 2)})
    return trainer


def update_trainer(db: Session, trainer_id: str, patch: dict) -> Trainer:
    """
    Apply a partial update to a trainer.

    Raises:
        ValidationError: a present required field is empty, or a bad date/status
        UpdateFailedError: unknown id (404) or the store rejected the write
    """
    stripped = sorted(k for k in patch if k in IMMUTABLE_FIELDS)
    clean = {k: v for k, v in patch.items() if k not in IMMUTABLE_FIELDS}
    if stripped:
        log_with_context(logger, "DEBUG", "Dropped immutable fields from update",
                         context={"trainer_id": trainer_id},
                         extra_data={"fields": stripped})

    clean = normalize_dates(clean)
    validate_trainer_fields(clean, partial=True)
    columns = _to_columns(clean)

    try:
        trainer = get_trainer(db, trainer_id)
        if trainer is None:
            raise UpdateFailedError("no trainer with id {}".format(trainer_id), status_code=404)
        for name, value in columns.items():
            setattr(trainer, name, value)
        db.commit()
        db.refresh(trainer)
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(db_logger, "ERROR", "Trainer update failed: {}".format(_cause(e)),
                         context={"trainer_id": trainer_id})
        raise UpdateFailedError(_cause(e)) from e

    log_with_context(logger, "INFO", "Updated trainer {}".format(trainer.certification_id),
                     context={"trainer_id": trainer_id},
                     extra_data={"fields": sorted(columns)})
    return trainer


def delete_trainer(db: Session, trainer_id: str):
    """
    Permanently delete a trainer. Email logs are left untouched.

    Raises:
        DeleteFailedError: unknown id (404) or the store rejected the delete
    """
    try:
        deleted = db.query(Trainer).filter(Trainer.id == trainer_id).delete(
            synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(db_logger, "ERROR", "Trainer delete failed: {}".format(_cause(e)),
                         context={"trainer_id": trainer_id})
        raise DeleteFailedError(_cause(e)) from e

    if not deleted:
        raise DeleteFailedError("no trainer with id {}".format(trainer_id), status_code=404)

    log_with_context(logger, "INFO", "Deleted trainer {}".format(trainer_id),
                     context={"trainer_id": trainer_id})
