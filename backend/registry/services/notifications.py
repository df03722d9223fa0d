"""
Notification Service - AI drafted emails, dispatch and the email log.

Send workflow for one message:
1. draft_email: one generation call; first line is the subject, the rest
   is the body. No draft (None) when generation fails.
2. The operator reviews and edits subject/body (see registry.console).
3. send_email: calls the mail-dispatch function, then records an EmailLog
   whose status is DELIVERED if the call succeeded and FAILED otherwise.
   A failed dispatch never stops the log from being written, whatever
   the dispatcher raised.

The log id is generated before the insert. On a duplicate-key conflict a
fresh id is drawn and the insert retried, up to EMAIL_LOG_INSERT_ATTEMPTS
attempts in total (default 3), with exponential backoff.
"""

import os
import html
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from registry.database import is_unique_violation
from registry.errors import EmailLogConflictError, RemoteRejectionError
from registry.models.email_log import DeliveryStatus, EmailLog, NotificationType
from registry.services import ai_assistant
from registry.services.identifiers import generate_log_id
from registry.services.mail_dispatch import MailDispatchError, MailDispatcher, get_mail_dispatcher
from registry.logging_config import get_logger, log_with_context

logger = get_logger("notify")

# Total insert attempts per send, each with a fresh id; set to 2 for a single retry
EMAIL_LOG_INSERT_ATTEMPTS = int(os.getenv("EMAIL_LOG_INSERT_ATTEMPTS", "3"))
SUBJECT_PREFIX = "Subject:"


@dataclass
class EmailDraft:
    subject: str
    body: str


def parse_draft(text: str) -> EmailDraft:
    """
    Split generated text into subject and body.

    The first line is the subject with a literal "Subject:" prefix removed;
    the remaining lines, joined back together, are the body.
    """
    lines = text.split("\n")
    subject = lines[0].strip()
    if subject.startswith(SUBJECT_PREFIX):
        subject = subject[len(SUBJECT_PREFIX):]
    return EmailDraft(subject=subject.strip(), body="\n".join(lines[1:]).strip())


def draft_email(notification_type: NotificationType, trainer_name: str,
                context: str = None) -> Optional[EmailDraft]:
    """
    Ask the text generator for an email draft.

    Returns None when no draft is available; callers must not treat that
    as an empty draft.
    """
    notification_type = NotificationType(notification_type)
    prompt = (
        "Write a professional, executive email in {} for a legal trainer named {}.\n"
        "Type of email: {}.\n"
        "Institutional Branding: {}.\n"
        "Context: {}.\n"
        "Format: Return ONLY the subject line on the first line, then the body. "
        "No placeholders like [Name], use the actual name."
    ).format(ai_assistant.AI_OUTPUT_LANGUAGE, trainer_name, notification_type.value,
             ai_assistant.INSTITUTION_NAME, context or "General communication")

    text = ai_assistant.generate_text(prompt, purpose="email-draft")
    if not text:
        log_with_context(logger, "WARNING", "No email draft available",
                         extra_data={"type": notification_type.value})
        return None
    return parse_draft(text)


def render_html_body(body: str) -> str:
    """Escape operator/AI text for HTML, then turn newlines into <br>."""
    return html.escape(body).replace("\r\n", "\n").replace("\n", "<br>")


def _insert_log(db: Session, fields: dict) -> EmailLog:
    log = EmailLog(id=generate_log_id(), **fields)
    db.add(log)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if is_unique_violation(e):
            log_with_context(logger, "WARNING",
                "Duplicate email log id {}, retrying with a new id".format(log.id),
                context={"log_id": log.id, "trainer_id": fields["trainer_id"]})
            raise EmailLogConflictError(
                "Email log id {} already exists".format(log.id)) from e
        raise
    db.refresh(log)
    return log


def send_email(db: Session, trainer_id: str, trainer_name: str, trainer_email: str,
               notification_type: NotificationType, subject: str, body: str,
               dispatcher: MailDispatcher = None) -> EmailLog:
    """
    Dispatch an email and record the attempt.

    Returns:
        The persisted EmailLog. DELIVERED only means the dispatch call
        reported no error.

    Raises:
        EmailLogConflictError: every insert attempt hit a duplicate id
        RemoteRejectionError: the log insert failed for another reason
    """
    notification_type = NotificationType(notification_type)
    dispatcher = dispatcher or get_mail_dispatcher()
    start_time = time.time()

    dispatch_error = None
    try:
        dispatcher.send(
            recipient=trainer_email,
            subject=subject,
            html=render_html_body(body),
            display_name=trainer_name,
        )
    except MailDispatchError as e:
        dispatch_error = str(e)
        log_with_context(logger, "WARNING",
            "Mail function failed to transmit, logging the attempt: {}".format(e),
            context={"trainer_id": trainer_id})
    except Exception as e:
        # A dispatcher fault is still a failed transmission; the log row is written
        dispatch_error = "{}: {}".format(type(e).__name__, e)
        log_with_context(logger, "ERROR",
            "Mail dispatcher raised unexpectedly, logging the attempt: {}".format(dispatch_error),
            context={"trainer_id": trainer_id}, exc_info=True)

    fields = {
        "trainer_id": trainer_id,
        "trainer_name": trainer_name,
        "type": notification_type.value,
        "subject": subject,
        "sent_at": datetime.now(timezone.utc),
        "status": (DeliveryStatus.FAILED if dispatch_error else DeliveryStatus.DELIVERED).value,
    }

    try:
        for attempt in Retrying(
            stop=stop_after_attempt(EMAIL_LOG_INSERT_ATTEMPTS),
            wait=wait_exponential(multiplier=0.05, max=1),
            retry=retry_if_exception_type(EmailLogConflictError),
            reraise=True,
        ):
            with attempt:
                log = _insert_log(db, fields)
    except SQLAlchemyError as e:
        db.rollback()
        orig = getattr(e, "orig", None)
        log_with_context(logger, "ERROR", "Email log insert failed: {}".format(orig or e),
                         context={"trainer_id": trainer_id})
        raise RemoteRejectionError("Email log could not be saved: {}".format(orig or e)) from e

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "{} to {} logged as {}".format(notification_type.value, trainer_name, log.status),
        context={"trainer_id": trainer_id, "log_id": log.id},
        extra_data={"duration_ms": round(duration_ms, 2), "dispatch_error": dispatch_error})
    return log


def get_logs(db: Session) -> list:
    """All email logs, newest first. Returns [] on any read failure."""
    try:
        return db.query(EmailLog).order_by(EmailLog.sent_at.desc()).all()
    except SQLAlchemyError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Email log fetch failed: {}".format(e))
        return []


def serialize_email_log(log: EmailLog) -> dict:
    return {
        "id": str(log.id),
        "trainer_id": str(log.trainer_id),
        "trainer_name": log.trainer_name,
        "type": log.type,
        "subject": log.subject,
        "sent_at": log.sent_at.isoformat() if log.sent_at else None,
        "status": log.status,
    }
