"""
Registry Console - application state of one operator session.

Holds what the admin UI renders and enforces the reconciliation rules
between it and the store:
- mode transitions PUBLIC -> LOGIN -> ADMIN, driven by session changes
- trainers and email logs cached newest first, patched only after the
  store call succeeded (create prepends, update replaces, delete removes)
- is_syncing: an advisory lock around every mutating action
- a rolling activity log of the 20 most recent local actions
- transient toasts for success/failure feedback
- the AI executive summary, regenerated after load/create/update on a
  background thread; a generation counter drops stale results
- the email workflow: DRAFTING -> PREVIEW -> SENDING -> LOGGED_*

Consoles are kept per admin in a ConsoleRegistry; the session object is
passed in explicitly, nothing here reads global auth state.
"""

import os
import enum
import time
import uuid
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from registry.errors import (
    AuthenticationError, RegistryError, SyncInProgressError, ValidationError
)
from registry.models.email_log import DeliveryStatus, NotificationType
from registry.models.trainer import TrainerStatus
from registry.services import ai_assistant, notifications, trainer_store
from registry.services.mail_dispatch import MailDispatcher
from registry.services.notifications import serialize_email_log
from registry.services.trainer_store import serialize_trainer
from registry.logging_config import get_logger, log_with_context

logger = get_logger("console")

ACTIVITY_LOG_LIMIT = 20
TOAST_SECONDS = float(os.getenv("TOAST_SECONDS", "5"))

_insight_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="insights")


class AppMode(str, enum.Enum):
    PUBLIC = "PUBLIC"
    LOGIN = "LOGIN"
    ADMIN = "ADMIN"


class AdminTab(str, enum.Enum):
    REGISTRY = "REGISTRY"
    COMMS = "COMMS"
    LOGS = "LOGS"


class EmailStage(str, enum.Enum):
    IDLE = "IDLE"
    DRAFTING = "DRAFTING"
    PREVIEW = "PREVIEW"
    SENDING = "SENDING"
    LOGGED_DELIVERED = "LOGGED_DELIVERED"
    LOGGED_FAILED = "LOGGED_FAILED"


@dataclass
class ActivityEntry:
    id: str
    action: str
    time: str
    status: str = "SUCCESS"


@dataclass
class Toast:
    message: str
    kind: str
    expires_at: float


@dataclass
class EmailPreview:
    trainer: dict
    type: NotificationType
    subject: str = ""
    body: str = ""
    stage: EmailStage = EmailStage.DRAFTING
    log: Optional[dict] = None

    def to_dict(self) -> dict:
        return {
            "trainer_id": self.trainer.get("id"),
            "trainer_name": self.trainer.get("full_name"),
            "trainer_email": self.trainer.get("email"),
            "type": self.type.value,
            "subject": self.subject,
            "body": self.body,
            "stage": self.stage.value,
            "log": self.log,
        }


class RegistryConsole:
    def __init__(self, session: dict = None, executor: ThreadPoolExecutor = None,
                 dispatcher: MailDispatcher = None, clock=time.monotonic):
        self.session = None
        self.mode = AppMode.PUBLIC
        self.active_tab = AdminTab.REGISTRY
        self.trainers = []
        self.email_logs = []
        self.activity = deque(maxlen=ACTIVITY_LOG_LIMIT)
        self.is_syncing = False
        self.is_loading = False
        self.show_setup_guide = False
        self.executive_summary = None
        self.email_preview = None

        self._toast = None
        self._clock = clock
        self._executor = executor or _insight_executor
        self._dispatcher = dispatcher
        self._sync_lock = threading.Lock()
        self._state_lock = threading.RLock()
        self._insight_generation = 0

        if session is not None:
            self.on_session_change(session)

    # ── Session / navigation ────────────────────────────────────

    def request_login(self):
        if self.mode == AppMode.PUBLIC:
            self.mode = AppMode.LOGIN

    def cancel_login(self):
        if self.mode == AppMode.LOGIN:
            self.mode = AppMode.PUBLIC

    def on_session_change(self, session: Optional[dict]):
        """Auth collaborator callback: a session means ADMIN, none means PUBLIC."""
        self.session = session
        self.mode = AppMode.ADMIN if session else AppMode.PUBLIC
        log_with_context(logger, "INFO", "Console mode is now {}".format(self.mode.value),
                         context={"admin_id": (session or {}).get("admin_id")})

    def select_tab(self, tab: AdminTab):
        self.active_tab = AdminTab(tab)

    def _require_admin(self):
        if self.mode != AppMode.ADMIN:
            raise AuthenticationError("An authenticated admin session is required.")

    # ── Feedback ────────────────────────────────────────────────

    def show_toast(self, message: str, kind: str = "SUCCESS"):
        self._toast = Toast(message=message, kind=kind, expires_at=self._clock() + TOAST_SECONDS)

    @property
    def toast(self) -> Optional[Toast]:
        if self._toast is not None and self._clock() >= self._toast.expires_at:
            self._toast = None
        return self._toast

    def dismiss_toast(self):
        self._toast = None

    def add_activity(self, action: str, status: str = "SUCCESS") -> ActivityEntry:
        entry = ActivityEntry(
            id=uuid.uuid4().hex[:9],
            action=action,
            time=datetime.now().strftime("%H:%M:%S"),
            status=status,
        )
        self.activity.appendleft(entry)
        return entry

    def _report_failure(self, error: RegistryError, fallback: str, action: str):
        self.show_toast(error.message or fallback, "ERROR")
        if not isinstance(error, ValidationError):
            self.add_activity(action, "FAILED")
        log_with_context(logger, "WARNING", "{}: {}".format(action, error.message),
                         extra_data={"error": error.kind})

    @contextmanager
    def _syncing(self):
        if not self._sync_lock.acquire(blocking=False):
            raise SyncInProgressError()
        self.is_syncing = True
        try:
            yield
        finally:
            self.is_syncing = False
            self._sync_lock.release()

    # ── Data loading ────────────────────────────────────────────

    def bootstrap(self, db: Session, session: Optional[dict]):
        """Route to ADMIN or PUBLIC for the given session, then load."""
        self.on_session_change(session)
        try:
            self.load_data(db)
        except RegistryError:
            # already surfaced through the toast and activity log
            pass

    def load_data(self, db: Session) -> list:
        """
        Load trainers and email logs; one failure path covers both.

        Raises:
            ConnectivityError: also sets show_setup_guide when the schema is missing
        """
        self.is_loading = True
        try:
            trainers = [serialize_trainer(t) for t in trainer_store.list_trainers(db)]
            logs = [serialize_email_log(log) for log in notifications.get_logs(db)]
        except RegistryError as e:
            if e.setup_required:
                self.show_setup_guide = True
            self.add_activity("Sync Interrupted", "CRITICAL")
            self.show_toast(e.message or "Failed to fetch data from cloud.", "ERROR")
            raise
        finally:
            self.is_loading = False

        with self._state_lock:
            self.trainers = trainers
            self.email_logs = logs
        self.show_setup_guide = False
        self.refresh_insights()
        return trainers

    def find_trainer(self, trainer_id: str) -> Optional[dict]:
        return next((t for t in self.trainers if t["id"] == trainer_id), None)

    # ── Trainer mutations ───────────────────────────────────────

    def save_trainer(self, db: Session, data: dict, editing_id: str = None) -> dict:
        """
        Create (editing_id None) or update a trainer, then patch the cache.

        The cached list is untouched when the store call fails.
        """
        self._require_admin()
        with self._syncing():
            try:
                if editing_id:
                    saved = serialize_trainer(trainer_store.update_trainer(db, editing_id, data))
                    with self._state_lock:
                        self.trainers = [saved if t["id"] == saved["id"] else t for t in self.trainers]
                    self.show_toast("Asset credentials successfully updated in the official registry.")
                    self.add_activity("Updated credentials for {}".format(saved["full_name"]))
                else:
                    saved = serialize_trainer(trainer_store.create_trainer(db, data))
                    with self._state_lock:
                        self.trainers = [saved] + self.trainers
                    self.show_toast("New asset successfully authorized and registered.")
                    self.add_activity("Registered new asset: {}".format(saved["full_name"]))
            except RegistryError as e:
                name = data.get("full_name") or editing_id or "new asset"
                self._report_failure(e, "Institutional Save Failure.", "Save failed for {}".format(name))
                raise

        self.refresh_insights()
        return saved

    def delete_trainer(self, db: Session, trainer_id: str):
        self._require_admin()
        with self._syncing():
            cached = self.find_trainer(trainer_id)
            name = cached["full_name"] if cached else trainer_id
            try:
                trainer_store.delete_trainer(db, trainer_id)
            except RegistryError as e:
                self._report_failure(e, "Purge Failure", "Revocation failed for {}".format(name))
                raise
            with self._state_lock:
                self.trainers = [t for t in self.trainers if t["id"] != trainer_id]
            self.show_toast("Asset successfully purged from the registry.")
            self.add_activity("Revoked credentials for {}".format(name))

    # ── Executive summary ───────────────────────────────────────

    def refresh_insights(self) -> Future:
        """Regenerate the executive summary without blocking the caller."""
        with self._state_lock:
            self._insight_generation += 1
            generation = self._insight_generation
            snapshot = [dict(t) for t in self.trainers]
        return self._executor.submit(self._regenerate_insights, generation, snapshot)

    def _regenerate_insights(self, generation: int, snapshot: list) -> Optional[str]:
        try:
            summary = ai_assistant.get_executive_insights(snapshot)
        except Exception as e:
            log_with_context(logger, "ERROR", "Executive summary refresh failed: {}".format(e), exc_info=True)
            return None
        with self._state_lock:
            if generation != self._insight_generation:
                log_with_context(logger, "DEBUG", "Discarded stale executive summary",
                                 extra_data={"generation": generation})
                return None
            self.executive_summary = summary
        return summary

    # ── Email workflow ──────────────────────────────────────────

    def trigger_email(self, trainer_id: str, notification_type: NotificationType,
                      context: str = None) -> Optional[EmailPreview]:
        """
        Draft an email for review. Returns None when no draft is available.
        """
        self._require_admin()
        trainer = self.find_trainer(trainer_id)
        if trainer is None or not trainer.get("email"):
            error = ValidationError("Selected asset lacks a valid institutional email address.")
            self._report_failure(error, error.message, "Email draft")
            raise error

        with self._syncing():
            preview = EmailPreview(trainer=trainer, type=NotificationType(notification_type))
            self.email_preview = preview
            draft = notifications.draft_email(preview.type, trainer["full_name"], context)
            if draft is None:
                self.email_preview = None
                self.show_toast("AI drafting is unavailable right now; no draft was produced.", "ERROR")
                return None
            preview.subject = draft.subject
            preview.body = draft.body
            preview.stage = EmailStage.PREVIEW
        return preview

    def _require_preview(self) -> EmailPreview:
        preview = self.email_preview
        if preview is None or preview.stage != EmailStage.PREVIEW:
            raise ValidationError("No email draft is awaiting review.")
        return preview

    def edit_preview(self, subject: str = None, body: str = None) -> EmailPreview:
        preview = self._require_preview()
        if subject is not None:
            preview.subject = subject
        if body is not None:
            preview.body = body
        return preview

    def cancel_preview(self):
        if self.email_preview is not None and self.email_preview.stage != EmailStage.SENDING:
            self.email_preview = None

    def send_email(self, db: Session) -> dict:
        """Send the reviewed draft and prepend the resulting log entry."""
        self._require_admin()
        preview = self._require_preview()
        if not preview.subject.strip():
            raise ValidationError("An email subject is required.")

        with self._syncing():
            preview.stage = EmailStage.SENDING
            trainer = preview.trainer
            try:
                log = notifications.send_email(
                    db, trainer["id"], trainer["full_name"], trainer["email"],
                    preview.type, preview.subject, preview.body,
                    dispatcher=self._dispatcher,
                )
            except RegistryError as e:
                preview.stage = EmailStage.PREVIEW
                self._report_failure(e, "Transmission failure.",
                                     "Email to {} not recorded".format(trainer["full_name"]))
                raise
            except Exception:
                preview.stage = EmailStage.PREVIEW
                self.show_toast("Transmission failure.", "ERROR")
                self.add_activity("Email to {} not recorded".format(trainer["full_name"]), "FAILED")
                log_with_context(logger, "ERROR", "Email send aborted unexpectedly",
                                 context={"trainer_id": trainer["id"]}, exc_info=True)
                raise

            entry = serialize_email_log(log)
            with self._state_lock:
                self.email_logs = [entry] + self.email_logs
            preview.log = entry
            if entry["status"] == DeliveryStatus.DELIVERED.value:
                preview.stage = EmailStage.LOGGED_DELIVERED
                self.show_toast("Communication successfully transmitted.")
                self.add_activity("Sent {} to {}".format(preview.type.value, trainer["full_name"]))
            else:
                preview.stage = EmailStage.LOGGED_FAILED
                self.show_toast("The mail function did not accept the message; the attempt was logged as FAILED.", "ERROR")
                self.add_activity("Sent {} to {}".format(preview.type.value, trainer["full_name"]), "FAILED")
        return entry

    # ── Read models ─────────────────────────────────────────────

    def dashboard_stats(self) -> dict:
        statuses = [t.get("status") for t in self.trainers]
        return {
            "total_trainers": len(self.trainers),
            "active_trainers": statuses.count(TrainerStatus.ACTIVE.value),
            "renewal_due_count": statuses.count(TrainerStatus.RENEWAL_DUE.value),
            "expired_count": statuses.count(TrainerStatus.EXPIRED.value),
            "pending_communications": len([
                log for log in self.email_logs if log.get("status") == DeliveryStatus.PENDING.value
            ]),
        }

    def snapshot(self) -> dict:
        toast = self.toast
        return {
            "mode": self.mode.value,
            "session": self.session,
            "active_tab": self.active_tab.value,
            "is_syncing": self.is_syncing,
            "is_loading": self.is_loading,
            "show_setup_guide": self.show_setup_guide,
            "toast": {"message": toast.message, "type": toast.kind} if toast else None,
            "activity": [vars(entry).copy() for entry in self.activity],
            "trainers": list(self.trainers),
            "email_logs": list(self.email_logs),
            "executive_summary": self.executive_summary,
            "email_stage": self.email_preview.stage.value if self.email_preview else EmailStage.IDLE.value,
            "email_preview": self.email_preview.to_dict() if self.email_preview else None,
            "stats": self.dashboard_stats(),
        }


class ConsoleRegistry:
    """One RegistryConsole per authenticated admin."""

    def __init__(self, factory=RegistryConsole):
        self._factory = factory
        self._consoles = {}
        self._lock = threading.Lock()

    def get(self, admin_id: str) -> RegistryConsole:
        with self._lock:
            console = self._consoles.get(admin_id)
            if console is None:
                console = self._factory()
                self._consoles[admin_id] = console
            return console

    def open(self, db: Session, session: dict) -> RegistryConsole:
        console = self.get(session["admin_id"])
        console.bootstrap(db, session)
        return console

    def close(self, admin_id: str):
        with self._lock:
            console = self._consoles.pop(admin_id, None)
        if console is not None:
            console.on_session_change(None)


consoles = ConsoleRegistry()


def get_console_registry() -> ConsoleRegistry:
    return consoles
