"""
EmailLog model - one record per notification attempt.

The id is generated by the client at send time. The status only says
whether the mail-dispatch function reported an error, not whether the
message reached a mailbox. Logs are never updated or deleted.
"""

import enum
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String, Index
from registry.database import Base


class NotificationType(str, enum.Enum):
    WELCOME = "Welcome Email"
    RENEWAL_REMINDER = "Renewal Reminder"
    STATUS_CHANGE = "Status Update"
    CUSTOM = "Custom Message"


class DeliveryStatus(str, enum.Enum):
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    PENDING = "PENDING"


class EmailLog(Base):
    """
    SQLAlchemy model for the email_logs table.

    trainer_id is deliberately not a foreign key: deleting a trainer does
    not cascade to its communication history.
    """
    __tablename__ = "email_logs"

    id = Column(String(36), primary_key=True,
                doc="Client-generated log identifier")
    trainer_id = Column(String(36), nullable=False,
                        doc="Trainer the message was addressed to")
    trainer_name = Column(Text, nullable=False,
                          doc="Trainer name at send time")
    type = Column(Text, nullable=False,
                  doc="Welcome Email | Renewal Reminder | Status Update | Custom Message")
    subject = Column(Text, nullable=False,
                     doc="Subject line as sent")
    sent_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                     doc="Timestamp of the dispatch attempt")
    status = Column(Text, nullable=False, default=DeliveryStatus.PENDING.value,
                    doc="DELIVERED | FAILED | PENDING")

    __table_args__ = (
        Index("ix_email_logs_trainer_id", "trainer_id"),
        Index("ix_email_logs_sent_at", "sent_at"),
    )

    def __repr__(self):
        return f"<EmailLog(id={self.id}, trainer={self.trainer_id}, status='{self.status}')>"
