"""
Trainer model - a certified legal trainer in the registry.

Each trainer carries two identifiers:
- id: opaque time-ordered UUID assigned once at creation
- certification_id: human-readable PREFIX-YYYY-NNNN registry number

Both are immutable after creation, as are created_at and the attached files.
"""

import enum
import json
from datetime import datetime, timezone
from sqlalchemy import Column, Text, Date, DateTime, String, Index, UniqueConstraint
from registry.database import Base


class TrainerStatus(str, enum.Enum):
    ACTIVE = "Active"
    RENEWAL_DUE = "Renewal Due"
    EXPIRED = "Expired"
    SUSPENDED = "Suspended"


class Trainer(Base):
    """
    SQLAlchemy model for the trainers table.

    Status is set by the operator and is never derived from the dates.
    Specialties and files are stored as JSON text so the table works the
    same on SQLite and PostgreSQL.
    """
    __tablename__ = "trainers"

    id = Column(String(36), primary_key=True,
                doc="Unique record identifier (UUIDv7)")
    certification_id = Column(Text, nullable=False,
                              doc="Registry number: PREFIX-YYYY-NNNN")
    full_name = Column(Text, nullable=False,
                       doc="Trainer's full name")
    email = Column(Text, nullable=False,
                   doc="Contact email used for notifications")
    specialties = Column(Text, nullable=False, default="[]",
                         doc="Ordered JSON list of free-text specialties")
    issue_date = Column(Date, nullable=True,
                        doc="Certificate issue date")
    expiry_date = Column(Date, nullable=True,
                         doc="Certificate expiry date")
    renewal_due_date = Column(Date, nullable=True,
                              doc="Date by which renewal is due")
    status = Column(Text, nullable=False, default=TrainerStatus.ACTIVE.value,
                    doc="Active | Renewal Due | Expired | Suspended")
    photo_url = Column(Text, nullable=True,
                       doc="Data URI or remote URL of the trainer's photo")
    bio = Column(Text, nullable=True,
                 doc="Free-text professional biography")
    files = Column(Text, nullable=False, default="[]",
                   doc="JSON list of attachments {name, url, type, uploaded_at}")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="Timestamp when the record was created")

    __table_args__ = (
        UniqueConstraint("certification_id", name="uq_trainers_certification_id"),
        Index("ix_trainers_created_at", "created_at"),
    )

    @property
    def specialties_list(self):
        """Parse the specialties JSON string into a list."""
        if isinstance(self.specialties, list):
            return self.specialties
        try:
            return json.loads(self.specialties) if self.specialties else []
        except (json.JSONDecodeError, TypeError):
            return []

    @property
    def files_list(self):
        """Parse the files JSON string into a list of attachment dicts."""
        if isinstance(self.files, list):
            return self.files
        try:
            return json.loads(self.files) if self.files else []
        except (json.JSONDecodeError, TypeError):
            return []

    def __repr__(self):
        return f"<Trainer(id={self.id}, certification_id='{self.certification_id}', status='{self.status}')>"
