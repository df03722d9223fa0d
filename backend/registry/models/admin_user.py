"""
AdminUser model - operators allowed into the admin console.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String, Boolean
from registry.database import Base


class AdminUser(Base):
    __tablename__ = "admin_users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique operator identifier")
    email = Column(Text, nullable=False, unique=True,
                   doc="Login email (stored lower-case)")
    full_name = Column(Text, nullable=True,
                       doc="Display name")
    hashed_password = Column(Text, nullable=False,
                             doc="Argon2id password hash")
    is_active = Column(Boolean, nullable=False, default=True,
                       doc="Inactive operators cannot log in")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="Timestamp when the operator was created")

    def __repr__(self):
        return f"<AdminUser(id={self.id}, email='{self.email}')>"
