"""
Create the first console operator.

Usage:
    ADMIN_EMAIL=ops@academy.example ADMIN_PASSWORD=... python create_admin.py
"""

import os
import sys

from registry.database import DATABASE_URL, SessionLocal, create_tables
from registry.models import AdminUser
from registry.security import get_password_hash


def main() -> None:
    email = os.getenv("ADMIN_EMAIL", "admin@registry.local").strip().lower()
    password = os.getenv("ADMIN_PASSWORD")
    full_name = os.getenv("ADMIN_NAME", "Registry Admin")

    if not password:
        print("[ERROR] Set ADMIN_PASSWORD to the initial password")
        sys.exit(1)

    if DATABASE_URL.startswith("sqlite"):
        create_tables()

    db = SessionLocal()
    try:
        existing = db.query(AdminUser).filter(AdminUser.email == email).first()
        if existing:
            print(f"[INFO] Operator already exists: id={existing.id}, email={existing.email}")
            return

        admin = AdminUser(
            email=email,
            full_name=full_name,
            is_active=True,
            hashed_password=get_password_hash(password),
        )
        db.add(admin)
        db.commit()
        db.refresh(admin)

        print("[OK] Created operator:")
        print(f"  id:    {admin.id}")
        print(f"  email: {admin.email}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
