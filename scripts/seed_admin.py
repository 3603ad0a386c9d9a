#!/usr/bin/env python3
"""Seed script to create the initial admin account"""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from sqlalchemy.orm import Session
from app.db.session import SessionLocal
from app.models.account import Account
from app.core.claims import AdminClaims
from app.core.security import get_password_hash
from app.core.config import settings


def seed_admin():
    db: Session = SessionLocal()
    email = settings.SUDO_ADMIN_EMAIL.strip().lower()
    try:
        admin = db.query(Account).filter(Account.email == email).first()
        if admin:
            if admin.roles == ["admin"]:
                print(f"Admin account {email} already exists")
                return
            # Existing account without admin claims: promote it
            admin.set_claims(AdminClaims())
            db.commit()
            print(f"Admin claims granted to existing account {email}")
            return

        admin = Account(
            email=email,
            hashed_password=get_password_hash(settings.SUDO_ADMIN_PASSWORD),
            display_name="Admin",
            status="active",
            roles=[],
            organization_ids=[],
            claims_version=0,
        )
        admin.set_claims(AdminClaims())
        db.add(admin)
        db.commit()
        print(f"Admin account created: {email}")
        print(f"Password: (use SUDO_ADMIN_PASSWORD from env)")
    except Exception as e:
        db.rollback()
        print(f"Error creating admin account: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed_admin()
