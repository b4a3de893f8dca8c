#!/usr/bin/env python3
"""
Script to create an admin user, or make an existing user an admin.
"""
import sys
from pathlib import Path

# Add parent directory to the system path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.exceptions import AppError
from database.connection import Database
from database.models import AppRole
from services.auth_service import AuthService
from services.role_service import RoleService
import config


def create_admin():
    """Create an admin user."""
    # Initialize database
    config.db = Database(
        database_url=config.DATABASE_URL,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW
    )
    config.db.create_tables()

    print("Creating admin user...")
    print("=" * 50)

    email = input("Email: ").strip()
    if not email:
        print("Error: Email is required")
        sys.exit(1)

    try:
        with config.db.get_session() as db:
            user = AuthService.get_user_by_email(db, email)
            if user is None:
                password = input("Password: ").strip()
                full_name = input("Full name (optional): ").strip() or None
                user = AuthService.sign_up(db, email=email, password=password, full_name=full_name)
            else:
                print("User already exists, granting admin role")
            RoleService.grant(db, user.id, AppRole.ADMIN)
            roles = sorted(role.value for role in RoleService.get_roles(db, user.id))
            print("\n✓ Admin user ready!")
            print(f"  Email: {user.email}")
            print(f"  Roles: {', '.join(roles)}")
    except AppError as e:
        print(f"\n✗ Error: {e.detail}")
        sys.exit(1)


if __name__ == "__main__":
    create_admin()
