"""
Maijjd - Database Seed Script

Creates the default administrator and development test users if missing.

Usage:
    python -m scripts.seed_users

Environment:
    SEED_ADMIN_EMAIL / SEED_ADMIN_PASSWORD override the admin credentials.
"""

import os
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlmodel import Session

from maijjd.config import settings
from maijjd.auth.database import get_engine, init_db
from maijjd.auth.models import Account, AccountStatus, Role, utcnow
from maijjd.auth.password import hash_password
from maijjd.auth.store import AccountStore


DEFAULT_ADMIN_EMAIL = "admin@maijjd.com"
DEFAULT_ADMIN_PASSWORD = "Admin@Maijjd2024"

TEST_USERS = [
    ("Test User", "user@maijjd.com", "User@Maijjd2024", Role.USER),
    ("Test Moderator", "moderator@maijjd.com", "Moderator@Maijjd2024", Role.MODERATOR),
]


def _create(store: AccountStore, name: str, email: str, password: str, role: Role) -> bool:
    if store.exists(email=email):
        print(f"Account {email} already exists.")
        return False

    now = utcnow()
    store.add(Account(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
        status=AccountStatus.ACTIVE,
        email_verified=True,
        created_at=now,
        updated_at=now,
    ))
    print(f"Created account: {email} ({role.value})")
    return True


def seed_admin_user(store: AccountStore):
    """Create the default administrator."""
    email = os.environ.get("SEED_ADMIN_EMAIL", DEFAULT_ADMIN_EMAIL).lower()
    password = os.environ.get("SEED_ADMIN_PASSWORD", DEFAULT_ADMIN_PASSWORD)

    if _create(store, "Maijjd Admin", email, password, Role.ADMIN):
        print(f"  Email: {email}")
        print("  Role: admin")


def seed_test_users(store: AccountStore):
    """Create development accounts for the non-admin roles."""
    for name, email, password, role in TEST_USERS:
        _create(store, name, email, password, role)


def list_accounts(session: Session):
    from sqlmodel import select

    print("\nCurrent accounts:")
    for account in session.exec(select(Account)).all():
        print(f"- {account.name} ({account.identifier}) - {account.role.value} - {account.status.value}")


if __name__ == "__main__":
    print("=" * 50)
    print("Maijjd - Account Seed Script")
    print("=" * 50)

    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)

    with Session(engine, expire_on_commit=False) as session:
        store = AccountStore(session)
        seed_admin_user(store)

        print()
        response = input("Create test users? (y/n): ")
        if response.lower() == "y":
            seed_test_users(store)

        list_accounts(session)

    print()
    print("Done!")
