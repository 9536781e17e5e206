"""
Maijjd - Authentication Database Models

SQLModel-based models for accounts and the login attempt log.
Uses PostgreSQL for production, SQLite for local development.

Security:
- Passwords stored as bcrypt hashes only
- Pending verification codes live on the account, never in responses
- All timestamps in UTC
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, String, Boolean, DateTime, JSON, Enum as SQLEnum


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """
    Account roles.

    ADMIN is the privileged superset; permissions per role are
    declared in gateway/policies.yaml.
    """
    USER = "user"
    ADMIN = "admin"
    MODERATOR = "moderator"


class AccountStatus(str, Enum):
    """Lifecycle status; only ACTIVE accounts may log in."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    PENDING = "pending"


class VerificationPurpose(str, Enum):
    """Channel a verification code proves control of."""
    EMAIL = "email"
    PHONE = "phone"


class Account(SQLModel, table=True):
    """
    Persistent identity record.

    Attributes:
        id: Unique identifier (UUIDv4)
        name: Display name
        email: Lowercased login identifier (unique, optional)
        phone: Normalized phone number (unique, optional)
        password_hash: bcrypt hash (never store plaintext)
        role: Role determining permissions
        status: Lifecycle status; non-active accounts cannot log in
        email_verified / phone_verified: Channel verification flags
        verification_codes: purpose -> {"code", "expires_at"} pending codes
        created_at / last_login / updated_at: UTC timestamps

    At least one of email or phone is always present.
    """
    __tablename__ = "accounts"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        description="Unique account identifier"
    )
    name: str = Field(
        sa_column=Column(String(50), nullable=False),
        description="Display name"
    )
    email: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), unique=True, index=True, nullable=True),
        description="Lowercased email address"
    )
    phone: Optional[str] = Field(
        default=None,
        sa_column=Column(String(32), unique=True, index=True, nullable=True),
        description="Normalized phone number"
    )
    password_hash: str = Field(
        sa_column=Column(String(255), nullable=False),
        description="bcrypt password hash"
    )
    role: Role = Field(
        default=Role.USER,
        sa_column=Column(SQLEnum(Role), nullable=False, default=Role.USER),
    )
    status: AccountStatus = Field(
        default=AccountStatus.ACTIVE,
        sa_column=Column(SQLEnum(AccountStatus), nullable=False, default=AccountStatus.ACTIVE),
    )
    email_verified: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False),
    )
    phone_verified: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False),
    )
    verification_codes: dict = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False, default=dict),
        description="Pending verification codes keyed by purpose"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=utcnow),
    )
    last_login: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
    )

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    @property
    def identifier(self) -> str:
        """Preferred contact identifier for logs and messages."""
        return self.email or self.phone or str(self.id)


class LoginAttempt(SQLModel, table=True):
    """
    Audit record of one login attempt (general or admin scope).

    Attributes:
        identifier: Email or phone presented by the client
        success: Whether the attempt authenticated
        ip_address / user_agent: Client metadata
        failure_reason: Machine-readable reason when unsuccessful
        account_id: Matched account, if any
        is_admin: Whether the attempt went through the admin scope
    """
    __tablename__ = "login_attempts"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    identifier: str = Field(
        sa_column=Column(String(255), nullable=False, index=True),
    )
    success: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False),
    )
    ip_address: Optional[str] = Field(
        default=None,
        sa_column=Column(String(45), nullable=True, index=True),
    )
    user_agent: Optional[str] = Field(
        default=None,
        sa_column=Column(String(512), nullable=True),
    )
    failure_reason: Optional[str] = Field(
        default=None,
        sa_column=Column(String(64), nullable=True),
    )
    account_id: Optional[UUID] = Field(default=None, foreign_key="accounts.id", nullable=True)
    is_admin: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False),
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, default=utcnow),
    )
