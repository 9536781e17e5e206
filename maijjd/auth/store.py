"""
Maijjd - Credential Store

Narrow interface over the SQLModel session used by the authentication
service. Driver exceptions never leave this module:

- OperationalError (connection lost, database down) -> StoreUnavailable
- IntegrityError (unique email/phone race)          -> UserExists
- any other SQLAlchemyError                          -> DatabaseError

The driver error is logged in full server-side.
"""

from contextlib import contextmanager
from typing import Iterable, Iterator, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlmodel import Session as DBSession, select

from maijjd.auth.models import Account, LoginAttempt, Role
from maijjd.errors import DatabaseError, StoreUnavailable, UserExists
from maijjd.logging import get_logger


logger = get_logger(__name__)


class AccountStore:
    """Account persistence bound to one database session."""

    def __init__(self, db: DBSession):
        self.db = db

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("store.integrity_error", operation=operation, error=str(e.orig))
            raise UserExists()
        except OperationalError as e:
            self.db.rollback()
            logger.error("store.unavailable", operation=operation, error=str(e))
            raise StoreUnavailable()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("store.error", operation=operation, error=str(e))
            raise DatabaseError()

    def get(self, account_id: UUID) -> Optional[Account]:
        with self._guard("get"):
            return self.db.get(Account, account_id)

    def _find(self, column, value: str, roles: Optional[Iterable[Role]]) -> Optional[Account]:
        statement = select(Account).where(column == value)
        if roles is not None:
            statement = statement.where(Account.role.in_(list(roles)))
        with self._guard("find"):
            return self.db.exec(statement).first()

    def find_by_email(self, email: str, roles: Optional[Iterable[Role]] = None) -> Optional[Account]:
        """Look up by already-normalized (lowercase) email."""
        return self._find(Account.email, email, roles)

    def find_by_phone(self, phone: str, roles: Optional[Iterable[Role]] = None) -> Optional[Account]:
        """Look up by already-normalized phone."""
        return self._find(Account.phone, phone, roles)

    def find_by_identity(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        roles: Optional[Iterable[Role]] = None,
    ) -> Optional[Account]:
        """Email takes precedence when both identifiers are given."""
        if email:
            return self.find_by_email(email, roles)
        if phone:
            return self.find_by_phone(phone, roles)
        return None

    def taken_identifier(self, email: Optional[str], phone: Optional[str]) -> Optional[str]:
        """
        Name the first identifier already in use, if any.

        Returns:
            "email", "phone" or None
        """
        if email and self.find_by_email(email):
            return "email"
        if phone and self.find_by_phone(phone):
            return "phone"
        return None

    def exists(self, email: Optional[str] = None, phone: Optional[str] = None) -> bool:
        return self.taken_identifier(email, phone) is not None

    def add(self, account: Account) -> Account:
        with self._guard("add"):
            self.db.add(account)
            self.db.commit()
            self.db.refresh(account)
        return account

    def save(self, account: Account) -> Account:
        with self._guard("save"):
            self.db.add(account)
            self.db.commit()
            self.db.refresh(account)
        return account

    def record_login_attempt(self, attempt: LoginAttempt) -> None:
        """
        Append to the login attempt log.

        Audit failures are logged and never fail the login itself.
        """
        try:
            self.db.add(attempt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("store.login_attempt_failed", error=str(e))

    def close(self) -> None:
        self.db.close()
