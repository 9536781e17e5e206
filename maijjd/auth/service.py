"""
Maijjd - Authentication Service

The orchestrator behind every credential-lifecycle flow: login,
registration, forgot/reset password, verification codes, token refresh,
and the admin-only account operations.

One AuthService class serves both role families; the Scope it is built
with decides which accounts may log in, what registration creates, the
token audience and lifetimes, and which reset tokens it accepts.

Security:
- Login failures are indistinguishable (same code and message, same
  bcrypt cost) whether or not the identifier exists
- Forgot-password never reveals whether an account exists
- Failed logins and code guesses are rate limited before any compare
- Email/SMS goes out after the reply (request BackgroundTasks), so
  provider latency neither reveals an account nor stalls the flow; its
  failures are logged and never fail the parent flow
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID
import hmac

from fastapi import BackgroundTasks
from starlette.concurrency import run_in_threadpool

from maijjd.auth import codes
from maijjd.auth.lockout import AttemptLimiter
from maijjd.auth.models import (
    Account,
    AccountStatus,
    LoginAttempt,
    Role,
    VerificationPurpose,
    utcnow,
)
from maijjd.auth.notifications import Notifier
from maijjd.auth.password import dummy_verify, hash_password, needs_rehash, verify_password
from maijjd.auth.reset_tokens import ResetTokenIssuer
from maijjd.auth.scopes import Scope, role_family, scope_named
from maijjd.auth.store import AccountStore
from maijjd.auth.tokens import (
    REFRESH,
    InvalidTokenError,
    InvalidTokenTypeError,
    TokenPair,
    issue_token_pair,
    verify_token,
)
from maijjd.auth.validation import (
    contact_errors,
    field_error,
    name_errors,
    normalize_email,
    normalize_phone,
    password_errors,
    raise_for_errors,
)
from maijjd.config import settings
from maijjd.errors import (
    AccountInactive,
    DatabaseError,
    Forbidden,
    ForbiddenScope,
    InvalidAdminKey,
    InvalidCredentials,
    InvalidOrExpiredCode,
    InvalidRefreshToken,
    InvalidTokenType,
    StoreUnavailable,
    UserExists,
    UserNotFound,
    ValidationError,
)
from maijjd.logging import get_logger


logger = get_logger(__name__)


@dataclass
class ClientInfo:
    """Request metadata recorded with login attempts."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class AuthResult:
    account: Account
    tokens: TokenPair


@dataclass
class ResetResult:
    account: Account
    reset_at: datetime


@dataclass
class CodeIssued:
    account: Account
    purpose: VerificationPurpose
    expires_at: datetime


class AuthService:
    """
    Authentication orchestrator for one Scope.

    Args:
        store: Credential store bound to the current request's session
        reset_tokens: Reset token issuer (shared key-value store)
        notifier: Best-effort email/SMS delivery
        login_limiter: Lockout policy for failed logins
        verify_limiter: Lockout policy for failed verification codes
        scope: Role family this instance serves
        clock: Source of "now" for codes and timestamps
        ip_limiter: Optional lockout policy for failed logins per client IP
        background: Request's BackgroundTasks; when set, email/SMS is sent
            after the response instead of inside the request
    """

    def __init__(
        self,
        store: AccountStore,
        reset_tokens: ResetTokenIssuer,
        notifier: Notifier,
        login_limiter: AttemptLimiter,
        verify_limiter: AttemptLimiter,
        scope: Scope,
        clock: Callable[[], datetime] = utcnow,
        ip_limiter: Optional[AttemptLimiter] = None,
        background: Optional[BackgroundTasks] = None,
    ):
        self.store = store
        self.reset_tokens = reset_tokens
        self.notifier = notifier
        self.login_limiter = login_limiter
        self.verify_limiter = verify_limiter
        self.scope = scope
        self.clock = clock
        self.ip_limiter = ip_limiter
        self.background = background

    async def _deliver(self, send: Callable, *args, **kwargs) -> None:
        """Queue a notification behind the response, or send it inline when there is no response."""
        if self.background is not None:
            self.background.add_task(send, *args, **kwargs)
        else:
            await send(*args, **kwargs)

    @staticmethod
    def _normalize(email: Optional[str], phone: Optional[str]) -> tuple[Optional[str], Optional[str]]:
        return (
            normalize_email(email) if email else None,
            normalize_phone(phone) if phone else None,
        )

    # =========================================================================
    # Login
    # =========================================================================

    async def login(
        self,
        *,
        password: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        client: Optional[ClientInfo] = None,
    ) -> AuthResult:
        """
        Authenticate by email or phone and password.

        Raises:
            ValidationError: Missing/malformed identifier or empty password
            TooManyAttempts: Identifier or client IP is locked out
            InvalidCredentials: Unknown identifier or wrong password
            AccountInactive: Correct password but status is not active
        """
        errors = contact_errors(email, phone)
        if not password:
            errors.append(field_error("password", "Password is required"))
        raise_for_errors(errors)

        client = client or ClientInfo()
        email, phone = self._normalize(email, phone)
        identifier = email or phone
        id_key = f"login:{self.scope.name}:{identifier}"
        ip_key = f"login-ip:{client.ip_address}" if client.ip_address else None

        await self.login_limiter.ensure_not_locked(id_key)
        if self.ip_limiter and ip_key:
            await self.ip_limiter.ensure_not_locked(ip_key)

        account = self.store.find_by_identity(email, phone, roles=self.scope.login_roles)

        if account is None:
            await run_in_threadpool(dummy_verify, password)
            await self._login_failed(identifier, client, "user_not_found", None, id_key, ip_key)
            raise InvalidCredentials()

        if not await run_in_threadpool(verify_password, password, account.password_hash):
            await self._login_failed(identifier, client, "invalid_password", account, id_key, ip_key)
            raise InvalidCredentials()

        if not account.is_active:
            self._record_attempt(identifier, client, False, "account_inactive", account)
            logger.info("auth.login.inactive", account_id=str(account.id), status=account.status.value)
            raise AccountInactive()

        # Check if password needs rehash (work factor upgrade)
        if needs_rehash(account.password_hash):
            account.password_hash = await run_in_threadpool(hash_password, password)

        account.last_login = self.clock()
        account.updated_at = self.clock()
        self.store.save(account)

        await self.login_limiter.clear(id_key)
        self._record_attempt(identifier, client, True, None, account)

        tokens = issue_token_pair(account, self.scope)
        logger.info("auth.login.success", account_id=str(account.id), scope=self.scope.name)
        return AuthResult(account=account, tokens=tokens)

    async def _login_failed(
        self,
        identifier: str,
        client: ClientInfo,
        reason: str,
        account: Optional[Account],
        id_key: str,
        ip_key: Optional[str],
    ) -> None:
        self._record_attempt(identifier, client, False, reason, account)
        if await self.login_limiter.record_failure(id_key):
            logger.warning("auth.login.locked", key=id_key, scope=self.scope.name)
        if self.ip_limiter and ip_key and await self.ip_limiter.record_failure(ip_key):
            logger.warning("auth.login.ip_locked", key=ip_key)
        logger.info("auth.login.failure", reason=reason, scope=self.scope.name)

    def _record_attempt(
        self,
        identifier: str,
        client: ClientInfo,
        success: bool,
        reason: Optional[str],
        account: Optional[Account],
    ) -> None:
        self.store.record_login_attempt(LoginAttempt(
            identifier=identifier,
            success=success,
            ip_address=client.ip_address,
            user_agent=(client.user_agent or "")[:512] or None,
            failure_reason=reason,
            account_id=account.id if account else None,
            is_admin=self.scope.requires_admin_key,
            created_at=self.clock(),
        ))

    # =========================================================================
    # Registration
    # =========================================================================

    async def register(
        self,
        *,
        name: str,
        password: str,
        confirm_password: Optional[str],
        email: Optional[str] = None,
        phone: Optional[str] = None,
        admin_key: Optional[str] = None,
    ) -> AuthResult:
        """
        Create an account in this scope and sign it in.

        Verification codes are issued for every supplied channel and
        dispatched best-effort.

        Raises:
            InvalidAdminKey: Admin scope without the correct creation key
            ValidationError: Any failing field rule (all are listed)
            UserExists: Email or phone already registered
        """
        if self.scope.requires_admin_key:
            expected = settings.ADMIN_CREATION_KEY
            if not expected or not admin_key or not hmac.compare_digest(
                admin_key.encode("utf-8"), expected.encode("utf-8")
            ):
                logger.warning("auth.register.invalid_admin_key")
                raise InvalidAdminKey()

        raise_for_errors(
            name_errors(name)
            + contact_errors(email, phone)
            + password_errors(password, confirm_password)
        )

        email, phone = self._normalize(email, phone)
        taken = self.store.taken_identifier(email, phone)
        if taken:
            raise UserExists(
                "An account with this email already exists"
                if taken == "email"
                else "An account with this phone number already exists"
            )

        now = self.clock()
        account = Account(
            name=name.strip(),
            email=email,
            phone=phone,
            password_hash=await run_in_threadpool(hash_password, password),
            role=self.scope.registration_role,
            status=AccountStatus.ACTIVE,
            email_verified=False,
            phone_verified=False,
            created_at=now,
            updated_at=now,
        )
        self.store.add(account)
        logger.info(
            "auth.register.success",
            account_id=str(account.id),
            role=account.role.value,
            scope=self.scope.name,
        )

        await self._send_initial_codes(account)

        tokens = issue_token_pair(account, self.scope)
        return AuthResult(account=account, tokens=tokens)

    async def _send_initial_codes(self, account: Account) -> None:
        """Issue and dispatch post-registration codes; failures never fail registration."""
        issued = []
        if account.email:
            issued.append((VerificationPurpose.EMAIL,) + codes.issue(account, VerificationPurpose.EMAIL, self.clock()))
        if account.phone:
            issued.append((VerificationPurpose.PHONE,) + codes.issue(account, VerificationPurpose.PHONE, self.clock()))

        try:
            self.store.save(account)
        except (DatabaseError, StoreUnavailable):
            logger.warning("auth.register.verification_not_saved", account_id=str(account.id))
            return

        for purpose, code, expires_at in issued:
            await self._dispatch_code(account, purpose, code, expires_at)

    async def _dispatch_code(
        self,
        account: Account,
        purpose: VerificationPurpose,
        code: str,
        expires_at: datetime,
    ) -> None:
        if purpose == VerificationPurpose.EMAIL:
            await self._deliver(
                self.notifier.send_verification_email, account.email, account.name, code, expires_at
            )
        else:
            await self._deliver(self.notifier.send_verification_sms, account.phone, code)

    # =========================================================================
    # Forgot / reset password
    # =========================================================================

    async def forgot_password(
        self,
        *,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> None:
        """
        Issue a reset token if the identity resolves to an account.

        Returns nothing either way; callers respond with the same
        generic message whether or not the account exists.

        Raises:
            ValidationError: Missing or malformed identifier
        """
        raise_for_errors(contact_errors(email, phone))
        email, phone = self._normalize(email, phone)

        account = self.store.find_by_identity(email, phone, roles=self.scope.login_roles)
        if account is None:
            logger.info("auth.reset.unknown_identity", scope=self.scope.name)
            return

        family = role_family(account.role)
        token = await self.reset_tokens.issue(scope=family, email=account.email, phone=account.phone)
        reset_url = scope_named(family).reset_url(token)

        await self._deliver(
            self.notifier.send_password_reset,
            reset_url,
            email=account.email if email else None,
            phone=account.phone if not email else None,
        )
        logger.info("auth.reset.issued", account_id=str(account.id), reset_scope=family)

    async def reset_password(
        self,
        *,
        token: str,
        password: str,
        confirm_password: Optional[str] = None,
    ) -> ResetResult:
        """
        Redeem a reset token and set a new password.

        The password policy is checked before the token is touched, so
        a rejected password does not burn the token.

        Raises:
            ValidationError: Missing token or failing password rule
            InvalidResetToken / ExpiredResetToken / ForbiddenScope
            UserNotFound: The token's account no longer exists
        """
        errors = [] if token else [field_error("token", "Token is required")]
        errors += password_errors(password, confirm_password, require_confirmation=False)
        raise_for_errors(errors)

        entry = await self.reset_tokens.consume(token, self.scope.name)

        account = self.store.find_by_identity(entry.email, entry.phone)
        if account is None:
            raise UserNotFound("User account not found. Please contact support.")
        if role_family(account.role) != self.scope.name:
            logger.warning("auth.reset.account_scope_mismatch", account_id=str(account.id))
            raise ForbiddenScope()

        now = self.clock()
        account.password_hash = await run_in_threadpool(hash_password, password)
        account.updated_at = now
        self.store.save(account)

        logger.info("auth.reset.completed", account_id=str(account.id), scope=self.scope.name)
        return ResetResult(account=account, reset_at=now)

    # =========================================================================
    # Verification codes
    # =========================================================================

    def _resolve_for_purpose(
        self,
        purpose: VerificationPurpose,
        email: Optional[str],
        phone: Optional[str],
    ) -> tuple[Account, str]:
        if purpose == VerificationPurpose.EMAIL:
            raise_for_errors(contact_errors(email, None) if email else
                             [field_error("email", "Email address is required")])
            identifier = normalize_email(email)
            account = self.store.find_by_email(identifier, roles=self.scope.login_roles)
        else:
            raise_for_errors(contact_errors(None, phone) if phone else
                             [field_error("phone", "Phone number is required")])
            identifier = normalize_phone(phone)
            account = self.store.find_by_phone(identifier, roles=self.scope.login_roles)

        if account is None:
            raise UserNotFound("No account found with the provided information")
        return account, identifier

    async def send_verification(
        self,
        purpose: VerificationPurpose,
        *,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> CodeIssued:
        """
        Issue (or re-issue) a verification code and dispatch it.

        A new code silently invalidates any code already in flight.
        """
        account, _ = self._resolve_for_purpose(purpose, email, phone)

        code, expires_at = codes.issue(account, purpose, self.clock())
        self.store.save(account)
        await self._dispatch_code(account, purpose, code, expires_at)

        logger.info("auth.verification.issued", account_id=str(account.id), purpose=purpose.value)
        return CodeIssued(account=account, purpose=purpose, expires_at=expires_at)

    async def verify_code(
        self,
        purpose: VerificationPurpose,
        code: str,
        *,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Account:
        """
        Redeem a verification code, marking the channel verified.

        Raises:
            TooManyAttempts: Too many wrong codes for this identifier
            UserNotFound: No account for the identifier
            InvalidOrExpiredCode: Wrong, missing or expired code
        """
        if not code:
            raise ValidationError("Code is required", details=[field_error("code", "Code is required")])

        account, identifier = self._resolve_for_purpose(purpose, email, phone)
        key = f"verify:{purpose.value}:{identifier}"
        await self.verify_limiter.ensure_not_locked(key)

        if not codes.verify(account, purpose, code, self.clock()):
            await self.verify_limiter.record_failure(key)
            logger.info("auth.verification.failure", account_id=str(account.id), purpose=purpose.value)
            raise InvalidOrExpiredCode()

        codes.consume(account, purpose)
        account.updated_at = self.clock()
        self.store.save(account)
        await self.verify_limiter.clear(key)

        logger.info("auth.verification.success", account_id=str(account.id), purpose=purpose.value)
        return account

    # =========================================================================
    # Tokens and profile
    # =========================================================================

    async def refresh(self, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new access/refresh pair.

        The presented refresh token is not revoked; it stays valid
        until its own expiry.

        Raises:
            ValidationError: Missing token
            InvalidTokenType: Token is not a refresh token
            InvalidRefreshToken: Bad signature, audience, or expired
            UserNotFound: Account deleted since issuance
        """
        if not refresh_token:
            raise ValidationError(
                "Refresh token is required",
                details=[field_error("refreshToken", "Refresh token is required")],
            )

        try:
            payload = verify_token(refresh_token, self.scope.audience, expected_type=REFRESH)
        except InvalidTokenTypeError:
            raise InvalidTokenType()
        except InvalidTokenError:
            raise InvalidRefreshToken()

        try:
            account_id = UUID(payload.sub)
        except ValueError:
            raise InvalidRefreshToken()

        account = self.store.get(account_id)
        if account is None:
            raise UserNotFound("User associated with refresh token not found")
        if not self.scope.admits(account.role):
            raise InvalidRefreshToken()
        if not account.is_active:
            raise AccountInactive()

        logger.info("auth.refresh.success", account_id=str(account.id), scope=self.scope.name)
        return issue_token_pair(account, self.scope)

    def profile(self, account_id: UUID) -> Account:
        account = self.store.get(account_id)
        if account is None or not self.scope.admits(account.role):
            raise UserNotFound()
        return account

    # =========================================================================
    # Admin operations
    # =========================================================================

    async def force_password(self, *, target_email: str, new_password: str, actor: Account) -> ResetResult:
        """
        Set another account's password without a reset token.

        Clears the target's last-login timestamp so the change is visible
        in account listings as a forced re-login.
        """
        errors = [] if target_email else [field_error("targetEmail", "Target email is required")]
        errors += password_errors(new_password, require_confirmation=False)
        raise_for_errors(errors)

        target = self.store.find_by_email(normalize_email(target_email))
        if target is None:
            raise UserNotFound("No user found with the specified email")

        now = self.clock()
        target.password_hash = await run_in_threadpool(hash_password, new_password)
        target.last_login = None
        target.updated_at = now
        self.store.save(target)

        logger.info(
            "auth.admin.password_forced",
            account_id=str(target.id),
            actor_id=str(actor.id),
        )
        return ResetResult(account=target, reset_at=now)

    def update_account(
        self,
        account_id: UUID,
        *,
        actor: Account,
        role: Optional[Role] = None,
        status: Optional[AccountStatus] = None,
    ) -> Account:
        """Change an account's role and/or status."""
        if role is None and status is None:
            raise ValidationError(
                "Nothing to update",
                details=[field_error("role", "Provide a role and/or a status")],
            )

        target = self.store.get(account_id)
        if target is None:
            raise UserNotFound()
        if target.id == actor.id:
            raise Forbidden("Administrators cannot change their own role or status")

        if role is not None:
            target.role = role
        if status is not None:
            target.status = status
        target.updated_at = self.clock()
        self.store.save(target)

        logger.info(
            "auth.admin.account_updated",
            account_id=str(target.id),
            actor_id=str(actor.id),
            role=target.role.value,
            status=target.status.value,
        )
        return target
