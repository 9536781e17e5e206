"""
Maijjd - Authentication Service Tests

Flow-level tests for AuthService in both scopes, driven by a fake clock
and a recording notifier.

Run with: pytest tests/test_auth_flows.py -v
"""

import asyncio

import pytest
from fastapi import BackgroundTasks
from sqlmodel import select

from maijjd.auth.models import AccountStatus, LoginAttempt, Role, VerificationPurpose
from maijjd.auth.password import hash_password, verify_password
from maijjd.auth.scopes import admin_scope
from maijjd.auth.service import ClientInfo
from maijjd.auth.tokens import REFRESH, create_access_token, create_refresh_token, verify_token
from maijjd.config import settings
from maijjd.errors import (
    AccountInactive,
    ExpiredResetToken,
    Forbidden,
    ForbiddenScope,
    InvalidAdminKey,
    InvalidCredentials,
    InvalidOrExpiredCode,
    InvalidRefreshToken,
    InvalidResetToken,
    InvalidTokenType,
    TooManyAttempts,
    UserExists,
    UserNotFound,
    ValidationError,
)
from tests.conftest import ADMIN_KEY, ADMIN_PASSWORD, JANE_PASSWORD, RecordingNotifier


NEW_PASSWORD = "NewPass#2024"


# =============================================================================
# LOGIN
# =============================================================================

class TestLogin:

    @pytest.mark.asyncio
    async def test_login_by_email(self, general_service, jane, db_session):
        result = await general_service.login(
            email="Jane@X.com",
            password=JANE_PASSWORD,
            client=ClientInfo(ip_address="10.0.0.1", user_agent="pytest"),
        )

        assert result.account.id == jane.id
        assert result.account.last_login is not None
        payload = verify_token(result.tokens.access_token, settings.JWT_AUDIENCE)
        assert payload.sub == str(jane.id)

        attempts = db_session.exec(select(LoginAttempt)).all()
        assert len(attempts) == 1
        assert attempts[0].success is True
        assert attempts[0].ip_address == "10.0.0.1"
        assert attempts[0].is_admin is False

    @pytest.mark.asyncio
    async def test_login_by_phone(self, general_service, jane):
        result = await general_service.login(phone="+1 (555) 123-4567", password=JANE_PASSWORD)

        assert result.account.id == jane.id

    @pytest.mark.asyncio
    async def test_unknown_and_wrong_password_indistinguishable(self, general_service, jane):
        """No enumeration signal between missing account and wrong password."""
        with pytest.raises(InvalidCredentials) as unknown:
            await general_service.login(email="nobody@x.com", password=JANE_PASSWORD)
        with pytest.raises(InvalidCredentials) as wrong:
            await general_service.login(email="jane@x.com", password="Wrong123!")

        assert unknown.value.code == wrong.value.code == "INVALID_CREDENTIALS"
        assert unknown.value.message == wrong.value.message
        assert unknown.value.status_code == wrong.value.status_code == 401

    @pytest.mark.asyncio
    async def test_failed_attempts_are_logged(self, general_service, jane, db_session):
        with pytest.raises(InvalidCredentials):
            await general_service.login(email="jane@x.com", password="Wrong123!")

        attempt = db_session.exec(select(LoginAttempt)).one()
        assert attempt.success is False
        assert attempt.failure_reason == "invalid_password"
        assert attempt.account_id == jane.id

    @pytest.mark.asyncio
    async def test_inactive_account(self, general_service, suspended_account):
        with pytest.raises(AccountInactive):
            await general_service.login(email="sam@x.com", password=JANE_PASSWORD)

    @pytest.mark.asyncio
    async def test_missing_identifier(self, general_service):
        with pytest.raises(ValidationError) as exc:
            await general_service.login(password=JANE_PASSWORD)
        assert exc.value.details[0]["field"] == "email"

    @pytest.mark.asyncio
    async def test_admin_scope_rejects_regular_accounts(self, admin_service, jane):
        with pytest.raises(InvalidCredentials):
            await admin_service.login(email="jane@x.com", password=JANE_PASSWORD)

    @pytest.mark.asyncio
    async def test_admin_scope_login(self, admin_service, admin_account, db_session):
        result = await admin_service.login(email="admin@maijjd.com", password=ADMIN_PASSWORD)

        payload = verify_token(result.tokens.access_token, settings.ADMIN_JWT_AUDIENCE)
        assert payload.role == "admin"
        assert "manage_users" in payload.permissions
        assert db_session.exec(select(LoginAttempt)).one().is_admin is True

    @pytest.mark.asyncio
    async def test_lockout_after_repeated_failures(self, general_service, jane):
        for _ in range(5):
            with pytest.raises(InvalidCredentials):
                await general_service.login(email="jane@x.com", password="Wrong123!")

        # Locked before the password is even compared
        with pytest.raises(TooManyAttempts):
            await general_service.login(email="jane@x.com", password=JANE_PASSWORD)

    @pytest.mark.asyncio
    async def test_lockout_expires(self, general_service, jane, clock):
        for _ in range(5):
            with pytest.raises(InvalidCredentials):
                await general_service.login(email="jane@x.com", password="Wrong123!")

        clock.advance(minutes=16)

        result = await general_service.login(email="jane@x.com", password=JANE_PASSWORD)
        assert result.account.id == jane.id

    @pytest.mark.asyncio
    async def test_success_clears_failure_count(self, general_service, jane):
        for _ in range(4):
            with pytest.raises(InvalidCredentials):
                await general_service.login(email="jane@x.com", password="Wrong123!")
        await general_service.login(email="jane@x.com", password=JANE_PASSWORD)

        for _ in range(4):
            with pytest.raises(InvalidCredentials):
                await general_service.login(email="jane@x.com", password="Wrong123!")
        await general_service.login(email="jane@x.com", password=JANE_PASSWORD)

    @pytest.mark.asyncio
    async def test_low_cost_hash_upgraded(self, general_service, jane, monkeypatch):
        monkeypatch.setattr(settings, "BCRYPT_ROUNDS", 5)

        result = await general_service.login(email="jane@x.com", password=JANE_PASSWORD)

        assert result.account.password_hash.split("$")[2] == "05"
        assert verify_password(JANE_PASSWORD, result.account.password_hash)


# =============================================================================
# REGISTRATION
# =============================================================================

class TestRegistration:

    @pytest.mark.asyncio
    async def test_register_issues_codes_and_tokens(self, general_service, notifier):
        result = await general_service.register(
            name="Jane",
            email="Jane@X.com",
            phone="555-123-4567",
            password=JANE_PASSWORD,
            confirm_password=JANE_PASSWORD,
        )

        account = result.account
        assert account.email == "jane@x.com"
        assert account.phone == "+15551234567"
        assert account.role == Role.USER
        assert account.status == AccountStatus.ACTIVE
        assert account.email_verified is False
        assert account.phone_verified is False
        assert set(account.verification_codes) == {"email", "phone"}
        assert account.password_hash != JANE_PASSWORD

        assert notifier.last("verification_email")[1] == "jane@x.com"
        assert notifier.last("verification_sms")[1] == "+15551234567"
        assert verify_token(result.tokens.access_token, settings.JWT_AUDIENCE).role == "user"

    @pytest.mark.asyncio
    async def test_duplicate_email(self, general_service, jane):
        with pytest.raises(UserExists) as exc:
            await general_service.register(
                name="Other", email="JANE@x.com", password=JANE_PASSWORD, confirm_password=JANE_PASSWORD,
            )
        assert "email" in exc.value.message

    @pytest.mark.asyncio
    async def test_duplicate_phone(self, general_service, jane):
        with pytest.raises(UserExists) as exc:
            await general_service.register(
                name="Other", phone="+15551234567", password=JANE_PASSWORD, confirm_password=JANE_PASSWORD,
            )
        assert "phone" in exc.value.message

    @pytest.mark.asyncio
    async def test_duplicate_phone_in_another_spelling(self, general_service, jane):
        with pytest.raises(UserExists):
            await general_service.register(
                name="Other", phone="(555) 123-4567", password=JANE_PASSWORD, confirm_password=JANE_PASSWORD,
            )

    @pytest.mark.asyncio
    async def test_password_over_bcrypt_limit(self, general_service, db_session):
        password = "Aa1!" + "x" * 96

        with pytest.raises(ValidationError) as exc:
            await general_service.register(
                name="Long", email="long@x.com", password=password, confirm_password=password,
            )

        assert exc.value.details == [{"field": "password", "message": "Password must be at most 72 bytes long"}]
        assert not general_service.store.exists(email="long@x.com")

    @pytest.mark.asyncio
    async def test_all_failures_reported(self, general_service, db_session):
        with pytest.raises(ValidationError) as exc:
            await general_service.register(
                name="J", email="bad", password="short", confirm_password="other",
            )

        fields = {detail["field"] for detail in exc.value.details}
        assert fields == {"name", "email", "password", "confirmPassword"}

    @pytest.mark.asyncio
    async def test_admin_registration_requires_key(self, admin_service):
        with pytest.raises(InvalidAdminKey):
            await admin_service.register(
                name="Eve", email="eve@x.com", password=ADMIN_PASSWORD,
                confirm_password=ADMIN_PASSWORD, admin_key="guess",
            )

    @pytest.mark.asyncio
    async def test_admin_registration_disabled_without_configured_key(self, admin_service, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_CREATION_KEY", "")

        with pytest.raises(InvalidAdminKey):
            await admin_service.register(
                name="Eve", email="eve@x.com", password=ADMIN_PASSWORD,
                confirm_password=ADMIN_PASSWORD, admin_key="",
            )

    @pytest.mark.asyncio
    async def test_admin_registration(self, admin_service):
        result = await admin_service.register(
            name="Ada", email="ada@maijjd.com", password=ADMIN_PASSWORD,
            confirm_password=ADMIN_PASSWORD, admin_key=ADMIN_KEY,
        )

        assert result.account.role == Role.ADMIN
        payload = verify_token(result.tokens.access_token, settings.ADMIN_JWT_AUDIENCE)
        assert payload.role == "admin"


# =============================================================================
# FORGOT / RESET PASSWORD
# =============================================================================

class TestPasswordReset:

    @pytest.mark.asyncio
    async def test_unknown_identity_is_silent(self, general_service, notifier, kv):
        await general_service.forgot_password(email="nobody@x.com")

        assert notifier.sent == []
        assert len(kv) == 0

    @pytest.mark.asyncio
    async def test_reset_flow(self, general_service, jane, notifier):
        await general_service.forgot_password(email="jane@x.com")
        token = notifier.last_reset_token()

        result = await general_service.reset_password(
            token=token, password=NEW_PASSWORD, confirm_password=NEW_PASSWORD,
        )

        assert result.account.id == jane.id
        assert verify_password(NEW_PASSWORD, result.account.password_hash)
        with pytest.raises(InvalidCredentials):
            await general_service.login(email="jane@x.com", password=JANE_PASSWORD)
        await general_service.login(email="jane@x.com", password=NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_reset_link_sent_by_sms_for_phone_requests(self, general_service, jane, notifier):
        await general_service.forgot_password(phone="+15551234567")

        kind, to, url = notifier.last("password_reset")
        assert to == "+15551234567"
        assert "/reset-password?token=" in url

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, general_service, jane, notifier):
        await general_service.forgot_password(email="jane@x.com")
        token = notifier.last_reset_token()
        await general_service.reset_password(token=token, password=NEW_PASSWORD)

        with pytest.raises(InvalidResetToken):
            await general_service.reset_password(token=token, password="Another#2024")

    @pytest.mark.asyncio
    async def test_token_expires(self, general_service, jane, notifier, clock):
        await general_service.forgot_password(email="jane@x.com")
        token = notifier.last_reset_token()

        clock.advance(seconds=1801)

        with pytest.raises(ExpiredResetToken):
            await general_service.reset_password(token=token, password=NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_weak_password_does_not_burn_token(self, general_service, jane, notifier):
        await general_service.forgot_password(email="jane@x.com")
        token = notifier.last_reset_token()

        with pytest.raises(ValidationError):
            await general_service.reset_password(token=token, password="weak")

        await general_service.reset_password(token=token, password=NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_overlong_password_does_not_burn_token(self, general_service, jane, notifier):
        await general_service.forgot_password(email="jane@x.com")
        token = notifier.last_reset_token()
        password = "Aa1!" + "x" * 96

        with pytest.raises(ValidationError) as exc:
            await general_service.reset_password(token=token, password=password, confirm_password=password)
        assert exc.value.details[0]["field"] == "password"

        await general_service.reset_password(token=token, password=NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_confirmation_checked_when_supplied(self, general_service, jane, notifier):
        await general_service.forgot_password(email="jane@x.com")

        with pytest.raises(ValidationError) as exc:
            await general_service.reset_password(
                token=notifier.last_reset_token(), password=NEW_PASSWORD, confirm_password="Other#2024",
            )
        assert exc.value.details[0]["field"] == "confirmPassword"

    @pytest.mark.asyncio
    async def test_admin_token_rejected_by_general_scope(
        self, general_service, admin_service, admin_account, notifier
    ):
        await admin_service.forgot_password(email="admin@maijjd.com")
        token = notifier.last_reset_token()
        assert "/admin/reset-password" in notifier.last("password_reset")[2]

        with pytest.raises(ForbiddenScope):
            await general_service.reset_password(token=token, password=NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_general_token_rejected_by_admin_scope(
        self, general_service, admin_service, jane, notifier
    ):
        await general_service.forgot_password(email="jane@x.com")

        with pytest.raises(ForbiddenScope):
            await admin_service.reset_password(token=notifier.last_reset_token(), password=NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_admin_requesting_through_general_gets_admin_token(
        self, general_service, admin_service, admin_account, notifier
    ):
        """Tokens follow the account's role family, not the endpoint used."""
        await general_service.forgot_password(email="admin@maijjd.com")
        token = notifier.last_reset_token()

        result = await admin_service.reset_password(token=token, password=NEW_PASSWORD)
        assert result.account.id == admin_account.id

    @pytest.mark.asyncio
    async def test_admin_forgot_ignores_regular_accounts(self, admin_service, jane, notifier):
        await admin_service.forgot_password(email="jane@x.com")

        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_account_deleted_after_issue(self, general_service, jane, notifier, db_session):
        await general_service.forgot_password(email="jane@x.com")
        db_session.delete(jane)
        db_session.commit()

        with pytest.raises(UserNotFound):
            await general_service.reset_password(token=notifier.last_reset_token(), password=NEW_PASSWORD)


# =============================================================================
# VERIFICATION CODES
# =============================================================================

class TestVerification:

    @pytest.mark.asyncio
    async def test_code_valid_within_window(self, general_service, jane, notifier, clock):
        await general_service.send_verification(VerificationPurpose.EMAIL, email="jane@x.com")
        code = notifier.last_code("verification_email")

        clock.advance(seconds=599)
        account = await general_service.verify_code(VerificationPurpose.EMAIL, code, email="jane@x.com")

        assert account.email_verified is True

    @pytest.mark.asyncio
    async def test_code_expires(self, general_service, jane, notifier, clock):
        await general_service.send_verification(VerificationPurpose.EMAIL, email="jane@x.com")
        code = notifier.last_code("verification_email")

        clock.advance(seconds=601)

        with pytest.raises(InvalidOrExpiredCode):
            await general_service.verify_code(VerificationPurpose.EMAIL, code, email="jane@x.com")

    @pytest.mark.asyncio
    async def test_code_single_use(self, general_service, jane, notifier):
        await general_service.send_verification(VerificationPurpose.PHONE, phone="+15551234567")
        code = notifier.last_code("verification_sms")

        account = await general_service.verify_code(VerificationPurpose.PHONE, code, phone="+15551234567")
        assert account.phone_verified is True

        with pytest.raises(InvalidOrExpiredCode):
            await general_service.verify_code(VerificationPurpose.PHONE, code, phone="+15551234567")

    @pytest.mark.asyncio
    async def test_reissue_invalidates_previous(self, general_service, jane, notifier):
        await general_service.send_verification(VerificationPurpose.EMAIL, email="jane@x.com")
        first = notifier.last_code("verification_email")
        await general_service.send_verification(VerificationPurpose.EMAIL, email="jane@x.com")
        second = notifier.last_code("verification_email")

        if first != second:
            with pytest.raises(InvalidOrExpiredCode):
                await general_service.verify_code(VerificationPurpose.EMAIL, first, email="jane@x.com")
        await general_service.verify_code(VerificationPurpose.EMAIL, second, email="jane@x.com")

    @pytest.mark.asyncio
    async def test_guessing_is_locked_out(self, general_service, jane, notifier):
        await general_service.send_verification(VerificationPurpose.EMAIL, email="jane@x.com")
        code = notifier.last_code("verification_email")
        wrong = "100000" if code != "100000" else "100001"

        for _ in range(5):
            with pytest.raises(InvalidOrExpiredCode):
                await general_service.verify_code(VerificationPurpose.EMAIL, wrong, email="jane@x.com")

        with pytest.raises(TooManyAttempts):
            await general_service.verify_code(VerificationPurpose.EMAIL, code, email="jane@x.com")

    @pytest.mark.asyncio
    async def test_unknown_account(self, general_service):
        with pytest.raises(UserNotFound):
            await general_service.send_verification(VerificationPurpose.EMAIL, email="nobody@x.com")

    @pytest.mark.asyncio
    async def test_identifier_required_for_purpose(self, general_service, jane):
        with pytest.raises(ValidationError):
            await general_service.send_verification(VerificationPurpose.PHONE, email="jane@x.com")


# =============================================================================
# REFRESH
# =============================================================================

class TestRefresh:

    @pytest.mark.asyncio
    async def test_refresh_issues_new_pair(self, general_service, jane):
        login = await general_service.login(email="jane@x.com", password=JANE_PASSWORD)

        pair = await general_service.refresh(login.tokens.refresh_token)

        assert verify_token(pair.access_token, settings.JWT_AUDIENCE).sub == str(jane.id)
        assert verify_token(pair.refresh_token, settings.JWT_AUDIENCE, expected_type=REFRESH)
        assert pair.refresh_token != login.tokens.refresh_token

    @pytest.mark.asyncio
    async def test_presented_refresh_token_stays_valid(self, general_service, jane):
        login = await general_service.login(email="jane@x.com", password=JANE_PASSWORD)

        await general_service.refresh(login.tokens.refresh_token)
        await general_service.refresh(login.tokens.refresh_token)

    @pytest.mark.asyncio
    async def test_access_token_rejected(self, general_service, jane):
        token, _ = create_access_token(jane, general_service.scope)

        with pytest.raises(InvalidTokenType):
            await general_service.refresh(token)

    @pytest.mark.asyncio
    async def test_garbage_rejected(self, general_service):
        with pytest.raises(InvalidRefreshToken):
            await general_service.refresh("not.a.token")

    @pytest.mark.asyncio
    async def test_missing_token(self, general_service):
        with pytest.raises(ValidationError):
            await general_service.refresh("")

    @pytest.mark.asyncio
    async def test_admin_refresh_token_rejected_by_general_scope(self, general_service, admin_account):
        token, _ = create_refresh_token(admin_account, admin_scope())

        with pytest.raises(InvalidRefreshToken):
            await general_service.refresh(token)

    @pytest.mark.asyncio
    async def test_deleted_account(self, general_service, jane, db_session):
        token, _ = create_refresh_token(jane, general_service.scope)
        db_session.delete(jane)
        db_session.commit()

        with pytest.raises(UserNotFound):
            await general_service.refresh(token)


# =============================================================================
# ADMIN OPERATIONS
# =============================================================================

class TestAdminOperations:

    @pytest.mark.asyncio
    async def test_force_password(self, admin_service, general_service, admin_account, jane):
        await general_service.login(email="jane@x.com", password=JANE_PASSWORD)

        result = await admin_service.force_password(
            target_email="jane@x.com", new_password=NEW_PASSWORD, actor=admin_account,
        )

        assert result.account.last_login is None
        await general_service.login(email="jane@x.com", password=NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_force_password_enforces_policy(self, admin_service, admin_account, jane):
        with pytest.raises(ValidationError):
            await admin_service.force_password(
                target_email="jane@x.com", new_password="password", actor=admin_account,
            )

    @pytest.mark.asyncio
    async def test_force_password_over_bcrypt_limit(self, admin_service, admin_account, jane):
        with pytest.raises(ValidationError):
            await admin_service.force_password(
                target_email="jane@x.com", new_password="Aa1!" + "x" * 96, actor=admin_account,
            )

    @pytest.mark.asyncio
    async def test_force_password_unknown_target(self, admin_service, admin_account):
        with pytest.raises(UserNotFound):
            await admin_service.force_password(
                target_email="nobody@x.com", new_password=NEW_PASSWORD, actor=admin_account,
            )

    def test_update_account(self, admin_service, admin_account, jane):
        account = admin_service.update_account(
            jane.id, actor=admin_account, role=Role.MODERATOR, status=AccountStatus.SUSPENDED,
        )

        assert account.role == Role.MODERATOR
        assert account.status == AccountStatus.SUSPENDED

    def test_update_own_account_forbidden(self, admin_service, admin_account):
        with pytest.raises(Forbidden):
            admin_service.update_account(admin_account.id, actor=admin_account, role=Role.USER)

    def test_update_requires_a_change(self, admin_service, admin_account, jane):
        with pytest.raises(ValidationError):
            admin_service.update_account(jane.id, actor=admin_account)

    @pytest.mark.asyncio
    async def test_suspended_account_cannot_refresh(self, admin_service, general_service, admin_account, jane):
        login = await general_service.login(email="jane@x.com", password=JANE_PASSWORD)
        admin_service.update_account(jane.id, actor=admin_account, status=AccountStatus.SUSPENDED)

        with pytest.raises(AccountInactive):
            await general_service.refresh(login.tokens.refresh_token)


# =============================================================================
# DEFERRED DELIVERY
# =============================================================================

class StalledNotifier(RecordingNotifier):
    """Notifier whose provider never answers."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()
        self.calls = 0

    async def send_password_reset(self, reset_url, *, email=None, phone=None) -> bool:
        self.calls += 1
        await self.release.wait()
        return await super().send_password_reset(reset_url, email=email, phone=phone)


class TestDeferredDelivery:
    """With a request's BackgroundTasks attached, sends run after the reply."""

    @pytest.mark.asyncio
    async def test_forgot_password_does_not_wait_for_provider(self, general_service, jane):
        background = BackgroundTasks()
        stalled = StalledNotifier()
        general_service.background = background
        general_service.notifier = stalled

        await asyncio.wait_for(general_service.forgot_password(email="jane@x.com"), timeout=1)

        assert len(background.tasks) == 1
        assert stalled.calls == 0

    @pytest.mark.asyncio
    async def test_known_and_unknown_identities_reply_alike(self, general_service, jane, notifier):
        background = BackgroundTasks()
        general_service.background = background

        known = await general_service.forgot_password(email="jane@x.com")
        unknown = await general_service.forgot_password(email="nobody@x.com")

        assert known is unknown is None
        assert notifier.sent == []

        await background()
        assert notifier.last("password_reset")[1] == "jane@x.com"

    @pytest.mark.asyncio
    async def test_registration_codes_sent_after_reply(self, general_service, notifier):
        background = BackgroundTasks()
        general_service.background = background

        result = await general_service.register(
            name="Jane", email="jane@x.com", phone="+15551234567",
            password=JANE_PASSWORD, confirm_password=JANE_PASSWORD,
        )

        assert result.tokens.access_token
        assert notifier.sent == []

        await background()
        assert {kind for kind, _, _ in notifier.sent} == {"verification_email", "verification_sms"}
