"""
Maijjd - Authentication Routes

API endpoints for general accounts:
- POST /auth/login                    - Authenticate, issue tokens
- POST /auth/register                 - Create account, issue tokens
- GET  /auth/profile                  - Current account (Bearer)
- POST /auth/refresh                  - Exchange refresh token
- POST /auth/logout                   - Acknowledge client-side discard
- POST /auth/forgot-password          - Request a reset link
- POST /auth/reset-password           - Redeem a reset token
- POST /auth/send-verification-email  - Issue an email code
- POST /auth/send-verification-sms    - Issue an SMS code
- POST /auth/verify-code              - Redeem a verification code

Handlers translate between the wire schemas and AuthService; every
failure is an AuthError rendered by the gateway error handlers.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status

from maijjd.auth.dependencies import (
    AuthenticatedAccount,
    get_client_info,
    get_current_user,
    get_general_service,
)
from maijjd.auth.models import VerificationPurpose
from maijjd.auth.schemas import (
    AccountView,
    AuthenticationView,
    ErrorResponse,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SendVerificationEmailRequest,
    SendVerificationSmsRequest,
    VerifyCodeRequest,
    as_utc,
    dump,
    envelope,
)
from maijjd.auth.service import AuthResult, AuthService, ResetResult
from maijjd.auth.validation import field_error
from maijjd.errors import ValidationError


router = APIRouter(prefix="/auth", tags=["authentication"])

FORGOT_PASSWORD_MESSAGE = "If an account exists, a password reset link has been sent"

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
}


# =============================================================================
# Response builders shared with the admin router
# =============================================================================

def auth_response(service: AuthService, result: AuthResult, message: str) -> Dict[str, Any]:
    """Envelope carrying data.<user|admin> and data.authentication."""
    scope = service.scope
    return envelope(
        message,
        {
            scope.account_key: dump(AccountView.of(result.account)),
            "authentication": dump(AuthenticationView.of(result.tokens)),
        },
        accountType=scope.account_type,
    )


def refresh_response(service: AuthService, pair) -> Dict[str, Any]:
    return envelope(
        "Token refreshed successfully",
        {"authentication": dump(AuthenticationView.of(pair))},
        accountType=service.scope.account_type,
    )


def profile_response(service: AuthService, user: AuthenticatedAccount) -> Dict[str, Any]:
    account = service.profile(user.account_id)
    return envelope(
        "Profile retrieved successfully",
        {
            service.scope.account_key: dump(AccountView.of(account)),
            "permissions": user.permissions,
        },
    )


def reset_response(result: ResetResult) -> Dict[str, Any]:
    return envelope(
        "Password has been reset successfully",
        {"resetAt": as_utc(result.reset_at).isoformat()},
    )


def logout_response(user: AuthenticatedAccount) -> Dict[str, Any]:
    return envelope(
        "Logout successful",
        {"instructions": "Discard the access and refresh tokens on the client"},
        tokenId=user.token_id,
    )


# =============================================================================
# Endpoints
# =============================================================================

@router.post(
    "/login",
    responses={**ERROR_RESPONSES, 403: {"model": ErrorResponse}},
    summary="Authenticate with email or phone and password",
)
async def login(
    request: Request,
    body: LoginRequest,
    service: AuthService = Depends(get_general_service),
):
    """
    Authenticate an account of any role.

    Unknown identifiers and wrong passwords produce the same
    INVALID_CREDENTIALS response.
    """
    result = await service.login(
        email=body.email,
        phone=body.phone,
        password=body.password,
        client=get_client_info(request),
    )
    return auth_response(service, result, "Login successful")


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    summary="Create a user account",
)
async def register(
    body: RegisterRequest,
    service: AuthService = Depends(get_general_service),
):
    result = await service.register(
        name=body.name,
        email=body.email,
        phone=body.phone,
        password=body.password,
        confirm_password=body.confirm_password,
    )
    return auth_response(service, result, "Registration successful")


@router.get("/profile", summary="Get current account")
async def profile(
    user: AuthenticatedAccount = Depends(get_current_user),
    service: AuthService = Depends(get_general_service),
):
    return profile_response(service, user)


@router.post("/refresh", responses=ERROR_RESPONSES, summary="Refresh access token")
async def refresh(
    body: RefreshRequest,
    service: AuthService = Depends(get_general_service),
):
    pair = await service.refresh(body.refresh_token)
    return refresh_response(service, pair)


@router.post("/logout", summary="Log out (client-side token discard)")
async def logout(user: AuthenticatedAccount = Depends(get_current_user)):
    """Tokens are stateless; the client discards them."""
    return logout_response(user)


@router.post("/forgot-password", summary="Request a password reset link")
@router.post("/forgot", include_in_schema=False)
async def forgot_password(
    body: ForgotPasswordRequest,
    service: AuthService = Depends(get_general_service),
):
    """Always answers with the same message, whether or not the account exists."""
    await service.forgot_password(email=body.email, phone=body.phone)
    return envelope(FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", responses=ERROR_RESPONSES, summary="Reset password with a token")
@router.post("/reset", include_in_schema=False)
async def reset_password(
    body: ResetPasswordRequest,
    service: AuthService = Depends(get_general_service),
):
    result = await service.reset_password(
        token=body.token,
        password=body.chosen_password,
        confirm_password=body.confirm_password,
    )
    return reset_response(result)


@router.post("/send-verification-email", summary="Send an email verification code")
async def send_verification_email(
    body: SendVerificationEmailRequest,
    service: AuthService = Depends(get_general_service),
):
    issued = await service.send_verification(VerificationPurpose.EMAIL, email=body.email)
    return envelope(
        "Verification code sent to your email",
        {"type": issued.purpose.value, "expiresAt": issued.expires_at.isoformat()},
    )


@router.post("/send-verification-sms", summary="Send an SMS verification code")
async def send_verification_sms(
    body: SendVerificationSmsRequest,
    service: AuthService = Depends(get_general_service),
):
    issued = await service.send_verification(VerificationPurpose.PHONE, phone=body.phone)
    return envelope(
        "Verification code sent to your phone",
        {"type": issued.purpose.value, "expiresAt": issued.expires_at.isoformat()},
    )


@router.post("/verify-code", responses=ERROR_RESPONSES, summary="Redeem a verification code")
async def verify_code(
    body: VerifyCodeRequest,
    service: AuthService = Depends(get_general_service),
):
    if not body.code or body.type is None:
        raise ValidationError(
            "Code and type are required",
            details=[
                field_error(name, f"{name.capitalize()} is required")
                for name, value in (("code", body.code), ("type", body.type))
                if not value
            ],
        )

    account = await service.verify_code(body.type, body.code, email=body.email, phone=body.phone)
    return envelope(
        "Verification successful",
        {
            "verified": True,
            "type": body.type.value,
            "user": dump(AccountView.of(account)),
        },
    )
