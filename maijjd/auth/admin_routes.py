"""
Maijjd - Admin Authentication Routes

Admin-scoped equivalents of the /auth endpoints plus account management:
- POST  /admin-auth/login
- POST  /admin-auth/register              - Requires the admin creation key
- GET   /admin-auth/profile
- POST  /admin-auth/refresh
- POST  /admin-auth/logout
- POST  /admin-auth/forgot-password
- POST  /admin-auth/reset-password
- POST  /admin-auth/users/reset-password  - Force another account's password
- PATCH /admin-auth/users/{account_id}    - Change role and/or status

Tokens minted here carry the admin audience and are not accepted by
/auth endpoints, and vice versa.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status

from maijjd.auth.dependencies import (
    AuthenticatedAccount,
    get_admin_service,
    get_client_info,
    get_current_admin,
    require_permission,
)
from maijjd.auth.routes import (
    ERROR_RESPONSES,
    FORGOT_PASSWORD_MESSAGE,
    auth_response,
    logout_response,
    profile_response,
    refresh_response,
    reset_response,
)
from maijjd.auth.schemas import (
    AccountUpdateRequest,
    AccountView,
    AdminPasswordResetRequest,
    AdminRegisterRequest,
    ErrorResponse,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshRequest,
    ResetPasswordRequest,
    dump,
    envelope,
)
from maijjd.auth.service import AuthService
from maijjd.gateway.rbac import Permission


router = APIRouter(prefix="/admin-auth", tags=["admin-authentication"])


@router.post(
    "/login",
    responses={**ERROR_RESPONSES, 403: {"model": ErrorResponse}},
    summary="Authenticate an administrator",
)
async def admin_login(
    request: Request,
    body: LoginRequest,
    service: AuthService = Depends(get_admin_service),
):
    """Only accounts with the admin role can authenticate here."""
    result = await service.login(
        email=body.email,
        phone=body.phone,
        password=body.password,
        client=get_client_info(request),
    )
    return auth_response(service, result, "Admin login successful")


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    responses={**ERROR_RESPONSES, 403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Create an administrator (admin creation key required)",
)
async def admin_register(
    body: AdminRegisterRequest,
    service: AuthService = Depends(get_admin_service),
):
    result = await service.register(
        name=body.name,
        email=body.email,
        phone=body.phone,
        password=body.password,
        confirm_password=body.confirm_password,
        admin_key=body.admin_key,
    )
    return auth_response(service, result, "Admin account created successfully")


@router.get("/profile", summary="Get current administrator")
async def admin_profile(
    user: AuthenticatedAccount = Depends(get_current_admin),
    service: AuthService = Depends(get_admin_service),
):
    return profile_response(service, user)


@router.post("/refresh", responses=ERROR_RESPONSES, summary="Refresh admin access token")
async def admin_refresh(
    body: RefreshRequest,
    service: AuthService = Depends(get_admin_service),
):
    pair = await service.refresh(body.refresh_token)
    return refresh_response(service, pair)


@router.post("/logout", summary="Log out (client-side token discard)")
async def admin_logout(user: AuthenticatedAccount = Depends(get_current_admin)):
    return logout_response(user)


@router.post("/forgot-password", summary="Request an admin password reset link")
async def admin_forgot_password(
    body: ForgotPasswordRequest,
    service: AuthService = Depends(get_admin_service),
):
    await service.forgot_password(email=body.email, phone=body.phone)
    return envelope(FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", responses=ERROR_RESPONSES, summary="Reset admin password with a token")
async def admin_reset_password(
    body: ResetPasswordRequest,
    service: AuthService = Depends(get_admin_service),
):
    """Only admin-scoped reset tokens are accepted."""
    result = await service.reset_password(
        token=body.token,
        password=body.chosen_password,
        confirm_password=body.confirm_password,
    )
    return reset_response(result)


# =============================================================================
# Account management
# =============================================================================

@router.post(
    "/users/reset-password",
    responses={**ERROR_RESPONSES, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Set another account's password",
)
@require_permission(Permission.MANAGE_USERS)
async def force_password_reset(
    body: AdminPasswordResetRequest,
    user: AuthenticatedAccount = Depends(get_current_admin),
    service: AuthService = Depends(get_admin_service),
):
    actor = service.profile(user.account_id)
    result = await service.force_password(
        target_email=body.target_email,
        new_password=body.new_password,
        actor=actor,
    )
    return envelope(
        "Password reset successfully",
        {
            "user": dump(AccountView.of(result.account)),
            "resetAt": result.reset_at.isoformat(),
        },
    )


@router.patch(
    "/users/{account_id}",
    responses={**ERROR_RESPONSES, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Change an account's role or status",
)
@require_permission(Permission.MANAGE_USERS)
async def update_account(
    account_id: UUID,
    body: AccountUpdateRequest,
    user: AuthenticatedAccount = Depends(get_current_admin),
    service: AuthService = Depends(get_admin_service),
):
    actor = service.profile(user.account_id)
    account = service.update_account(account_id, actor=actor, role=body.role, status=body.status)
    return envelope("Account updated successfully", {"user": dump(AccountView.of(account))})
