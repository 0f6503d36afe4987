"""
bookapi/api/auth.py: Authentication endpoints.

    POST  /auth/register     registration (optional bearer for admin-created managers)
    POST  /auth/verify-otp   email verification
    POST  /auth/resend-otp   new verification code
    POST  /auth/login        email + password → session token
    GET   /auth/me           own profile
    PATCH /auth/me           partial profile update
"""

from fastapi import APIRouter, Depends, status

from bookapi.dependencies import get_account_service, get_caller, get_optional_caller
from bookapi.models.account import (
    AccountRead,
    AccountRegister,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    OtpResend,
    OtpVerify,
    ProfileUpdate,
    RegistrationResult,
)
from bookapi.services.account_service import AccountLifecycleManager
from bookapi.services.rbac import CallerContext

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=RegistrationResult,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account",
)
async def register(
    body: AccountRegister,
    caller: CallerContext | None = Depends(get_optional_caller),
    service: AccountLifecycleManager = Depends(get_account_service),
):
    """Step 1: create the account and email a 6-digit code."""
    return await service.register(body, caller)


@router.post(
    "/verify-otp",
    response_model=MessageResponse,
    summary="Verify email with the one-time code",
)
async def verify_otp(
    body: OtpVerify,
    service: AccountLifecycleManager = Depends(get_account_service),
):
    """Step 2: confirm email ownership. The account then awaits approval."""
    await service.verify_otp(body.email, body.otp)
    return MessageResponse(message="Email verified successfully. Awaiting admin approval.")


@router.post(
    "/resend-otp",
    response_model=MessageResponse,
    summary="Send a new verification code",
)
async def resend_otp(
    body: OtpResend,
    service: AccountLifecycleManager = Depends(get_account_service),
):
    await service.resend_otp(body.email)
    return MessageResponse(message="A new OTP has been sent to your email.")


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Email + password → session token",
)
async def login(
    body: LoginRequest,
    service: AccountLifecycleManager = Depends(get_account_service),
):
    return await service.login(body.email, body.password)


@router.get("/me", response_model=AccountRead, summary="Own profile")
async def me(
    caller: CallerContext = Depends(get_caller),
    service: AccountLifecycleManager = Depends(get_account_service),
):
    return await service.get_account(caller)


@router.patch("/me", response_model=AccountRead, summary="Update own profile")
async def update_me(
    body: ProfileUpdate,
    caller: CallerContext = Depends(get_caller),
    service: AccountLifecycleManager = Depends(get_account_service),
):
    return await service.update_profile(caller.account_id, caller, body)
