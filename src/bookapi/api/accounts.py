"""
bookapi/api/accounts.py: Account administration endpoints.

Managers and admins approve or reject pending accounts; admins list every
account, create managers and edit any profile.
"""

from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status

from bookapi.dependencies import get_account_service, get_caller
from bookapi.models.account import (
    AccountPage,
    AccountRead,
    ManagerCreate,
    MessageResponse,
    ProfileUpdate,
    RejectRequest,
)
from bookapi.models.enums import AccountStatus
from bookapi.services.account_service import AccountLifecycleManager
from bookapi.services.rbac import CallerContext

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.get("", response_model=AccountPage, summary="List accounts (admin)")
async def list_accounts(
    status_filter: AccountStatus | None = Query(None, alias="status"),
    email_verified: bool | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    caller: CallerContext = Depends(get_caller),
    service: AccountLifecycleManager = Depends(get_account_service),
):
    return await service.list_accounts(
        caller, status=status_filter, email_verified=email_verified,
        limit=limit, offset=offset,
    )


@router.get("/pending", response_model=AccountPage, summary="Accounts awaiting approval")
async def list_pending(
    verified_only: bool = Query(False, description="Only accounts with a verified email"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    caller: CallerContext = Depends(get_caller),
    service: AccountLifecycleManager = Depends(get_account_service),
):
    return await service.list_pending(caller, verified_only=verified_only, limit=limit, offset=offset)


@router.post(
    "/managers",
    response_model=AccountRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a manager (admin)",
)
async def create_manager(
    body: ManagerCreate,
    caller: CallerContext = Depends(get_caller),
    service: AccountLifecycleManager = Depends(get_account_service),
):
    """The manager is created verified and approved; no OTP step."""
    return await service.create_manager(caller, body)


@router.put("/{account_id}/approve", response_model=AccountRead, summary="Approve an account")
async def approve(
    account_id: UUID,
    caller: CallerContext = Depends(get_caller),
    service: AccountLifecycleManager = Depends(get_account_service),
):
    return await service.approve(account_id, caller)


@router.delete("/{account_id}", response_model=MessageResponse, summary="Reject (delete) an account")
async def reject(
    account_id: UUID,
    body: RejectRequest | None = Body(None),
    caller: CallerContext = Depends(get_caller),
    service: AccountLifecycleManager = Depends(get_account_service),
):
    """The account is deleted; the owner receives the reason by email."""
    await service.reject(account_id, caller, body.reason if body else None)
    return MessageResponse(message="Account rejected and removed.")


@router.patch("/{account_id}", response_model=AccountRead, summary="Update a profile")
async def update_account(
    account_id: UUID,
    body: ProfileUpdate,
    caller: CallerContext = Depends(get_caller),
    service: AccountLifecycleManager = Depends(get_account_service),
):
    return await service.update_profile(account_id, caller, body)
