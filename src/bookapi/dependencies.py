"""
═══════════════════════════════════════════════════════════════════════════════
BookAPI: FastAPI dependencies (Dependency Injection)
═══════════════════════════════════════════════════════════════════════════════

Request authentication: the bearer token is decoded and turned into an
explicit ``CallerContext`` that handlers pass on to the lifecycle manager.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import Header, Request

from bookapi.exceptions import UnauthenticatedError
from bookapi.services.account_service import AccountLifecycleManager
from bookapi.services.rbac import CallerContext


def get_account_service(request: Request) -> AccountLifecycleManager:
    """The lifecycle manager built in the lifespan (``app.state.accounts``)."""
    return request.app.state.accounts


async def _resolve_caller(service: AccountLifecycleManager, authorization: str) -> CallerContext:
    """
    Validates ``Authorization: Bearer <token>`` and loads the caller.

    Steps:
        1. Checks the header format.
        2. Decodes the JWT (signature + expiry).
        3. Loads the account by ``sub``; a deleted account is rejected.
        4. Builds the CallerContext from the stored role.
    """
    if not authorization.startswith("Bearer "):
        raise UnauthenticatedError("Authorization header must start with 'Bearer'")

    payload = service.tokens.decode(authorization[7:])
    subject = payload.get("sub")
    if not subject:
        raise UnauthenticatedError("Token payload missing 'sub'")
    try:
        account_id = UUID(subject)
    except ValueError as exc:
        raise UnauthenticatedError("Token subject is not a valid account id") from exc

    account = await service.accounts.find_by_id(account_id)
    if account is None:
        raise UnauthenticatedError("Account no longer exists")

    return CallerContext(account_id=account_id, role=account["role"])


async def get_caller(
    request: Request,
    authorization: str | None = Header(None),
) -> CallerContext:
    """Required authentication: 401 without a valid bearer token."""
    if not authorization:
        raise UnauthenticatedError("Authorization header is required")
    return await _resolve_caller(get_account_service(request), authorization)


async def get_optional_caller(
    request: Request,
    authorization: str | None = Header(None),
) -> CallerContext | None:
    """Optional authentication: anonymous requests yield None, bad tokens still fail."""
    if not authorization:
        return None
    return await _resolve_caller(get_account_service(request), authorization)
