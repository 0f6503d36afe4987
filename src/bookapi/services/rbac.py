"""
bookapi/services/rbac.py: Role checks for the account service.

``CallerContext`` is the authenticated identity handed to the lifecycle
manager by the request layer. Every privilege decision is a pure function
of that context.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from bookapi.exceptions import ForbiddenError
from bookapi.models.enums import AccountRole

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Caller identity
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CallerContext:
    account_id: UUID
    role: AccountRole

    def __post_init__(self) -> None:
        # tokens carry the role as a plain string
        object.__setattr__(self, "role", AccountRole(self.role))

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.ADMIN


# ═══════════════════════════════════════════════════════════════════════════════
# Permissions
# ═══════════════════════════════════════════════════════════════════════════════

APPROVERS = frozenset({AccountRole.MANAGER, AccountRole.ADMIN})

PERMISSIONS: dict[str, frozenset[AccountRole]] = {
    "account.approve": APPROVERS,
    "account.reject": APPROVERS,
    "account.list_pending": APPROVERS,
    "account.list": frozenset({AccountRole.ADMIN}),
    "account.create_manager": frozenset({AccountRole.ADMIN}),
    "account.update_any": frozenset({AccountRole.ADMIN}),
}


def has_permission(caller: CallerContext | None, permission: str) -> bool:
    """True if the caller's role grants ``permission``."""
    allowed = PERMISSIONS.get(permission)
    if allowed is None:
        logger.warning("Unknown permission requested: %s", permission)
        return False
    return caller is not None and caller.role in allowed


def require_permission(caller: CallerContext | None, permission: str, message: str | None = None) -> CallerContext:
    """Returns the caller or raises ForbiddenError."""
    if not has_permission(caller, permission):
        logger.warning(
            "RBAC: account %s (role=%s) denied '%s'",
            getattr(caller, "account_id", "anonymous"),
            getattr(caller, "role", None),
            permission,
        )
        raise ForbiddenError(message or f"Permission '{permission}' required")
    return caller


def can_update_account(caller: CallerContext, account_id: UUID) -> bool:
    """Callers may edit their own account; admins may edit any account."""
    return caller.account_id == account_id or has_permission(caller, "account.update_any")
