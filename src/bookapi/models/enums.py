"""
bookapi/models/enums.py: Enumerations of the account domain.

    • AccountRole: role of an account in the catalog
    • AccountStatus: stored approval status
    • LifecycleState: derived position in the registration lifecycle
"""

from enum import Enum


class AccountRole(str, Enum):
    """Role of an account."""
    USER = "user"
    MANAGER = "manager"
    ADMIN = "admin"


class AccountStatus(str, Enum):
    """Approval status stored on the account."""
    PENDING = "pending"
    APPROVED = "approved"


class LifecycleState(str, Enum):
    """
    Derived lifecycle state.

    ``REJECTED`` is never stored: a rejected account is deleted.
    """
    UNVERIFIED_PENDING = "unverified_pending"
    VERIFIED_PENDING = "verified_pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def lifecycle_state(account: dict | None) -> LifecycleState:
    """Maps a stored account row (or its absence) to its lifecycle state."""
    if account is None:
        return LifecycleState.REJECTED
    if account.get("status") == AccountStatus.APPROVED:
        return LifecycleState.APPROVED
    if account.get("email_verified"):
        return LifecycleState.VERIFIED_PENDING
    return LifecycleState.UNVERIFIED_PENDING
