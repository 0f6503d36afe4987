"""
bookapi.models: Data models of the account domain.

Re-exports for convenience:
    from bookapi.models import AccountRead, AccountRole
"""

from bookapi.models.enums import AccountRole, AccountStatus, LifecycleState  # noqa: F401
from bookapi.models.account import (  # noqa: F401
    AccountPage,
    AccountRead,
    AccountRegister,
    LoginRequest,
    LoginResponse,
    ManagerCreate,
    OtpResend,
    OtpVerify,
    ProfileUpdate,
    RegistrationResult,
    RejectRequest,
)
