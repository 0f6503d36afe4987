"""
bookapi/services/account_service.py: Account lifecycle manager.

State machine of an account::

    UNVERIFIED_PENDING ──verify_otp──▶ VERIFIED_PENDING ──approve──▶ APPROVED
            │                                  │
            └──────────── reject ──────────────┴──▶ REJECTED (record deleted)

Managers created by an admin start directly in APPROVED. Every transition is
persisted before the notifier or the event publisher is called, so a failed
email leaves an un-notified account, never an inconsistent one.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable
from uuid import UUID

from bookapi.db.repositories.account_repo import AccountRepository, conflict_for
from bookapi.events import EventPublisher
from bookapi.exceptions import (
    AlreadyVerifiedError,
    DeliveryFailedError,
    EmailNotVerifiedError,
    ForbiddenError,
    InvalidCredentialsError,
    NoCodeIssuedError,
    NotApprovedError,
    NotFoundError,
    NotVerifiedError,
    OtpExpiredError,
    OtpMismatchError,
)
from bookapi.models.account import (
    AccountPage,
    AccountRead,
    AccountRegister,
    LoginResponse,
    ManagerCreate,
    ProfileUpdate,
    RegistrationResult,
    SessionProfile,
)
from bookapi.models.enums import AccountRole, AccountStatus
from bookapi.services import rbac
from bookapi.services.auth_service import (
    SESSION_TTL,
    SessionTokens,
    generate_otp,
    hash_password,
    otp_matches,
    verify_password,
)
from bookapi.services.notifier import DEFAULT_REJECTION_REASON, Notifier
from bookapi.services.rbac import CallerContext

logger = logging.getLogger(__name__)

DEFAULT_OTP_TTL = timedelta(minutes=10)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountLifecycleManager:
    """
    Registration, verification, approval and session issuance.

    Collaborators are injected: ``accounts`` (credential store),
    ``notifier`` (email), ``tokens`` (session signing) and, optionally,
    ``events`` (NATS). ``clock`` and ``otp_factory`` exist for tests.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        notifier: Notifier,
        tokens: SessionTokens,
        events: EventPublisher | None = None,
        otp_ttl: timedelta = DEFAULT_OTP_TTL,
        clock: Callable[[], datetime] = _utcnow,
        otp_factory: Callable[[], str] = generate_otp,
    ) -> None:
        self.accounts = accounts
        self.notifier = notifier
        self.tokens = tokens
        self.events = events
        self.otp_ttl = otp_ttl
        self.clock = clock
        self.otp_factory = otp_factory
        self._dummy_hash: str | None = None

    # ═══════════════════════════════════════════════════════════════════════
    # Helpers
    # ═══════════════════════════════════════════════════════════════════════

    async def _emit(self, event: str, account: dict) -> None:
        if self.events is None:
            return
        try:
            await self.events.emit(event, account)
        except Exception as exc:
            logger.warning("Failed to emit account.%s event: %s", event, exc)

    async def _ensure_available(self, email: str | None, username: str | None,
                                exclude: UUID | None = None) -> None:
        """Raises ConflictError if email/username belongs to another account."""
        if email is not None:
            existing = await self.accounts.find_by_email(email)
            if existing and existing["account_id"] != exclude:
                raise conflict_for("email")
        if username is not None:
            existing = await self.accounts.find_by_username(username)
            if existing and existing["account_id"] != exclude:
                raise conflict_for("username")

    async def _get(self, account_id: UUID) -> dict:
        account = await self.accounts.find_by_id(account_id)
        if account is None:
            raise NotFoundError("Account", str(account_id))
        return account

    async def _get_by_email(self, email: str) -> dict:
        account = await self.accounts.find_by_email(email)
        if account is None:
            raise NotFoundError("Account", email)
        return account

    def _new_code(self) -> tuple[str, datetime]:
        return self.otp_factory(), self.clock() + self.otp_ttl

    # ═══════════════════════════════════════════════════════════════════════
    # REGISTRATION
    # ═══════════════════════════════════════════════════════════════════════

    async def register(
        self, data: AccountRegister, caller: CallerContext | None = None,
    ) -> RegistrationResult:
        """
        Self-service registration.

        The stored role is always ``user``. A request for ``manager`` is only
        honoured for an authenticated admin, in which case it is handled as
        ``create_manager``; anyone else gets ForbiddenError.
        """
        if data.role == AccountRole.MANAGER.value:
            if caller is None or not caller.is_admin:
                raise ForbiddenError("Only admin can create managers.")
            manager = await self.create_manager(
                caller,
                ManagerCreate(username=data.username, email=data.email, password=data.password),
            )
            return RegistrationResult(id=manager.id, email=manager.email,
                                      message="Manager account created.")

        await self._ensure_available(data.email, data.username)

        code, expiry = self._new_code()
        account = await self.accounts.insert(
            username=data.username,
            email=data.email,
            password_hash=hash_password(data.password),
            role=AccountRole.USER.value,
            status=AccountStatus.PENDING.value,
            email_verified=False,
            otp=code,
            otp_expiry=expiry,
        )
        logger.info("Account registered: %s <%s>", account["account_id"], account["email"])

        try:
            await self.notifier.send_otp(account["email"], code)
        except Exception as exc:
            logger.warning(
                "OTP delivery failed for %s, account kept (resend required): %s",
                account["email"], exc,
            )

        await self._emit("registered", account)
        return RegistrationResult(id=account["account_id"], email=account["email"])

    async def create_manager(self, caller: CallerContext | None, data: ManagerCreate) -> AccountRead:
        """Admin-only: creates a manager already verified and approved."""
        rbac.require_permission(caller, "account.create_manager", "Only admin can create managers.")
        await self._ensure_available(data.email, data.username)

        now = self.clock()
        account = await self.accounts.insert(
            username=data.username,
            email=data.email,
            password_hash=hash_password(data.password),
            role=AccountRole.MANAGER.value,
            status=AccountStatus.APPROVED.value,
            email_verified=True,
            verified_at=now,
        )
        logger.info("Manager %s created by admin %s", account["account_id"], caller.account_id)
        await self._emit("manager_created", account)
        return AccountRead.from_row(account)

    async def bootstrap_admin(self, username: str, email: str, password: str) -> AccountRead | None:
        """
        Creates the initial admin if no account holds ``email``.

        Returns None when the account already exists. Called once at startup.
        """
        data = ManagerCreate(username=username, email=email, password=password)
        if await self.accounts.find_by_email(data.email):
            logger.info("Bootstrap admin %s already present", data.email)
            return None
        account = await self.accounts.insert(
            username=data.username,
            email=data.email,
            password_hash=hash_password(data.password),
            role=AccountRole.ADMIN.value,
            status=AccountStatus.APPROVED.value,
            email_verified=True,
            verified_at=self.clock(),
        )
        logger.info("Bootstrap admin created: %s <%s>", account["account_id"], data.email)
        return AccountRead.from_row(account)

    # ═══════════════════════════════════════════════════════════════════════
    # EMAIL VERIFICATION
    # ═══════════════════════════════════════════════════════════════════════

    async def verify_otp(self, email: str, code: str) -> AccountRead:
        """UNVERIFIED_PENDING → VERIFIED_PENDING on a correct, unexpired code."""
        account = await self._get_by_email(email)
        if account["email_verified"]:
            raise AlreadyVerifiedError()
        if not account.get("otp") or account.get("otp_expiry") is None:
            raise NoCodeIssuedError()
        if self.clock() > account["otp_expiry"]:
            raise OtpExpiredError()
        if not otp_matches(code, account["otp"]):
            raise OtpMismatchError()

        updated = await self.accounts.update(
            account["account_id"],
            email_verified=True,
            verified_at=self.clock(),
            otp=None,
            otp_expiry=None,
        )
        if updated is None:
            raise NotFoundError("Account", email)
        logger.info("Email verified for account %s", updated["account_id"])
        await self._emit("verified", updated)
        return AccountRead.from_row(updated)

    async def resend_otp(self, email: str) -> None:
        """
        Issues a fresh code. Unlike registration, a delivery failure fails
        the call with DeliveryFailedError; the new code stays stored.
        """
        account = await self._get_by_email(email)
        if account["email_verified"]:
            raise AlreadyVerifiedError()

        code, expiry = self._new_code()
        await self.accounts.update(account["account_id"], otp=code, otp_expiry=expiry)
        try:
            await self.notifier.send_otp(account["email"], code)
        except Exception as exc:
            logger.error("OTP resend failed for %s: %s", account["email"], exc)
            raise DeliveryFailedError("Failed to send OTP email. Please try again.") from exc
        logger.info("OTP re-issued for account %s", account["account_id"])

    # ═══════════════════════════════════════════════════════════════════════
    # APPROVAL / REJECTION
    # ═══════════════════════════════════════════════════════════════════════

    async def approve(self, account_id: UUID, caller: CallerContext | None) -> AccountRead:
        """
        VERIFIED_PENDING → APPROVED.

        Approving an already approved account succeeds again.
        """
        rbac.require_permission(caller, "account.approve", "Only managers and admins can approve accounts.")
        account = await self._get(account_id)
        if not account["email_verified"]:
            raise NotVerifiedError(str(account_id))

        updated = await self.accounts.update(account_id, status=AccountStatus.APPROVED.value)
        if updated is None:
            raise NotFoundError("Account", str(account_id))
        logger.info("Account %s approved by %s (%s)", account_id, caller.account_id, caller.role.value)

        try:
            await self.notifier.send_approval_notice(updated["email"], updated["username"])
        except Exception as exc:
            logger.warning("Approval notice failed for %s: %s", updated["email"], exc)

        await self._emit("approved", updated)
        return AccountRead.from_row(updated)

    async def reject(self, account_id: UUID, caller: CallerContext | None,
                     reason: str | None = None) -> None:
        """Deletes the account permanently, then notifies the owner."""
        rbac.require_permission(caller, "account.reject", "Only managers and admins can reject accounts.")
        account = await self._get(account_id)
        if not await self.accounts.delete(account_id):
            raise NotFoundError("Account", str(account_id))
        logger.info("Account %s rejected and deleted by %s", account_id, caller.account_id)

        try:
            await self.notifier.send_rejection_notice(
                account["email"], account["username"], reason or DEFAULT_REJECTION_REASON,
            )
        except Exception as exc:
            logger.warning("Rejection notice failed for %s: %s", account["email"], exc)

        await self._emit("rejected", account)

    # ═══════════════════════════════════════════════════════════════════════
    # AUTHENTICATION
    # ═══════════════════════════════════════════════════════════════════════

    async def login(self, email: str, password: str) -> LoginResponse:
        """
        Email + password → session token.

        Unknown email and wrong password raise the same error; the password
        check runs in both cases.
        """
        account = await self.accounts.find_by_email(email)
        if account is None:
            if self._dummy_hash is None:
                self._dummy_hash = hash_password("bookapi-timing-equalizer")
            verify_password(password, self._dummy_hash)
            raise InvalidCredentialsError()
        if not verify_password(password, account["password_hash"]):
            raise InvalidCredentialsError()

        if not account["email_verified"]:
            raise EmailNotVerifiedError(str(account["account_id"]))
        if account["status"] != AccountStatus.APPROVED.value:
            raise NotApprovedError()

        token = self.tokens.issue(account["account_id"], account["role"], now=self.clock())
        logger.info("Login: account %s", account["account_id"])
        return LoginResponse(
            token=token,
            expires_in=int(SESSION_TTL.total_seconds()),
            user=SessionProfile(
                id=account["account_id"],
                username=account["username"],
                role=account["role"],
            ),
        )

    # ═══════════════════════════════════════════════════════════════════════
    # PROFILE
    # ═══════════════════════════════════════════════════════════════════════

    async def get_account(self, caller: CallerContext) -> AccountRead:
        return AccountRead.from_row(await self._get(caller.account_id))

    async def update_profile(self, account_id: UUID, caller: CallerContext,
                             data: ProfileUpdate) -> AccountRead:
        """Partial update: only the fields present in ``data`` change."""
        if not rbac.can_update_account(caller, account_id):
            raise ForbiddenError("You can only update your own profile.")
        await self._get(account_id)
        await self._ensure_available(data.email, data.username, exclude=account_id)

        fields: dict = {}
        if data.username is not None:
            fields["username"] = data.username
        if data.email is not None:
            fields["email"] = data.email
        if data.password is not None:
            fields["password_hash"] = hash_password(data.password)

        updated = await self.accounts.update(account_id, **fields)
        if updated is None:
            raise NotFoundError("Account", str(account_id))
        logger.info("Profile updated for account %s (%s)", account_id, ", ".join(sorted(fields)))
        return AccountRead.from_row(updated)

    # ═══════════════════════════════════════════════════════════════════════
    # LISTING
    # ═══════════════════════════════════════════════════════════════════════

    async def list_accounts(
        self,
        caller: CallerContext | None,
        status: AccountStatus | None = None,
        email_verified: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> AccountPage:
        """Admin-only listing of all accounts, newest first."""
        rbac.require_permission(caller, "account.list", "Only admins can list accounts.")
        rows, total = await self.accounts.list_by_filter(
            status=status.value if status else None,
            email_verified=email_verified,
            limit=limit,
            offset=offset,
        )
        return AccountPage(
            items=[AccountRead.from_row(r) for r in rows],
            total=total, limit=limit, offset=offset,
        )

    async def list_pending(
        self,
        caller: CallerContext | None,
        verified_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> AccountPage:
        """Accounts awaiting approval; ``verified_only`` keeps the approvable ones."""
        rbac.require_permission(caller, "account.list_pending",
                                "Only managers and admins can list pending accounts.")
        rows, total = await self.accounts.list_by_filter(
            status=AccountStatus.PENDING.value,
            email_verified=True if verified_only else None,
            limit=limit,
            offset=offset,
        )
        return AccountPage(
            items=[AccountRead.from_row(r) for r in rows],
            total=total, limit=limit, offset=offset,
        )
