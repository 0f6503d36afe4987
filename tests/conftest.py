from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from bookapi.exceptions import NotificationError
from bookapi.memory_store import InMemoryAccountRepository
from bookapi.models.enums import AccountRole
from bookapi.services.account_service import AccountLifecycleManager
from bookapi.services.auth_service import SessionTokens
from bookapi.services.rbac import CallerContext

TEST_SECRET = "tests-secret-key"


class RecordingNotifier:
    """Notifier that keeps every message and can be switched to fail."""

    def __init__(self) -> None:
        self.otps: list[tuple[str, str]] = []
        self.approvals: list[tuple[str, str]] = []
        self.rejections: list[tuple[str, str, str]] = []
        self.fail = False

    def _maybe_fail(self) -> None:
        if self.fail:
            raise NotificationError("SMTP relay unreachable")

    async def send_otp(self, email: str, code: str) -> None:
        self._maybe_fail()
        self.otps.append((email, code))

    async def send_approval_notice(self, email: str, username: str) -> None:
        self._maybe_fail()
        self.approvals.append((email, username))

    async def send_rejection_notice(self, email: str, username: str, reason: str) -> None:
        self._maybe_fail()
        self.rejections.append((email, username, reason))

    def last_code(self, email: str) -> str:
        codes = [code for to, code in self.otps if to == email]
        assert codes, f"no OTP sent to {email}"
        return codes[-1]


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture()
def tokens() -> SessionTokens:
    return SessionTokens(TEST_SECRET)


@pytest.fixture()
def service(store, notifier, tokens, clock) -> AccountLifecycleManager:
    return AccountLifecycleManager(
        accounts=store,
        notifier=notifier,
        tokens=tokens,
        clock=clock,
    )


@pytest.fixture()
def admin() -> CallerContext:
    return CallerContext(account_id=uuid4(), role=AccountRole.ADMIN)


@pytest.fixture()
def manager() -> CallerContext:
    return CallerContext(account_id=uuid4(), role=AccountRole.MANAGER)


@pytest.fixture()
def plain_user() -> CallerContext:
    return CallerContext(account_id=uuid4(), role=AccountRole.USER)


@pytest.fixture()
def rsa_key_paths(tmp_path):
    """PEM private/public key pair written to ``tmp_path``."""
    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric import rsa

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_path = tmp_path / "jwt.pem"
    public_path = tmp_path / "jwt.pub.pem"
    private_path.write_bytes(key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ))
    public_path.write_bytes(key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ))
    return private_path, public_path
