"""
bookapi/services/auth_service.py: Credential primitives.

Password hashing (bcrypt), one-time codes and signed session tokens
(python-jose). The lifecycle manager composes these; nothing here touches
the credential store.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import UUID

import bcrypt
from jose import JWTError, jwt

from bookapi.config import BookApiSettings
from bookapi.exceptions import UnauthenticatedError
from bookapi.models.account import BCRYPT_MAX_BYTES

logger = logging.getLogger(__name__)

# Sessions are valid for exactly one hour.
SESSION_TTL = timedelta(hours=1)

OTP_DIGITS = 6


# ═══════════════════════════════════════════════════════════════════════════
# PASSWORDS
# ═══════════════════════════════════════════════════════════════════════════


def hash_password(password: str) -> str:
    """Hashes a password with bcrypt (salt included in the hash).

    Raises ValueError for input over 72 bytes; the request schemas reject
    such passwords before they get here.
    """
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Compares a plaintext password with the stored hash."""
    if len(plain.encode("utf-8")) > BCRYPT_MAX_BYTES:
        # bcrypt refuses longer input; nothing that long was ever stored
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # malformed hash in storage
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


# ═══════════════════════════════════════════════════════════════════════════
# ONE-TIME CODES
# ═══════════════════════════════════════════════════════════════════════════


def generate_otp() -> str:
    """Uniformly random 6-digit numeric code (leading zeros kept)."""
    return f"{secrets.randbelow(10**OTP_DIGITS):0{OTP_DIGITS}d}"


def otp_matches(submitted: str, stored: str) -> bool:
    """Constant-time comparison of a submitted code with the stored one."""
    return secrets.compare_digest(submitted.encode("utf-8"), stored.encode("utf-8"))


# ═══════════════════════════════════════════════════════════════════════════
# SESSION TOKENS
# ═══════════════════════════════════════════════════════════════════════════


class SessionTokens:
    """
    Issues and decodes JWT session tokens.

    Signing key priority:
    1. RSA private key (``jwt_private_key_path``) → RS256, verified with the
       public key published through JWKS.
    2. Shared secret (``jwt_secret_key``) → ``jwt_algorithm`` (HS256).
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        private_key: str | None = None,
        public_key: str | None = None,
    ) -> None:
        if private_key:
            self.algorithm = "RS256"
            self._signing_key = private_key
            self._verify_key = public_key or private_key
        else:
            self.algorithm = algorithm
            self._signing_key = secret
            self._verify_key = secret

    @classmethod
    def from_settings(cls, settings: BookApiSettings) -> "SessionTokens":
        private_key = _read_key(settings.jwt_private_key_path)
        public_key = _read_key(settings.jwt_public_key_path) if private_key else None
        if settings.jwt_private_key_path and private_key is None:
            logger.warning(
                "JWT private key file not found: %s, falling back to %s",
                settings.jwt_private_key_path, settings.jwt_algorithm,
            )
        return cls(
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
            private_key=private_key,
            public_key=public_key,
        )

    def issue(self, account_id: UUID, role: str, now: datetime | None = None) -> str:
        """Signed access token carrying ``sub`` (account id) and ``role``."""
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "sub": str(account_id),
            "role": role,
            "type": "access",
            "iat": issued_at,
            "exp": issued_at + SESSION_TTL,
        }
        return jwt.encode(payload, self._signing_key, algorithm=self.algorithm)

    def decode(self, token: str) -> dict:
        """Verifies signature and expiry; raises UnauthenticatedError otherwise."""
        try:
            payload = jwt.decode(token, self._verify_key, algorithms=[self.algorithm])
        except JWTError as exc:
            raise UnauthenticatedError(f"Invalid token: {exc}") from exc
        if payload.get("type") != "access":
            raise UnauthenticatedError("Token is not an access token")
        return payload


def _read_key(path: str) -> str | None:
    if not path:
        return None
    p = Path(path)
    if not p.is_file():
        return None
    logger.info("JWT key loaded from %s", p)
    return p.read_text(encoding="utf-8")
