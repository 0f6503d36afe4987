"""
═══════════════════════════════════════════════════════════════════════════════
BookAPI: In-memory credential store (local development stand-in for the DB)
═══════════════════════════════════════════════════════════════════════════════

``InMemoryAccountRepository`` satisfies the same contract as
``PostgresAccountRepository``, including the email/username unique indexes.
The lifespan falls back to it when PostgreSQL is unreachable; the tests use
it directly.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from bookapi.db.repositories.account_repo import WRITABLE_COLUMNS, conflict_for

logger = logging.getLogger(__name__)

_now = lambda: datetime.now(timezone.utc)  # noqa: E731

_DEFAULTS: dict[str, Any] = {
    "role": "user",
    "status": "pending",
    "email_verified": False,
    "otp": None,
    "otp_expiry": None,
    "verified_at": None,
}


class InMemoryAccountRepository:
    """AccountRepository kept in a dict (data is lost on restart)."""

    def __init__(self) -> None:
        self._accounts: dict[UUID, dict] = {}

    def __len__(self) -> int:
        return len(self._accounts)

    def _check_unique(self, fields: dict[str, Any], exclude: UUID | None = None) -> None:
        for account in self._accounts.values():
            if account["account_id"] == exclude:
                continue
            if "email" in fields and account["email"] == fields["email"]:
                raise conflict_for("email")
            if "username" in fields and account["username"] == fields["username"]:
                raise conflict_for("username")

    async def find_by_email(self, email: str) -> dict | None:
        for account in self._accounts.values():
            if account["email"] == email:
                return copy.deepcopy(account)
        return None

    async def find_by_username(self, username: str) -> dict | None:
        for account in self._accounts.values():
            if account["username"] == username:
                return copy.deepcopy(account)
        return None

    async def find_by_id(self, account_id: UUID) -> dict | None:
        account = self._accounts.get(account_id)
        return copy.deepcopy(account) if account else None

    async def insert(self, **fields: Any) -> dict:
        unknown = set(fields) - WRITABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown account columns: {sorted(unknown)}")
        self._check_unique(fields)
        now = _now()
        account = {
            **_DEFAULTS,
            **fields,
            "account_id": uuid4(),
            "created_at": now,
            "updated_at": now,
        }
        self._accounts[account["account_id"]] = account
        logger.info("Memory store: created account %s <%s>", account["username"], account["email"])
        return copy.deepcopy(account)

    async def update(self, account_id: UUID, **fields: Any) -> dict | None:
        unknown = set(fields) - WRITABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown account columns: {sorted(unknown)}")
        account = self._accounts.get(account_id)
        if account is None:
            return None
        self._check_unique(fields, exclude=account_id)
        account.update(fields)
        account["updated_at"] = _now()
        return copy.deepcopy(account)

    async def delete(self, account_id: UUID) -> bool:
        return self._accounts.pop(account_id, None) is not None

    async def list_by_filter(
        self,
        status: str | None = None,
        email_verified: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[dict], int]:
        matches = [
            a for a in self._accounts.values()
            if (status is None or a["status"] == status)
            and (email_verified is None or a["email_verified"] == email_verified)
        ]
        matches.sort(key=lambda a: a["created_at"], reverse=True)
        page = matches[offset:offset + limit]
        return [copy.deepcopy(a) for a in page], len(matches)
