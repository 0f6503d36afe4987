"""
bookapi/db/repositories/account_repo.py: Account repository (Credential Store).

``AccountRepository`` is the contract the lifecycle manager depends on.
``PostgresAccountRepository`` implements it on top of asyncpg; the in-memory
implementation lives in ``bookapi.memory_store``.

Rows are returned as plain dicts with the column names of ``accounts``.
Uniqueness is enforced by the database: a ``UniqueViolationError`` is turned
into ``ConflictError``, any other driver error into ``InternalError``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Protocol
from uuid import UUID

import asyncpg

from bookapi.database import Database
from bookapi.exceptions import ConflictError, InternalError

logger = logging.getLogger(__name__)

# Columns a caller may set through insert()/update().
WRITABLE_COLUMNS = frozenset({
    "username", "email", "password_hash", "role", "status",
    "email_verified", "otp", "otp_expiry", "verified_at",
})

_CONSTRAINT_FIELDS = {
    "accounts_email_key": "email",
    "accounts_username_key": "username",
}


class AccountRepository(Protocol):
    """Credential Store contract."""

    async def find_by_email(self, email: str) -> dict | None: ...

    async def find_by_username(self, username: str) -> dict | None: ...

    async def find_by_id(self, account_id: UUID) -> dict | None: ...

    async def insert(self, **fields: Any) -> dict: ...

    async def update(self, account_id: UUID, **fields: Any) -> dict | None: ...

    async def delete(self, account_id: UUID) -> bool: ...

    async def list_by_filter(
        self,
        status: str | None = None,
        email_verified: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[dict], int]: ...


def conflict_for(field: str | None) -> ConflictError:
    """Builds the ConflictError reported for a duplicate email/username."""
    if field == "email":
        return ConflictError("Email already registered.", details={"field": "email"})
    if field == "username":
        return ConflictError("Username already taken.", details={"field": "username"})
    return ConflictError("Username or email already exists.")


def _check_columns(fields: dict[str, Any]) -> None:
    unknown = set(fields) - WRITABLE_COLUMNS
    if unknown:
        raise ValueError(f"Unknown account columns: {sorted(unknown)}")


class PostgresAccountRepository:
    """AccountRepository backed by the ``accounts`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    @asynccontextmanager
    async def _conn(self) -> AsyncIterator[asyncpg.Connection]:
        try:
            async with self._db.connection() as conn:
                yield conn
        except asyncpg.UniqueViolationError as exc:
            field = _CONSTRAINT_FIELDS.get(getattr(exc, "constraint_name", None) or "")
            logger.info("Account uniqueness violation on %s", field or "unknown constraint")
            raise conflict_for(field) from exc
        except asyncpg.PostgresError as exc:
            logger.error("Credential store error: %s", exc)
            raise InternalError("Credential store failure") from exc

    async def find_by_email(self, email: str) -> dict | None:
        """Find an account by email (exact, case-sensitive match)."""
        async with self._conn() as conn:
            row = await conn.fetchrow("SELECT * FROM accounts WHERE email = $1", email)
            return dict(row) if row else None

    async def find_by_username(self, username: str) -> dict | None:
        async with self._conn() as conn:
            row = await conn.fetchrow("SELECT * FROM accounts WHERE username = $1", username)
            return dict(row) if row else None

    async def find_by_id(self, account_id: UUID) -> dict | None:
        async with self._conn() as conn:
            row = await conn.fetchrow("SELECT * FROM accounts WHERE account_id = $1", account_id)
            return dict(row) if row else None

    async def insert(self, **fields: Any) -> dict:
        """Insert a new account and return the stored row."""
        _check_columns(fields)
        columns = list(fields)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        query = (
            f"INSERT INTO accounts ({', '.join(columns)}) "
            f"VALUES ({placeholders}) RETURNING *"
        )
        async with self._conn() as conn:
            row = await conn.fetchrow(query, *fields.values())
            return dict(row)

    async def update(self, account_id: UUID, **fields: Any) -> dict | None:
        """Set the given columns; returns the updated row or None if absent."""
        _check_columns(fields)
        if not fields:
            return await self.find_by_id(account_id)
        assignments = ", ".join(f"{col} = ${i}" for i, col in enumerate(fields, start=2))
        query = (
            f"UPDATE accounts SET {assignments}, updated_at = NOW() "
            "WHERE account_id = $1 RETURNING *"
        )
        async with self._conn() as conn:
            row = await conn.fetchrow(query, account_id, *fields.values())
            return dict(row) if row else None

    async def delete(self, account_id: UUID) -> bool:
        async with self._conn() as conn:
            result = await conn.execute("DELETE FROM accounts WHERE account_id = $1", account_id)
            # asyncpg returns the command tag, e.g. "DELETE 1"
            return result.split()[-1] != "0"

    async def list_by_filter(
        self,
        status: str | None = None,
        email_verified: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[dict], int]:
        """Accounts matching the predicates, newest first, with the total count."""
        clauses: list[str] = []
        args: list[Any] = []
        if status is not None:
            args.append(status)
            clauses.append(f"status = ${len(args)}")
        if email_verified is not None:
            args.append(email_verified)
            clauses.append(f"email_verified = ${len(args)}")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        async with self._conn() as conn:
            total = await conn.fetchval(f"SELECT COUNT(*) FROM accounts {where}", *args)
            rows = await conn.fetch(
                f"SELECT * FROM accounts {where} "
                f"ORDER BY created_at DESC LIMIT ${len(args) + 1} OFFSET ${len(args) + 2}",
                *args, limit, offset,
            )
            return [dict(r) for r in rows], int(total)
