from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

import asyncpg
import pytest

from bookapi.db.repositories.account_repo import PostgresAccountRepository
from bookapi.exceptions import ConflictError, InternalError


class FailingConnection:
    def __init__(self, error: Exception) -> None:
        self.error = error

    async def fetchrow(self, query, *args):
        raise self.error

    async def execute(self, query, *args):
        raise self.error


class StubDatabase:
    """Stands in for ``Database``; every query raises ``error``."""

    def __init__(self, error: Exception) -> None:
        self.conn = FailingConnection(error)

    @asynccontextmanager
    async def connection(self):
        yield self.conn


def _unique_violation(constraint: str | None) -> asyncpg.UniqueViolationError:
    exc = asyncpg.UniqueViolationError("duplicate key value violates unique constraint")
    exc.constraint_name = constraint
    return exc


@pytest.mark.asyncio
@pytest.mark.parametrize("constraint, field", [
    ("accounts_username_key", "username"),
    ("accounts_email_key", "email"),
])
async def test_unique_violation_becomes_conflict(constraint, field):
    repo = PostgresAccountRepository(StubDatabase(_unique_violation(constraint)))

    with pytest.raises(ConflictError) as exc_info:
        await repo.insert(username="alice", email="a@x.com", password_hash="h")

    assert exc_info.value.details == {"field": field}
    assert isinstance(exc_info.value.__cause__, asyncpg.UniqueViolationError)


@pytest.mark.asyncio
async def test_unknown_constraint_is_generic_conflict():
    repo = PostgresAccountRepository(StubDatabase(_unique_violation(None)))

    with pytest.raises(ConflictError) as exc_info:
        await repo.update(uuid4(), username="alice")

    assert exc_info.value.details == {}


@pytest.mark.asyncio
async def test_other_driver_errors_become_internal():
    repo = PostgresAccountRepository(StubDatabase(asyncpg.PostgresError("connection reset")))

    with pytest.raises(InternalError):
        await repo.find_by_email("a@x.com")
    with pytest.raises(InternalError):
        await repo.delete(uuid4())


@pytest.mark.asyncio
async def test_unknown_columns_are_refused_before_querying():
    repo = PostgresAccountRepository(StubDatabase(asyncpg.PostgresError("unreachable")))

    with pytest.raises(ValueError):
        await repo.insert(username="alice", is_superuser=True)
