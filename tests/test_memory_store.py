from __future__ import annotations

from uuid import uuid4

import pytest

from bookapi.exceptions import ConflictError
from bookapi.memory_store import InMemoryAccountRepository


def _fields(**overrides):
    base = dict(username="alice", email="a@x.com", password_hash="h")
    base.update(overrides)
    return base


@pytest.mark.asyncio
async def test_insert_applies_defaults() -> None:
    store = InMemoryAccountRepository()
    row = await store.insert(**_fields())

    assert row["role"] == "user"
    assert row["status"] == "pending"
    assert row["email_verified"] is False
    assert row["created_at"] is not None


@pytest.mark.asyncio
async def test_unique_email_and_username() -> None:
    store = InMemoryAccountRepository()
    await store.insert(**_fields())

    with pytest.raises(ConflictError):
        await store.insert(**_fields(username="other"))
    with pytest.raises(ConflictError):
        await store.insert(**_fields(email="other@x.com"))


@pytest.mark.asyncio
async def test_email_lookup_is_case_sensitive() -> None:
    store = InMemoryAccountRepository()
    await store.insert(**_fields())
    assert await store.find_by_email("A@x.com") is None


@pytest.mark.asyncio
async def test_update_checks_uniqueness_against_other_rows() -> None:
    store = InMemoryAccountRepository()
    first = await store.insert(**_fields())
    await store.insert(**_fields(username="bob", email="b@x.com"))

    with pytest.raises(ConflictError):
        await store.update(first["account_id"], email="b@x.com")
    updated = await store.update(first["account_id"], email="a@x.com", status="approved")
    assert updated["status"] == "approved"
    assert await store.update(uuid4(), status="approved") is None


@pytest.mark.asyncio
async def test_rows_are_copies() -> None:
    store = InMemoryAccountRepository()
    row = await store.insert(**_fields())
    row["status"] = "approved"
    assert (await store.find_by_id(row["account_id"]))["status"] == "pending"


@pytest.mark.asyncio
async def test_unknown_columns_are_refused() -> None:
    store = InMemoryAccountRepository()
    with pytest.raises(ValueError):
        await store.insert(**_fields(is_superuser=True))


@pytest.mark.asyncio
async def test_list_by_filter_and_delete() -> None:
    store = InMemoryAccountRepository()
    a = await store.insert(**_fields())
    await store.insert(**_fields(username="bob", email="b@x.com", email_verified=True))
    await store.insert(**_fields(username="cy", email="c@x.com", email_verified=True, status="approved"))

    rows, total = await store.list_by_filter(status="pending")
    assert total == 2
    rows, total = await store.list_by_filter(status="pending", email_verified=True)
    assert [r["username"] for r in rows] == ["bob"]
    rows, total = await store.list_by_filter(limit=1, offset=0)
    assert len(rows) == 1 and total == 3

    assert await store.delete(a["account_id"]) is True
    assert await store.delete(a["account_id"]) is False
    assert len(store) == 2
