"""Unit tests for SqlStore error handling."""

import uuid

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import DatabaseError
from app.repositories.sql_store import SqlStore, _as_uuid


class BrokenSession:
    async def __aenter__(self):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    async def __aexit__(self, exc_type, exc, tb):
        return False


@pytest.mark.asyncio
async def test_sqlalchemy_errors_become_database_errors():
    store = SqlStore(lambda: BrokenSession())

    with pytest.raises(DatabaseError, match="list_active_rules") as exc_info:
        await store.list_active_rules()

    assert isinstance(exc_info.value.original_error, OperationalError)


def test_record_ids_are_parsed_as_uuids():
    value = uuid.uuid4()

    assert _as_uuid(str(value)) == value
    with pytest.raises(DatabaseError, match="Invalid record id"):
        _as_uuid("not-a-uuid")
