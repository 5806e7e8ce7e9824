"""Infrastructure failures surface as StorageUnavailable without leaking partial writes."""
import asyncio
import sqlite3
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, ProgrammingError

from newsletter.errors import DuplicateEmail, StorageUnavailable
from newsletter.services.registry import SubscriptionRegistry


def _session_maker_failing_with(error):
    """Session maker whose sessions fail on entry, like an unreachable database."""
    mock_session = AsyncMock()
    mock_session.__aenter__.side_effect = error
    return MagicMock(return_value=mock_session)


def _postgres_integrity_error(constraint_name: str) -> IntegrityError:
    """IntegrityError shaped like the asyncpg dialect raises it.

    The adapted DBAPI error carries only a message; the asyncpg
    UniqueViolationError with ``constraint_name`` is its ``__cause__``.
    """
    violation = Exception(f'duplicate key value violates unique constraint "{constraint_name}"')
    violation.constraint_name = constraint_name
    adapted = Exception(f"<class 'asyncpg.exceptions.UniqueViolationError'>: {violation}")
    adapted.__cause__ = violation
    return IntegrityError("INSERT INTO subscriptions ...", {}, adapted)


def _sqlite_integrity_error(detail: str) -> IntegrityError:
    return IntegrityError("INSERT INTO subscriptions ...", {}, sqlite3.IntegrityError(detail))


def _server_cancelled(sqlstate: str) -> DBAPIError:
    orig = Exception("canceling statement due to statement timeout")
    orig.sqlstate = sqlstate
    return DBAPIError("INSERT INTO subscriptions ...", {}, orig)


@pytest.mark.asyncio
async def test_connection_failure_on_subscribe_is_storage_unavailable():
    error = OperationalError("SELECT 1", {}, Exception("connection refused"))
    registry = SubscriptionRegistry(session_maker=_session_maker_failing_with(error))

    with pytest.raises(StorageUnavailable) as exc_info:
        await registry.subscribe("alice@example.com", "Alice")

    assert exc_info.value.code == "storage_unavailable"
    assert exc_info.value.transient is True
    assert "connection refused" not in exc_info.value.message


@pytest.mark.asyncio
async def test_connection_failure_on_lookup_is_storage_unavailable():
    registry = SubscriptionRegistry(
        session_maker=_session_maker_failing_with(ConnectionRefusedError("refused")),
    )

    with pytest.raises(StorageUnavailable):
        await registry.lookup("alice@example.com")


@pytest.mark.asyncio
async def test_non_transient_database_error_is_marked_fatal():
    error = ProgrammingError("INSERT", {}, Exception('relation "subscriptions" does not exist'))
    registry = SubscriptionRegistry(session_maker=_session_maker_failing_with(error))

    with pytest.raises(StorageUnavailable) as exc_info:
        await registry.subscribe("alice@example.com", "Alice")

    assert exc_info.value.transient is False


@pytest.mark.asyncio
async def test_driver_connect_timeout_is_storage_unavailable():
    # asyncpg raises asyncio.TimeoutError when the connect timeout expires
    registry = SubscriptionRegistry(session_maker=_session_maker_failing_with(asyncio.TimeoutError()))

    with pytest.raises(StorageUnavailable) as exc_info:
        await registry.subscribe("alice@example.com", "Alice")

    assert "did not respond in time" in exc_info.value.message
    assert exc_info.value.transient is True


@pytest.mark.asyncio
@pytest.mark.parametrize("sqlstate", ["57014", "55P03"])
async def test_statement_cancelled_by_server_is_reported_as_timeout(sqlstate):
    registry = SubscriptionRegistry(session_maker=MagicMock())

    with patch.object(SubscriptionRegistry, "_insert", AsyncMock(side_effect=_server_cancelled(sqlstate))):
        with pytest.raises(StorageUnavailable) as exc_info:
            await registry.subscribe("alice@example.com", "Alice")

    assert "did not respond in time" in exc_info.value.message


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    _postgres_integrity_error("subscriptions_email_key"),
    _sqlite_integrity_error("UNIQUE constraint failed: subscriptions.email"),
])
async def test_email_constraint_violation_is_duplicate_email(error):
    registry = SubscriptionRegistry(session_maker=MagicMock())

    with patch.object(SubscriptionRegistry, "_insert", AsyncMock(side_effect=error)):
        with pytest.raises(DuplicateEmail) as exc_info:
            await registry.subscribe("alice@example.com", "Alice")

    assert exc_info.value.email == "alice@example.com"


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    _postgres_integrity_error("subscriptions_pkey"),
    _sqlite_integrity_error("UNIQUE constraint failed: subscriptions.id"),
    _sqlite_integrity_error("NOT NULL constraint failed: subscriptions.name"),
])
async def test_other_integrity_errors_are_not_reported_as_duplicates(error):
    registry = SubscriptionRegistry(session_maker=MagicMock())

    with patch.object(SubscriptionRegistry, "_insert", AsyncMock(side_effect=error)):
        with pytest.raises(StorageUnavailable) as exc_info:
            await registry.subscribe("alice@example.com", "Alice")

    assert exc_info.value.transient is False


@pytest.mark.asyncio
async def test_postgres_message_naming_email_constraint_is_not_enough():
    """Only the driver's constraint name identifies the violated constraint."""
    error = _postgres_integrity_error("subscriptions_pkey")
    error.orig.args = ('duplicate key value violates unique constraint "subscriptions_email_key"',)
    registry = SubscriptionRegistry(session_maker=MagicMock())

    with patch.object(SubscriptionRegistry, "_insert", AsyncMock(side_effect=error)):
        with pytest.raises(StorageUnavailable):
            await registry.subscribe("alice@example.com", "Alice")
