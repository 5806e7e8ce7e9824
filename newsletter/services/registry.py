"""Subscription registry.

The registry is stateless: it owns a session factory and nothing else. Email
uniqueness is enforced by the ``subscriptions_email_key`` unique constraint
in the database, so the insert is the uniqueness check and there is no
read-before-write. Any number of registries may write to the same database
concurrently.

Waits are bounded by the database (see ``newsletter.database``), never by a
client-side deadline, so a reported failure always means nothing was written.
"""
import asyncio
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsletter.database import get_session_maker
from newsletter.errors import DuplicateEmail, InvalidInput, StorageUnavailable, SubscriptionNotFound
from newsletter.models.subscription import EMAIL_UNIQUE_CONSTRAINT, Subscription
from newsletter.utils.redaction import redact_email

logger = logging.getLogger(__name__)

# SQLite names the column instead of the constraint
_SQLITE_EMAIL_VIOLATION = "UNIQUE constraint failed: subscriptions.email"

# lock_not_available, query_canceled (statement_timeout)
_POSTGRES_TIMEOUT_SQLSTATES = {"55P03", "57014"}


def _require(field: str, value: Optional[str]) -> str:
    if value is None or not value.strip():
        raise InvalidInput(f"{field} must not be empty", field=field)
    return value


def _is_duplicate_email(error: IntegrityError) -> bool:
    if isinstance(error.orig, sqlite3.IntegrityError):
        return str(error.orig) == _SQLITE_EMAIL_VIOLATION
    # asyncpg's UniqueViolationError is chained behind SQLAlchemy's adapted error
    constraint = getattr(error.orig.__cause__, "constraint_name", None)
    return constraint == EMAIL_UNIQUE_CONSTRAINT


def _is_timeout(error: BaseException) -> bool:
    if isinstance(error, (asyncio.TimeoutError, PoolTimeoutError)):
        return True
    return isinstance(error, DBAPIError) and getattr(error.orig, "sqlstate", None) in _POSTGRES_TIMEOUT_SQLSTATES


def _storage_unavailable(operation: str, error: BaseException) -> StorageUnavailable:
    """Log an infrastructure failure and wrap it for the caller."""
    if _is_timeout(error):
        logger.error(f"Registry {operation} timed out: {type(error).__name__}: {error}")
        return StorageUnavailable(f"Subscription storage did not respond in time ({operation})")

    transient = isinstance(
        error, (OperationalError, InterfaceError, ConnectionError, OSError)
    ) or (isinstance(error, DBAPIError) and error.connection_invalidated)
    logger.error(
        f"Registry {operation} failed: {type(error).__name__}: {error}",
        exc_info=True,
    )
    return StorageUnavailable(transient=transient)


class SubscriptionRegistry:
    """Creates and reads subscription records.

    Args:
        session_maker: Factory for database sessions. Defaults to the
            application-wide session maker.
    """

    def __init__(self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_maker = session_maker or get_session_maker()

    async def subscribe(self, email: str, name: str) -> Subscription:
        """Persist a new subscription for ``email``.

        Raises:
            InvalidInput: email or name is empty.
            DuplicateEmail: a subscription for this email already exists.
            StorageUnavailable: the database could not complete the write.
        """
        _require("email", email)
        _require("name", name)

        subscription = Subscription(
            id=uuid.uuid4(),
            email=email,
            name=name,
            subscribed_at=datetime.now(timezone.utc),
        )
        logger.info(f"Adding a new subscriber {redact_email(email)}")

        try:
            await self._insert(subscription)
        except IntegrityError as e:
            if _is_duplicate_email(e):
                logger.info(f"Subscription rejected, {redact_email(email)} is already subscribed")
                raise DuplicateEmail(email) from e
            raise _storage_unavailable("subscribe", e) from e
        except (asyncio.TimeoutError, SQLAlchemyError, ConnectionError, OSError) as e:
            raise _storage_unavailable("subscribe", e) from e

        logger.info(f"Saved subscription {subscription.id} for {redact_email(email)}")
        return subscription

    async def lookup(self, email: str) -> Subscription:
        """Return the committed subscription for ``email``.

        Raises:
            SubscriptionNotFound: no subscription has this email.
            StorageUnavailable: the database could not complete the read.
        """
        try:
            subscription = await self._find(email)
        except (asyncio.TimeoutError, SQLAlchemyError, ConnectionError, OSError) as e:
            raise _storage_unavailable("lookup", e) from e

        if subscription is None:
            raise SubscriptionNotFound(email)
        return subscription

    async def _insert(self, subscription: Subscription) -> None:
        # Commits on exit, rolls back if the constraint fires
        async with self._session_maker() as session:
            async with session.begin():
                session.add(subscription)

    async def _find(self, email: str) -> Optional[Subscription]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(Subscription).where(Subscription.email == email)
            )
            return result.scalars().first()


def get_registry() -> SubscriptionRegistry:
    """FastAPI dependency returning a registry bound to the shared session maker."""
    return SubscriptionRegistry()
