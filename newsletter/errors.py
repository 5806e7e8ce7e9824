"""Registry error taxonomy.

Every failure the registry reports derives from ``RegistryError`` and carries
a stable machine-readable ``code``. Callers branch on the exception type; the
HTTP layer maps types to status codes in ``newsletter.api.errors``.
"""

from typing import Optional


class RegistryError(Exception):
    """Base class for all subscription registry failures."""

    code = "registry_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(RegistryError):
    """Caller-supplied data failed required-field validation. Nothing was written."""

    code = "invalid_input"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class DuplicateEmail(RegistryError):
    """The email is already subscribed."""

    code = "duplicate_email"

    def __init__(self, email: str):
        super().__init__("This email address is already subscribed")
        self.email = email


class SubscriptionNotFound(RegistryError):
    code = "not_found"

    def __init__(self, email: str):
        super().__init__("No subscription exists for this email address")
        self.email = email


class StorageUnavailable(RegistryError):
    """The database could not complete the operation (connection, pool or timeout)."""

    code = "storage_unavailable"

    def __init__(self, message: str = "Subscription storage is unavailable", transient: bool = True):
        super().__init__(message)
        self.transient = transient
