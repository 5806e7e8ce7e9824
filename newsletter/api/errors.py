"""Maps registry errors to HTTPException responses."""

from typing import Any

from fastapi import HTTPException, status

from newsletter.errors import (
    DuplicateEmail,
    InvalidInput,
    RegistryError,
    StorageUnavailable,
    SubscriptionNotFound,
)

REGISTRY_ERROR_STATUS_MAP: dict[type[RegistryError], int] = {
    InvalidInput: status.HTTP_400_BAD_REQUEST,
    DuplicateEmail: status.HTTP_409_CONFLICT,
    SubscriptionNotFound: status.HTTP_404_NOT_FOUND,
    StorageUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(error: RegistryError) -> HTTPException:
    """Map a registry error to an HTTPException.

    Only the error's code and its public message reach the client; the
    underlying database error stays in the logs.
    """
    detail: dict[str, Any] = {
        "code": error.code,
        "message": error.message,
    }
    if isinstance(error, InvalidInput) and error.field is not None:
        detail["field"] = error.field

    status_code = REGISTRY_ERROR_STATUS_MAP.get(type(error), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(status_code=status_code, detail=detail)
