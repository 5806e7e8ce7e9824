import logging

from fastapi import APIRouter, Depends, Form, Query

from newsletter.api.errors import to_http_exception
from newsletter.errors import RegistryError
from newsletter.schemas.subscription import SubscriptionRead
from newsletter.services.registry import SubscriptionRegistry, get_registry
from newsletter.utils.redaction import redact_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.post("", response_model=SubscriptionRead)
async def subscribe(
    email: str = Form(default=""),
    name: str = Form(default=""),
    registry: SubscriptionRegistry = Depends(get_registry),
):
    """Subscribe to the newsletter from a url-encoded form. No authentication required."""
    try:
        subscription = await registry.subscribe(email=email, name=name)
    except RegistryError as e:
        logger.warning(f"Subscribe request for {redact_email(email)} rejected: {e.code}")
        raise to_http_exception(e)
    return subscription


@router.get("", response_model=SubscriptionRead)
async def lookup(
    email: str = Query(...),
    registry: SubscriptionRegistry = Depends(get_registry),
):
    """Return the subscription for an email address."""
    try:
        return await registry.lookup(email)
    except RegistryError as e:
        raise to_http_exception(e)
