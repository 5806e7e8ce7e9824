from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class SubscriptionRead(BaseModel):
    id: UUID
    email: str
    name: str
    subscribed_at: datetime

    model_config = {"from_attributes": True}
