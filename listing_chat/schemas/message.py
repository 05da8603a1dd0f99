import enum
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class SenderRole(str, enum.Enum):
    USER = "user"
    DEALER = "dealer"
    SELLER_USER = "seller_user"


class MessageCreateRequest(BaseModel):
    body: str | None = None
    media_url: str | None = None


# Basic schema for representing a message
class MessageResponse(BaseModel):
    id: uuid.UUID
    conversation_id: uuid.UUID
    sender_id: str
    sender_role: SenderRole
    body: str | None = None
    media_url: str | None = None
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MessagePageResponse(BaseModel):
    items: list[MessageResponse]
    next_cursor: str | None = None
    previous_cursor: str | None = None
    has_more: bool


class MarkReadResponse(BaseModel):
    conversation_id: uuid.UUID
    transitioned: int
