import uuid

from fastapi_users.db import SQLAlchemyBaseUserTable
from sqlalchemy import Column, Integer, Text

from listing_chat.schemas.conversation import ChatIdentity

from .base import BaseModel


# User model inherits from BaseModel and SQLAlchemyBaseUserTable
# Note: SQLAlchemyBaseUserTable requires a specific type for the ID. Uuid works.
class User(SQLAlchemyBaseUserTable[uuid.UUID], BaseModel):
    __tablename__ = "users"

    # id, created_at, updated_at, deleted_at are inherited from BaseModel
    # email, hashed_password, is_active, is_superuser, is_verified are from SQLAlchemyBaseUserTable

    username = Column(
        Text,
        unique=True,
        nullable=False,
        default=lambda: f"user_{uuid.uuid4()}",
    )
    # Set for dealership staff; such users also act as that dealership in chats
    dealership_id = Column(Integer, nullable=True, index=True)

    def chat_identity(self) -> ChatIdentity:
        return ChatIdentity(
            user_id=str(self.id),
            dealership_id=(
                str(self.dealership_id) if self.dealership_id is not None else None
            ),
        )
