from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Index, Text
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql.expression import false
from sqlalchemy.types import Uuid

from listing_chat.schemas.message import SenderRole

from .base import BaseModel, UTCDateTime


class Message(BaseModel):
    __tablename__ = "messages"

    # id, created_at are inherited from BaseModel
    # Messages are append-only: only is_read/read_at change after insert
    conversation_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id = Column(Text, nullable=False)
    sender_role = Column(
        SQLAlchemyEnum(SenderRole, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    body = Column(Text, nullable=True)
    media_url = Column(Text, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False, server_default=false())
    read_at = Column(UTCDateTime(), nullable=True)

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        CheckConstraint(
            "body IS NOT NULL OR media_url IS NOT NULL",
            name="ck_message_has_content",
        ),
        Index("ix_messages_conversation_order", "conversation_id", "created_at", "id"),
    )
