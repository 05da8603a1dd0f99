from sqlalchemy import CheckConstraint, Column, Integer, Text
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.orm import relationship

from listing_chat.schemas.context import ListingKind, ListingRef
from listing_chat.schemas.conversation import ConversationKind

from .base import BaseModel, UTCDateTime


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Conversation(BaseModel):
    __tablename__ = "conversations"

    # id, created_at, updated_at, deleted_at are inherited from BaseModel
    kind = Column(
        SQLAlchemyEnum(ConversationKind, values_callable=_enum_values),
        nullable=False,
    )
    # participant_a is always the initiating user; participant_b is a
    # dealership id (user_dealer) or the seller's user id (user_user)
    participant_a = Column(Text, nullable=False, index=True)
    participant_b = Column(Text, nullable=False, index=True)
    listing_kind = Column(
        SQLAlchemyEnum(ListingKind, values_callable=_enum_values),
        nullable=True,
    )
    listing_id = Column(Integer, nullable=True)
    dedup_key = Column(Text, unique=True, nullable=False)

    last_message_at = Column(UTCDateTime(), nullable=True)
    last_message_preview = Column(Text, nullable=True)
    unread_count_a = Column(Integer, nullable=False, default=0, server_default="0")
    unread_count_b = Column(Integer, nullable=False, default=0, server_default="0")

    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "(listing_kind IS NULL) = (listing_id IS NULL)",
            name="ck_conversation_listing_ref_complete",
        ),
        CheckConstraint(
            "unread_count_a >= 0 AND unread_count_b >= 0",
            name="ck_conversation_unread_non_negative",
        ),
    )

    @property
    def listing_ref(self) -> ListingRef | None:
        if self.listing_kind is None or self.listing_id is None:
            return None
        return ListingRef(kind=self.listing_kind, id=self.listing_id)

    def has_participant(self, participant_id: str) -> bool:
        return participant_id in (self.participant_a, self.participant_b)

    def other_participant(self, participant_id: str) -> str:
        return (
            self.participant_b
            if participant_id == self.participant_a
            else self.participant_a
        )

    def __repr__(self) -> str:
        return f"<Conversation {self.id} kind={self.kind}>"
