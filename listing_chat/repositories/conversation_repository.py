from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from listing_chat.models import Conversation
from listing_chat.schemas.context import ListingRef
from listing_chat.schemas.conversation import ChatIdentity, ConversationKind

from .base import BaseRepository

_NO_LISTING = "-"


def build_dedup_key(
    kind: ConversationKind,
    participant_a: str,
    participant_b: str,
    listing_ref: ListingRef | None,
) -> str:
    """Canonical text form of (kind, participant_a, participant_b, listing_ref).

    A plain UNIQUE over the nullable listing columns would let NULLs repeat,
    so the whole tuple is rendered into one non-null column instead.
    """
    if listing_ref is None:
        listing_part = f"{_NO_LISTING}:{_NO_LISTING}"
    else:
        listing_part = f"{listing_ref.kind.value}:{listing_ref.id}"
    return f"{kind.value}|{participant_a}|{participant_b}|{listing_part}"


class ConversationRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_conversation_by_id(
        self, conversation_id: UUID, *, for_update: bool = False
    ) -> Conversation | None:
        """Retrieves a conversation by ID, optionally locking its row."""
        stmt = select(Conversation).filter(Conversation.id == conversation_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_conversation_by_dedup_key(self, dedup_key: str) -> Conversation | None:
        stmt = select(Conversation).filter(Conversation.dedup_key == dedup_key)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def add_conversation(
        self,
        kind: ConversationKind,
        participant_a: str,
        participant_b: str,
        listing_ref: ListingRef | None,
    ) -> Conversation:
        """Adds a new conversation and flushes it. Raises IntegrityError on a duplicate key."""
        conversation = Conversation(
            kind=kind,
            participant_a=participant_a,
            participant_b=participant_b,
            listing_kind=listing_ref.kind if listing_ref else None,
            listing_id=listing_ref.id if listing_ref else None,
            dedup_key=build_dedup_key(kind, participant_a, participant_b, listing_ref),
            unread_count_a=0,
            unread_count_b=0,
        )
        self.session.add(conversation)
        await self.session.flush()
        await self.session.refresh(conversation)
        return conversation

    async def list_conversations_for_identity(
        self, identity: ChatIdentity
    ) -> Sequence[Conversation]:
        """Lists conversations where the caller holds a slot, newest activity first."""
        slots = [
            Conversation.participant_a == identity.user_id,
            and_(
                Conversation.kind == ConversationKind.USER_USER,
                Conversation.participant_b == identity.user_id,
            ),
        ]
        if identity.dealership_id is not None:
            slots.append(
                and_(
                    Conversation.kind == ConversationKind.USER_DEALER,
                    Conversation.participant_b == identity.dealership_id,
                )
            )
        stmt = (
            select(Conversation)
            .filter(
                or_(*slots),
                Conversation.deleted_at.is_(None),
            )
            .order_by(
                Conversation.last_message_at.desc().nullslast(),
                Conversation.updated_at.desc(),
            )
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def record_new_message(
        self,
        conversation: Conversation,
        *,
        sender_id: str,
        message_at: datetime,
        preview: str | None,
    ) -> None:
        """Updates the summary columns and bumps the recipient's unread counter in SQL."""
        values = {
            "last_message_at": message_at,
            "last_message_preview": preview,
        }
        if sender_id == conversation.participant_a:
            values["unread_count_b"] = Conversation.unread_count_b + 1
        else:
            values["unread_count_a"] = Conversation.unread_count_a + 1

        stmt = (
            update(Conversation)
            .where(Conversation.id == conversation.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        await self.session.refresh(conversation)

    async def reset_unread_count(
        self, conversation: Conversation, reader_id: str
    ) -> None:
        column = (
            "unread_count_a"
            if reader_id == conversation.participant_a
            else "unread_count_b"
        )
        stmt = (
            update(Conversation)
            .where(Conversation.id == conversation.id)
            .values({column: 0})
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        await self.session.refresh(conversation)
