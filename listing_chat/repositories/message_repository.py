import uuid
from datetime import datetime

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from listing_chat.models import Message
from listing_chat.schemas.message import SenderRole

from .base import BaseRepository


class MessageRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def create_message(
        self,
        conversation_id: uuid.UUID,
        sender_id: str,
        sender_role: SenderRole,
        body: str | None,
        media_url: str | None,
        created_at: datetime,
    ) -> Message:
        """Creates and adds a new message to the session."""
        new_message = Message(
            id=uuid.uuid4(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            sender_role=sender_role,
            body=body,
            media_url=media_url,
            is_read=False,
            created_at=created_at,
        )
        self.session.add(new_message)
        await self.session.flush()
        await self.session.refresh(new_message)
        return new_message

    async def list_after(
        self,
        conversation_id: uuid.UUID,
        position: tuple[datetime, uuid.UUID] | None,
        limit: int,
    ) -> list[Message]:
        """Up to `limit` messages strictly after `position`, ascending by (created_at, id)."""
        stmt = select(Message).where(Message.conversation_id == conversation_id)
        if position is not None:
            created_at, message_id = position
            stmt = stmt.where(
                or_(
                    Message.created_at > created_at,
                    and_(Message.created_at == created_at, Message.id > message_id),
                )
            )
        stmt = stmt.order_by(Message.created_at.asc(), Message.id.asc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_before(
        self,
        conversation_id: uuid.UUID,
        position: tuple[datetime, uuid.UUID] | None,
        limit: int,
    ) -> list[Message]:
        """Up to `limit` messages strictly before `position`, returned ascending."""
        stmt = select(Message).where(Message.conversation_id == conversation_id)
        if position is not None:
            created_at, message_id = position
            stmt = stmt.where(
                or_(
                    Message.created_at < created_at,
                    and_(Message.created_at == created_at, Message.id < message_id),
                )
            )
        stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        messages = list(result.scalars().all())
        messages.reverse()
        return messages

    async def mark_read(
        self, conversation_id: uuid.UUID, reader_id: str, read_at: datetime
    ) -> int:
        """Flags every unread message not sent by the reader. Returns the number changed."""
        stmt = (
            update(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.sender_id != reader_id,
                Message.is_read.is_(False),
            )
            .values(is_read=True, read_at=read_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0
