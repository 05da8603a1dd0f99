from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from listing_chat.db import get_db_session

from .conversation_repository import ConversationRepository
from .listing_repository import ListingRepository
from .message_repository import MessageRepository


def get_conversation_repository(
    session: AsyncSession = Depends(get_db_session),
) -> ConversationRepository:
    return ConversationRepository(session)


def get_message_repository(
    session: AsyncSession = Depends(get_db_session),
) -> MessageRepository:
    """Dependency provider for MessageRepository."""
    return MessageRepository(session)


def get_listing_repository(
    session: AsyncSession = Depends(get_db_session),
) -> ListingRepository:
    """Dependency provider for ListingRepository."""
    return ListingRepository(session)

