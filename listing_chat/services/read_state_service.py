import logging
from datetime import datetime, timezone
from uuid import UUID

from listing_chat.repositories.conversation_repository import ConversationRepository
from listing_chat.repositories.message_repository import MessageRepository

from .events import MESSAGES_READ, ChatEventBus
from .exceptions import ConversationNotFoundError, NotAParticipantError
from .retry import store_retrying, unit_of_work

logger = logging.getLogger(__name__)


class ReadStateService:
    def __init__(
        self,
        conversation_repository: ConversationRepository,
        message_repository: MessageRepository,
        event_bus: ChatEventBus,
    ):
        self.conv_repo = conversation_repository
        self.msg_repo = message_repository
        self.event_bus = event_bus
        self.session = conversation_repository.session

    async def mark_read(self, conversation_id: UUID, reader_id: str) -> int:
        """
        Marks every message the reader received in the conversation as read.

        The reader's unread counter is reset in the same transaction, so the
        flags and the counter never disagree. Calling it twice is harmless; the
        second call transitions nothing. Returns the number of messages flipped.
        """
        reader_id = str(reader_id)
        async for attempt in store_retrying():
            with attempt:
                async with unit_of_work(self.session, "mark messages read"):
                    conversation = await self.conv_repo.get_conversation_by_id(
                        conversation_id, for_update=True
                    )
                    if conversation is None:
                        raise ConversationNotFoundError(
                            f"Conversation with id '{conversation_id}' not found."
                        )
                    if not conversation.has_participant(reader_id):
                        raise NotAParticipantError(
                            "Reader is not a participant in this conversation."
                        )
                    read_at = datetime.now(timezone.utc)
                    transitioned = await self.msg_repo.mark_read(
                        conversation_id, reader_id, read_at
                    )
                    await self.conv_repo.reset_unread_count(conversation, reader_id)

        if transitioned:
            logger.info(
                f"{transitioned} message(s) marked read by {reader_id} "
                f"in conversation {conversation_id}"
            )
            self.event_bus.publish(
                conversation_id,
                {
                    "type": MESSAGES_READ,
                    "conversation_id": str(conversation_id),
                    "reader_id": reader_id,
                    "read_at": read_at.isoformat(),
                    "count": transitioned,
                },
            )
        return transitioned
