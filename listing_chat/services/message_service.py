import base64
import binascii
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

from listing_chat.core.config import settings
from listing_chat.models import Conversation, Message
from listing_chat.repositories.conversation_repository import ConversationRepository
from listing_chat.repositories.message_repository import MessageRepository
from listing_chat.schemas.conversation import ConversationKind
from listing_chat.schemas.message import MessageResponse, SenderRole

from .events import (
    MESSAGE_CREATED,
    ChatEventBus,
    NewMessageNotification,
    NotificationDispatcher,
)
from .exceptions import (
    ConversationNotFoundError,
    EmptyMessageError,
    InvalidCursorError,
    NotAParticipantError,
)
from .retry import store_retrying, unit_of_work

logger = logging.getLogger(__name__)

ATTACHMENT_PREVIEW = "Sent an attachment"
_FORWARD = "after"
_BACKWARD = "before"


@dataclass
class MessagePage:
    items: list[Message]
    next_cursor: str | None
    previous_cursor: str | None
    has_more: bool


def encode_cursor(message: Message, direction: str) -> str:
    payload = {
        "d": direction,
        "t": message.created_at.astimezone(timezone.utc).isoformat(),
        "i": message.id.hex,
    }
    raw = json.dumps(payload, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[str, tuple[datetime, UUID]]:
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode()))
        direction = payload["d"]
        created_at = datetime.fromisoformat(payload["t"])
        message_id = UUID(hex=payload["i"])
    except (binascii.Error, ValueError, KeyError, TypeError) as e:
        raise InvalidCursorError() from e
    if direction not in (_FORWARD, _BACKWARD) or created_at.tzinfo is None:
        raise InvalidCursorError()
    return direction, (created_at, message_id)


def build_preview(body: str | None, media_url: str | None) -> str | None:
    text = body.strip() if body else ""
    if not text:
        return ATTACHMENT_PREVIEW if media_url else None
    limit = settings.MESSAGE_PREVIEW_MAX_LENGTH
    if len(text) > limit:
        return f"{text[: limit - 3]}..."
    return text


def sender_role_for(conversation: Conversation, sender_id: str) -> SenderRole:
    if sender_id == conversation.participant_a:
        return SenderRole.USER
    if conversation.kind == ConversationKind.USER_DEALER:
        return SenderRole.DEALER
    return SenderRole.SELLER_USER


def clamp_page_size(limit: int | None) -> int:
    if limit is None:
        return settings.MESSAGE_PAGE_SIZE
    return max(1, min(limit, settings.MESSAGE_PAGE_MAX_SIZE))


class MessageService:
    def __init__(
        self,
        conversation_repository: ConversationRepository,
        message_repository: MessageRepository,
        event_bus: ChatEventBus,
        notifier: NotificationDispatcher,
    ):
        self.conv_repo = conversation_repository
        self.msg_repo = message_repository
        self.event_bus = event_bus
        self.notifier = notifier
        self.session = conversation_repository.session

    async def append(
        self,
        conversation_id: UUID,
        sender_id: str,
        body: str | None = None,
        media_url: str | None = None,
    ) -> Message:
        """
        Appends a message and updates the conversation summary in one transaction.

        The recipient's unread counter goes up by one; the sender's is untouched.
        Realtime and push notifications go out only after the commit.
        """
        body = body if body and body.strip() else None
        media_url = media_url.strip() if media_url and media_url.strip() else None
        if body is None and media_url is None:
            raise EmptyMessageError()

        async for attempt in store_retrying():
            with attempt:
                message, recipient_id, preview = await self._append_once(
                    conversation_id, str(sender_id), body, media_url
                )

        logger.info(f"Message {message.id} appended to conversation {conversation_id}")
        self.event_bus.publish(
            conversation_id,
            {
                "type": MESSAGE_CREATED,
                "message": MessageResponse.model_validate(message).model_dump(mode="json"),
            },
        )
        await self.notifier.dispatch(
            NewMessageNotification(
                conversation_id=conversation_id,
                recipient_id=recipient_id,
                preview=preview,
            )
        )
        return message

    async def _append_once(
        self,
        conversation_id: UUID,
        sender_id: str,
        body: str | None,
        media_url: str | None,
    ) -> tuple[Message, str, str | None]:
        async with unit_of_work(self.session, "send message"):
            conversation = await self.conv_repo.get_conversation_by_id(
                conversation_id, for_update=True
            )
            if conversation is None:
                raise ConversationNotFoundError(
                    f"Conversation with id '{conversation_id}' not found."
                )
            if not conversation.has_participant(sender_id):
                raise NotAParticipantError(
                    "Sender is not a participant in this conversation."
                )

            # Keep created_at strictly increasing within the conversation
            created_at = datetime.now(timezone.utc)
            last_at = conversation.last_message_at
            if last_at is not None and created_at <= last_at:
                created_at = last_at + timedelta(microseconds=1)

            preview = build_preview(body, media_url)
            message = await self.msg_repo.create_message(
                conversation_id=conversation.id,
                sender_id=sender_id,
                sender_role=sender_role_for(conversation, sender_id),
                body=body,
                media_url=media_url,
                created_at=created_at,
            )
            await self.conv_repo.record_new_message(
                conversation,
                sender_id=sender_id,
                message_at=created_at,
                preview=preview,
            )
            recipient_id = conversation.other_participant(sender_id)
        return message, recipient_id, preview

    async def list_messages(
        self,
        conversation_id: UUID,
        *,
        limit: int | None = None,
        cursor: str | None = None,
        latest: bool = False,
    ) -> MessagePage:
        """
        Returns one page of messages in ascending (created_at, id) order.

        Without a cursor the page starts at the oldest message, or ends at the
        newest one when ``latest`` is set. Cursors mark a position rather than
        an offset, so appends never shift a page.
        """
        page_size = clamp_page_size(limit)
        direction, position = (
            decode_cursor(cursor)
            if cursor
            else (_BACKWARD if latest else _FORWARD, None)
        )

        async for attempt in store_retrying():
            with attempt:
                async with unit_of_work(self.session, "list messages"):
                    conversation = await self.conv_repo.get_conversation_by_id(
                        conversation_id
                    )
                    if conversation is None:
                        raise ConversationNotFoundError(
                            f"Conversation with id '{conversation_id}' not found."
                        )
                    # Fetch one extra row to learn whether more remain
                    if direction == _FORWARD:
                        rows = await self.msg_repo.list_after(
                            conversation_id, position, page_size + 1
                        )
                        has_more = len(rows) > page_size
                        items = rows[:page_size]
                    else:
                        rows = await self.msg_repo.list_before(
                            conversation_id, position, page_size + 1
                        )
                        has_more = len(rows) > page_size
                        items = rows[-page_size:] if has_more else rows

        if items:
            next_cursor = encode_cursor(items[-1], _FORWARD)
            previous_cursor = encode_cursor(items[0], _BACKWARD)
        elif direction == _FORWARD and cursor:
            # Nothing newer yet; the same cursor picks up later appends
            next_cursor, previous_cursor = cursor, None
        else:
            next_cursor = previous_cursor = None
        return MessagePage(
            items=items,
            next_cursor=next_cursor,
            previous_cursor=previous_cursor,
            has_more=has_more,
        )
