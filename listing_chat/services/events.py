"""
In-process fan-out for chat activity.

``ChatEventBus`` carries realtime events for one conversation to every
connected subscriber (the WebSocket endpoint is the only consumer today).
``NotificationDispatcher`` hands new-message notifications to whatever push
delivery handlers are registered. Both are process-wide singletons obtained
through ``ServiceProvider``; neither ever raises back into the caller, so a
slow socket or a failing push provider cannot undo a committed message.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable
from uuid import UUID

from listing_chat.core.config import settings

logger = logging.getLogger(__name__)

MESSAGE_CREATED = "message.created"
MESSAGES_READ = "messages.read"


class ChatEventBus:
    def __init__(self, queue_size: int | None = None):
        self.queue_size = queue_size or settings.REALTIME_QUEUE_SIZE
        self._subscribers: dict[UUID, set[asyncio.Queue]] = defaultdict(set)

    @asynccontextmanager
    async def subscribe(self, conversation_id: UUID) -> AsyncIterator[asyncio.Queue]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[conversation_id].add(queue)
        logger.debug(f"Subscriber attached to conversation {conversation_id}")
        try:
            yield queue
        finally:
            subscribers = self._subscribers.get(conversation_id)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    del self._subscribers[conversation_id]
            logger.debug(f"Subscriber detached from conversation {conversation_id}")

    def subscriber_count(self, conversation_id: UUID) -> int:
        return len(self._subscribers.get(conversation_id, ()))

    def publish(self, conversation_id: UUID, event: dict[str, Any]) -> int:
        """Queues the event for every subscriber of the conversation. Returns deliveries."""
        delivered = 0
        for queue in list(self._subscribers.get(conversation_id, ())):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(
                    f"Dropping {event.get('type')} for a slow subscriber of conversation {conversation_id}"
                )
        return delivered


@dataclass(frozen=True)
class NewMessageNotification:
    conversation_id: UUID
    recipient_id: str
    preview: str | None


NotificationHandler = Callable[[NewMessageNotification], Awaitable[None]]


async def log_notification(notification: NewMessageNotification) -> None:
    """Default handler; the push delivery service consumes these events out of process."""
    logger.info(
        f"New message notification for {notification.recipient_id} "
        f"in conversation {notification.conversation_id}"
    )


class NotificationDispatcher:
    def __init__(self, handlers: list[NotificationHandler] | None = None):
        self._handlers: list[NotificationHandler] = list(
            handlers if handlers is not None else [log_notification]
        )

    def register(self, handler: NotificationHandler) -> None:
        self._handlers.append(handler)

    def unregister(self, handler: NotificationHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def dispatch(self, notification: NewMessageNotification) -> None:
        for handler in list(self._handlers):
            try:
                await handler(notification)
            except Exception:
                # The message is already committed; delivery failures are reported only
                logger.exception(
                    f"Notification handler {getattr(handler, '__name__', handler)!r} failed "
                    f"for conversation {notification.conversation_id}"
                )
