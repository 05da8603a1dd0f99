from fastapi import Depends

from listing_chat.repositories.conversation_repository import ConversationRepository
from listing_chat.repositories.dependencies import (
    get_conversation_repository,
    get_listing_repository,
    get_message_repository,
)
from listing_chat.repositories.listing_repository import ListingRepository
from listing_chat.repositories.message_repository import MessageRepository

from .context_resolver import ContextResolver
from .conversation_service import ConversationService
from .events import ChatEventBus, NotificationDispatcher
from .message_service import MessageService
from .provider import get_event_bus, get_notification_dispatcher
from .read_state_service import ReadStateService


def get_conversation_service(
    conv_repo: ConversationRepository = Depends(get_conversation_repository),
) -> ConversationService:
    """Provides a request-scoped ConversationService."""
    return ConversationService(conversation_repository=conv_repo)


def get_message_service(
    conv_repo: ConversationRepository = Depends(get_conversation_repository),
    msg_repo: MessageRepository = Depends(get_message_repository),
    event_bus: ChatEventBus = Depends(get_event_bus),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> MessageService:
    """Provides a request-scoped MessageService wired to the shared event bus."""
    return MessageService(
        conversation_repository=conv_repo,
        message_repository=msg_repo,
        event_bus=event_bus,
        notifier=notifier,
    )


def get_read_state_service(
    conv_repo: ConversationRepository = Depends(get_conversation_repository),
    msg_repo: MessageRepository = Depends(get_message_repository),
    event_bus: ChatEventBus = Depends(get_event_bus),
) -> ReadStateService:
    return ReadStateService(
        conversation_repository=conv_repo,
        message_repository=msg_repo,
        event_bus=event_bus,
    )


def get_context_resolver(
    listing_repo: ListingRepository = Depends(get_listing_repository),
) -> ContextResolver:
    return ContextResolver(listing_repository=listing_repo)
