import logging
from typing import Sequence
from uuid import UUID

# Logic related to processing conversation actions, decoupled from API routes.
# This helps in testing the core business logic independently.
from listing_chat.models import Conversation, User
from listing_chat.schemas.conversation import (
    ConversationCreateRequest,
    ConversationResponse,
    ConversationSummaryResponse,
)
from listing_chat.schemas.context import ConversationContext
from listing_chat.schemas.message import (
    MarkReadResponse,
    MessageCreateRequest,
    MessagePageResponse,
    MessageResponse,
)
from listing_chat.services.context_resolver import ContextResolver
from listing_chat.services.conversation_service import (
    ConversationService,
    acting_participant,
    unread_count_for,
)
from listing_chat.services.message_service import MessageService
from listing_chat.services.read_state_service import ReadStateService

logger = logging.getLogger(__name__)


def build_summary(
    conversation: Conversation,
    viewer_id: str,
    context: ConversationContext | None,
) -> ConversationSummaryResponse:
    """Shapes a conversation as one participant sees it."""
    base = ConversationResponse.model_validate(conversation)
    return ConversationSummaryResponse(
        **base.model_dump(),
        viewer_id=viewer_id,
        viewer_unread_count=unread_count_for(conversation, viewer_id),
        context=context,
    )


async def handle_start_conversation(
    request_data: ConversationCreateRequest,
    user: User,
    conv_service: ConversationService,
    context_resolver: ContextResolver,
) -> ConversationSummaryResponse:
    """
    Starts or resumes the conversation between the user and a dealership or seller.

    Args:
        request_data: Counterparty and optional listing.
        user: The authenticated user; always participant_a.
        conv_service: The conversation service dependency.
        context_resolver: Resolves the listing header.

    Returns:
        The conversation summary seen from the user's side. Repeating the call
        with the same arguments returns the same conversation.

    Raises:
        InvalidParticipantsError: Counterparty fields do not match the kind.
        SelfChatRejectedError: The user tried to chat with themself.
        ConflictRetryExhaustedError: Concurrent creation never settled.
    """
    participant_a = str(user.id)
    conversation = await conv_service.ensure_conversation(
        request_data.kind,
        participant_a,
        dealership_id=request_data.dealership_id,
        seller_user_id=request_data.seller_user_id,
        listing_ref=request_data.listing_ref,
    )
    context = await context_resolver.resolve_context(conversation.listing_ref)
    return build_summary(conversation, participant_a, context)


async def handle_list_conversations(
    user: User,
    conv_service: ConversationService,
    context_resolver: ContextResolver,
) -> list[ConversationSummaryResponse]:
    """Lists the conversations of every identity the user may act as."""
    identity = user.chat_identity()
    conversations: Sequence[Conversation] = await conv_service.list_conversations_for(
        identity
    )
    contexts = await context_resolver.resolve_many(
        conversation.listing_ref for conversation in conversations
    )
    logger.debug(f"Listing {len(conversations)} conversations for user {user.id}")
    return [
        build_summary(
            conversation,
            acting_participant(conversation, identity),
            contexts.get(conversation.listing_ref) if conversation.listing_ref else None,
        )
        for conversation in conversations
    ]


async def handle_get_conversation(
    conversation_id: UUID,
    user: User,
    conv_service: ConversationService,
    context_resolver: ContextResolver,
) -> ConversationSummaryResponse:
    conversation, viewer_id = await conv_service.get_conversation_for_participant(
        conversation_id, user.chat_identity()
    )
    context = await context_resolver.resolve_context(conversation.listing_ref)
    return build_summary(conversation, viewer_id, context)


async def handle_list_messages(
    conversation_id: UUID,
    user: User,
    conv_service: ConversationService,
    message_service: MessageService,
    limit: int | None = None,
    cursor: str | None = None,
    latest: bool = False,
) -> MessagePageResponse:
    """Returns one page of messages once the user is known to be a participant."""
    await conv_service.get_conversation_for_participant(
        conversation_id, user.chat_identity()
    )
    page = await message_service.list_messages(
        conversation_id, limit=limit, cursor=cursor, latest=latest
    )
    return MessagePageResponse(
        items=[MessageResponse.model_validate(message) for message in page.items],
        next_cursor=page.next_cursor,
        previous_cursor=page.previous_cursor,
        has_more=page.has_more,
    )


async def handle_send_message(
    conversation_id: UUID,
    request_data: MessageCreateRequest,
    user: User,
    conv_service: ConversationService,
    message_service: MessageService,
) -> MessageResponse:
    """
    Appends a message as the identity the user holds in the conversation.
    Dealership staff send as their dealership.
    """
    _, sender_id = await conv_service.get_conversation_for_participant(
        conversation_id, user.chat_identity()
    )
    message = await message_service.append(
        conversation_id,
        sender_id,
        body=request_data.body,
        media_url=request_data.media_url,
    )
    return MessageResponse.model_validate(message)


async def handle_mark_read(
    conversation_id: UUID,
    user: User,
    conv_service: ConversationService,
    read_service: ReadStateService,
) -> MarkReadResponse:
    _, reader_id = await conv_service.get_conversation_for_participant(
        conversation_id, user.chat_identity()
    )
    transitioned = await read_service.mark_read(conversation_id, reader_id)
    return MarkReadResponse(conversation_id=conversation_id, transitioned=transitioned)
