import asyncio
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status

from listing_chat.api.common import BaseRouter
from listing_chat.auth_config import (
    UserManager,
    authenticate_websocket,
    current_active_user,
    get_user_manager,
)
from listing_chat.logic.conversation_processing import (
    handle_get_conversation,
    handle_list_conversations,
    handle_list_messages,
    handle_mark_read,
    handle_send_message,
    handle_start_conversation,
)
from listing_chat.models import User
from listing_chat.schemas.conversation import (
    ConversationCreateRequest,
    ConversationSummaryResponse,
)
from listing_chat.schemas.message import (
    MarkReadResponse,
    MessageCreateRequest,
    MessagePageResponse,
    MessageResponse,
)
from listing_chat.services.context_resolver import ContextResolver
from listing_chat.services.conversation_service import ConversationService
from listing_chat.services.dependencies import (
    get_context_resolver,
    get_conversation_service,
    get_message_service,
    get_read_state_service,
)
from listing_chat.services.events import ChatEventBus
from listing_chat.services.exceptions import ServiceError
from listing_chat.services.message_service import MessageService
from listing_chat.services.provider import get_event_bus
from listing_chat.services.read_state_service import ReadStateService

logger = logging.getLogger(__name__)
conversations_router_instance = APIRouter(prefix="/conversations")
router = BaseRouter(router=conversations_router_instance, default_tags=["conversations"])


@router.post("", response_model=ConversationSummaryResponse)
async def start_conversation(
    request_data: ConversationCreateRequest,
    user: User = Depends(current_active_user),
    conv_service: ConversationService = Depends(get_conversation_service),
    context_resolver: ContextResolver = Depends(get_context_resolver),
):
    """Starts a conversation, or returns the existing one for the same key."""
    return await handle_start_conversation(
        request_data=request_data,
        user=user,
        conv_service=conv_service,
        context_resolver=context_resolver,
    )


@router.get("", response_model=list[ConversationSummaryResponse])
async def list_conversations(
    user: User = Depends(current_active_user),
    conv_service: ConversationService = Depends(get_conversation_service),
    context_resolver: ContextResolver = Depends(get_context_resolver),
):
    return await handle_list_conversations(
        user=user, conv_service=conv_service, context_resolver=context_resolver
    )


@router.get("/{conversation_id}", response_model=ConversationSummaryResponse)
async def get_conversation(
    conversation_id: UUID,
    user: User = Depends(current_active_user),
    conv_service: ConversationService = Depends(get_conversation_service),
    context_resolver: ContextResolver = Depends(get_context_resolver),
):
    return await handle_get_conversation(
        conversation_id=conversation_id,
        user=user,
        conv_service=conv_service,
        context_resolver=context_resolver,
    )


@router.get(
    "/{conversation_id}/messages",
    response_model=MessagePageResponse,
    tags=["messages"],
)
async def list_messages(
    conversation_id: UUID,
    limit: int | None = Query(default=None),
    cursor: str | None = Query(default=None),
    latest: bool = Query(default=False),
    user: User = Depends(current_active_user),
    conv_service: ConversationService = Depends(get_conversation_service),
    message_service: MessageService = Depends(get_message_service),
):
    """Pages through a conversation's messages, oldest first within a page."""
    return await handle_list_messages(
        conversation_id=conversation_id,
        user=user,
        conv_service=conv_service,
        message_service=message_service,
        limit=limit,
        cursor=cursor,
        latest=latest,
    )


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["messages"],
)
async def send_message(
    conversation_id: UUID,
    request_data: MessageCreateRequest,
    user: User = Depends(current_active_user),
    conv_service: ConversationService = Depends(get_conversation_service),
    message_service: MessageService = Depends(get_message_service),
):
    return await handle_send_message(
        conversation_id=conversation_id,
        request_data=request_data,
        user=user,
        conv_service=conv_service,
        message_service=message_service,
    )


@router.post(
    "/{conversation_id}/read",
    response_model=MarkReadResponse,
    tags=["messages"],
)
async def mark_read(
    conversation_id: UUID,
    user: User = Depends(current_active_user),
    conv_service: ConversationService = Depends(get_conversation_service),
    read_service: ReadStateService = Depends(get_read_state_service),
):
    """Marks everything the caller received in the conversation as read."""
    return await handle_mark_read(
        conversation_id=conversation_id,
        user=user,
        conv_service=conv_service,
        read_service=read_service,
    )


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    # Clients only listen; inbound frames are ignored
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/{conversation_id}/ws")
async def conversation_events(
    websocket: WebSocket,
    conversation_id: UUID,
    user_manager: UserManager = Depends(get_user_manager),
    conv_service: ConversationService = Depends(get_conversation_service),
    event_bus: ChatEventBus = Depends(get_event_bus),
):
    """Streams message.created and messages.read events for one conversation."""
    user = await authenticate_websocket(websocket, user_manager)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    try:
        await conv_service.get_conversation_for_participant(
            conversation_id, user.chat_identity()
        )
    except ServiceError as e:
        logger.info(f"Rejected socket for conversation {conversation_id}: {e}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    # Subscribe first so nothing published after the handshake is missed
    async with event_bus.subscribe(conversation_id) as queue:
        await websocket.accept()
        reader = asyncio.create_task(_wait_for_disconnect(websocket))
        try:
            while True:
                getter = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait(
                    {getter, reader}, return_when=asyncio.FIRST_COMPLETED
                )
                if reader in done:
                    getter.cancel()
                    break
                await websocket.send_json(getter.result())
        except WebSocketDisconnect:
            logger.debug(f"Socket for conversation {conversation_id} dropped mid-send")
        finally:
            reader.cancel()
    logger.info(f"Socket for conversation {conversation_id} closed by user {user.id}")
