import asyncio
import base64
import json
import logging
import uuid
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from test_helpers import build_conversation_service, build_message_service

from listing_chat.models import Conversation
from listing_chat.schemas.context import ListingRef
from listing_chat.schemas.conversation import ConversationKind
from listing_chat.schemas.message import SenderRole
from listing_chat.services.events import (
    MESSAGE_CREATED,
    ChatEventBus,
    NewMessageNotification,
    NotificationDispatcher,
)
from listing_chat.services.exceptions import (
    ConversationNotFoundError,
    EmptyMessageError,
    InvalidCursorError,
    NotAParticipantError,
    TransientStoreError,
)
from listing_chat.services.message_service import (
    ATTACHMENT_PREVIEW,
    build_preview,
    clamp_page_size,
)

BUYER = "5b0f3f5e-8f3a-4b53-9a2e-1d4f0b9c7a11"
DEALERSHIP = "42"
SELLER = "a3c2e1d0-7b6a-4c5d-8e9f-0a1b2c3d4e5f"


async def _dealer_conversation(session: AsyncSession) -> Conversation:
    return await build_conversation_service(session).ensure_conversation(
        ConversationKind.USER_DEALER,
        BUYER,
        dealership_id=int(DEALERSHIP),
        listing_ref=ListingRef.sale(7),
    )


async def _send_many(service, conversation_id, count: int) -> list:
    return [
        await service.append(conversation_id, BUYER, body=f"message {i}")
        for i in range(count)
    ]


async def test_append_updates_summary_and_recipient_counter(db_session: AsyncSession):
    conversation = await _dealer_conversation(db_session)
    service = build_message_service(db_session)

    message = await service.append(conversation.id, BUYER, body="  Is it still available?  ")

    await db_session.refresh(conversation)
    assert message.sender_role == SenderRole.USER
    assert message.body == "  Is it still available?  "
    assert message.is_read is False and message.read_at is None
    assert conversation.unread_count_b == 1
    assert conversation.unread_count_a == 0
    assert conversation.last_message_at == message.created_at
    assert conversation.last_message_preview == "Is it still available?"


async def test_dealer_reply_uses_dealer_role(db_session: AsyncSession):
    conversation = await _dealer_conversation(db_session)
    service = build_message_service(db_session)

    reply = await service.append(conversation.id, DEALERSHIP, body="Yes, come by today")

    await db_session.refresh(conversation)
    assert reply.sender_role == SenderRole.DEALER
    assert reply.sender_id == DEALERSHIP
    assert conversation.unread_count_a == 1
    assert conversation.unread_count_b == 0


async def test_seller_reply_uses_seller_role(db_session: AsyncSession):
    conversation = await build_conversation_service(db_session).ensure_conversation(
        ConversationKind.USER_USER, BUYER, seller_user_id=SELLER
    )
    service = build_message_service(db_session)

    reply = await service.append(conversation.id, SELLER, body="Hi")

    assert reply.sender_role == SenderRole.SELLER_USER


async def test_media_only_message_is_accepted(db_session: AsyncSession):
    conversation = await _dealer_conversation(db_session)
    service = build_message_service(db_session)

    message = await service.append(
        conversation.id, BUYER, body="   ", media_url="https://cdn.example.com/m/1.jpg"
    )

    await db_session.refresh(conversation)
    assert message.body is None
    assert message.media_url == "https://cdn.example.com/m/1.jpg"
    assert conversation.last_message_preview == ATTACHMENT_PREVIEW


@pytest.mark.parametrize("body, media_url", [(None, None), ("", ""), ("  \n ", None)])
async def test_empty_message_is_rejected(db_session: AsyncSession, body, media_url):
    conversation = await _dealer_conversation(db_session)
    service = build_message_service(db_session)

    with pytest.raises(EmptyMessageError):
        await service.append(conversation.id, BUYER, body=body, media_url=media_url)

    await db_session.refresh(conversation)
    assert conversation.unread_count_b == 0
    assert conversation.last_message_at is None


async def test_append_requires_participant(db_session: AsyncSession):
    conversation = await _dealer_conversation(db_session)
    service = build_message_service(db_session)

    with pytest.raises(NotAParticipantError):
        await service.append(conversation.id, "someone-else", body="hello")


async def test_append_unknown_conversation(db_session: AsyncSession):
    service = build_message_service(db_session)

    with pytest.raises(ConversationNotFoundError):
        await service.append(uuid.uuid4(), BUYER, body="hello")


async def test_created_at_is_strictly_increasing(db_session: AsyncSession):
    conversation = await _dealer_conversation(db_session)
    service = build_message_service(db_session)

    messages = await _send_many(service, conversation.id, 6)

    timestamps = [m.created_at for m in messages]
    assert all(earlier < later for earlier, later in zip(timestamps, timestamps[1:]))


async def test_created_at_moves_past_a_future_last_message(db_session: AsyncSession):
    conversation = await _dealer_conversation(db_session)
    service = build_message_service(db_session)
    first = await service.append(conversation.id, BUYER, body="first")

    # Simulate clock skew: the stored last message is ahead of the local clock
    await db_session.refresh(conversation)
    conversation.last_message_at = first.created_at + timedelta(hours=1)
    await db_session.commit()

    second = await service.append(conversation.id, BUYER, body="second")

    assert second.created_at == first.created_at + timedelta(hours=1, microseconds=1)


async def test_append_publishes_and_notifies_after_commit(db_session: AsyncSession):
    conversation = await _dealer_conversation(db_session)
    event_bus = ChatEventBus()
    received: list[NewMessageNotification] = []

    async def capture(notification: NewMessageNotification) -> None:
        received.append(notification)

    service = build_message_service(
        db_session, event_bus=event_bus, notifier=NotificationDispatcher([capture])
    )

    async with event_bus.subscribe(conversation.id) as queue:
        message = await service.append(conversation.id, BUYER, body="ping")
        event = queue.get_nowait()

    assert event["type"] == MESSAGE_CREATED
    assert event["message"]["id"] == str(message.id)
    assert event["message"]["sender_role"] == "user"
    assert received == [
        NewMessageNotification(
            conversation_id=conversation.id, recipient_id=DEALERSHIP, preview="ping"
        )
    ]


async def test_failing_notification_handler_keeps_message(
    db_session: AsyncSession, caplog
):
    conversation = await _dealer_conversation(db_session)

    async def broken(notification: NewMessageNotification) -> None:
        raise RuntimeError("push provider down")

    service = build_message_service(db_session, notifier=NotificationDispatcher([broken]))

    with caplog.at_level(logging.ERROR):
        message = await service.append(conversation.id, BUYER, body="still saved")

    page = await service.list_messages(conversation.id)
    assert [m.id for m in page.items] == [message.id]
    assert "push provider down" in caplog.text


async def test_transient_failure_is_retried(db_session: AsyncSession, monkeypatch):
    conversation = await _dealer_conversation(db_session)
    service = build_message_service(db_session)
    original_create = service.msg_repo.create_message
    attempts = []

    async def flaky_create(**kwargs):
        attempts.append(kwargs)
        if len(attempts) == 1:
            raise OperationalError("INSERT INTO messages", {}, Exception("database is locked"))
        return await original_create(**kwargs)

    monkeypatch.setattr(service.msg_repo, "create_message", flaky_create)

    message = await service.append(conversation.id, BUYER, body="retry me")

    await db_session.refresh(conversation)
    assert len(attempts) == 2
    assert message.body == "retry me"
    assert conversation.unread_count_b == 1


async def test_persistent_transient_failure_surfaces(db_session: AsyncSession, monkeypatch):
    conversation = await _dealer_conversation(db_session)
    service = build_message_service(db_session)
    attempts = []

    async def always_locked(**kwargs):
        attempts.append(kwargs)
        raise OperationalError("INSERT INTO messages", {}, Exception("database is locked"))

    monkeypatch.setattr(service.msg_repo, "create_message", always_locked)

    with pytest.raises(TransientStoreError):
        await service.append(conversation.id, BUYER, body="never lands")

    await db_session.refresh(conversation)
    assert len(attempts) == 3
    assert conversation.unread_count_b == 0


async def test_forward_pages_cover_every_message_once(db_session: AsyncSession):
    conversation = await _dealer_conversation(db_session)
    service = build_message_service(db_session)
    sent = await _send_many(service, conversation.id, 5)

    first = await service.list_messages(conversation.id, limit=2)
    second = await service.list_messages(conversation.id, limit=2, cursor=first.next_cursor)
    third = await service.list_messages(conversation.id, limit=2, cursor=second.next_cursor)

    assert [m.id for m in first.items] == [m.id for m in sent[:2]]
    assert [m.id for m in second.items] == [m.id for m in sent[2:4]]
    assert [m.id for m in third.items] == [sent[4].id]
    assert (first.has_more, second.has_more, third.has_more) == (True, True, False)


async def test_same_cursor_returns_identical_page(db_session: AsyncSession):
    conversation = await _dealer_conversation(db_session)
    service = build_message_service(db_session)
    await _send_many(service, conversation.id, 4)
    first = await service.list_messages(conversation.id, limit=2)

    again = await service.list_messages(conversation.id, limit=2, cursor=first.next_cursor)
    once_more = await service.list_messages(conversation.id, limit=2, cursor=first.next_cursor)

    assert [m.id for m in again.items] == [m.id for m in once_more.items]
    assert again.next_cursor == once_more.next_cursor


async def test_cursor_survives_new_appends(db_session: AsyncSession):
    conversation = await _dealer_conversation(db_session)
    service = build_message_service(db_session)
    sent = await _send_many(service, conversation.id, 3)
    page = await service.list_messages(conversation.id, limit=3)
    assert page.has_more is False

    caught_up = await service.list_messages(conversation.id, cursor=page.next_cursor)
    assert caught_up.items == []
    assert caught_up.next_cursor == page.next_cursor

    newer = await service.append(conversation.id, DEALERSHIP, body="new")
    resumed = await service.list_messages(conversation.id, cursor=page.next_cursor)

    assert [m.id for m in resumed.items] == [newer.id]
    assert sent[-1].id not in [m.id for m in resumed.items]


async def test_latest_page_and_backward_paging(db_session: AsyncSession):
    conversation = await _dealer_conversation(db_session)
    service = build_message_service(db_session)
    sent = await _send_many(service, conversation.id, 5)

    latest = await service.list_messages(conversation.id, limit=2, latest=True)
    older = await service.list_messages(conversation.id, limit=2, cursor=latest.previous_cursor)
    oldest = await service.list_messages(conversation.id, limit=2, cursor=older.previous_cursor)

    assert [m.id for m in latest.items] == [m.id for m in sent[3:]]
    assert [m.id for m in older.items] == [m.id for m in sent[1:3]]
    assert [m.id for m in oldest.items] == [sent[0].id]
    assert (latest.has_more, older.has_more, oldest.has_more) == (True, True, False)


async def test_empty_conversation_page(db_session: AsyncSession):
    conversation = await _dealer_conversation(db_session)
    service = build_message_service(db_session)

    page = await service.list_messages(conversation.id, latest=True)

    assert page.items == []
    assert page.has_more is False
    assert page.next_cursor is None and page.previous_cursor is None


@pytest.mark.parametrize(
    "cursor",
    [
        "not-a-cursor",
        "%%%",
        base64.urlsafe_b64encode(b'{"d":"sideways","t":"2026-01-01T00:00:00+00:00","i":"0"}').decode(),
        base64.urlsafe_b64encode(
            json.dumps({"d": "after", "t": "2026-01-01T00:00:00", "i": uuid.uuid4().hex}).encode()
        ).decode(),
    ],
)
async def test_malformed_cursor_is_rejected(db_session: AsyncSession, cursor):
    conversation = await _dealer_conversation(db_session)
    service = build_message_service(db_session)

    with pytest.raises(InvalidCursorError):
        await service.list_messages(conversation.id, cursor=cursor)


async def test_list_unknown_conversation(db_session: AsyncSession):
    service = build_message_service(db_session)

    with pytest.raises(ConversationNotFoundError):
        await service.list_messages(uuid.uuid4())


async def test_concurrent_appends_list_in_order(
    file_session_manager: async_sessionmaker[AsyncSession],
):
    async with file_session_manager() as session:
        conversation = await _dealer_conversation(session)

    async def send(i: int):
        async with file_session_manager() as session:
            sender = BUYER if i % 2 == 0 else DEALERSHIP
            await build_message_service(session).append(
                conversation.id, sender, body=f"concurrent {i}"
            )

    await asyncio.gather(*(send(i) for i in range(10)))

    async with file_session_manager() as session:
        page = await build_message_service(session).list_messages(conversation.id, limit=50)
        refreshed = await session.get(Conversation, conversation.id)

    keys = [(m.created_at, m.id.hex) for m in page.items]
    assert len(keys) == 10
    assert keys == sorted(keys)
    assert refreshed.unread_count_a == 5
    assert refreshed.unread_count_b == 5


def test_preview_truncates_long_bodies():
    preview = build_preview("x" * 500, None)

    assert len(preview) == 120
    assert preview.endswith("...")
    assert build_preview(None, "https://cdn.example.com/a.png") == ATTACHMENT_PREVIEW
    assert build_preview(" short ", None) == "short"


def test_page_size_is_clamped():
    assert clamp_page_size(None) == 40
    assert clamp_page_size(0) == 1
    assert clamp_page_size(-5) == 1
    assert clamp_page_size(1000) == 100
