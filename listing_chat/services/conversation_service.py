import logging
from typing import Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from listing_chat.core.config import settings
from listing_chat.models import Conversation
from listing_chat.repositories.conversation_repository import (
    ConversationRepository,
    build_dedup_key,
)
from listing_chat.schemas.context import ListingRef
from listing_chat.schemas.conversation import ChatIdentity, ConversationKind

from .exceptions import (
    ConflictRetryExhaustedError,
    ConversationNotFoundError,
    InvalidParticipantsError,
    NotAParticipantError,
    SelfChatRejectedError,
)
from .retry import raise_store_error, store_retrying, unit_of_work

logger = logging.getLogger(__name__)


def canonical_user_id(value: UUID | str, field: str) -> str:
    """Renders any accepted UUID spelling in its lowercase hyphenated form."""
    try:
        return str(value if isinstance(value, UUID) else UUID(str(value)))
    except ValueError:
        raise InvalidParticipantsError(f"{field} must be a user id.") from None


def canonical_dealership_id(value: int | str) -> str:
    try:
        return str(int(value))
    except (TypeError, ValueError):
        raise InvalidParticipantsError("dealership_id must be an integer.") from None


def resolve_participants(
    kind: ConversationKind,
    participant_a: UUID | str | None,
    dealership_id: int | str | None,
    seller_user_id: UUID | str | None,
) -> tuple[str, str]:
    """
    Returns the canonical (participant_a, participant_b) pair for the kind.

    Ids are canonicalized before the self-chat check and before they reach
    the dedup key, so every spelling of one id names the same conversation.
    """
    if not participant_a:
        raise InvalidParticipantsError("The initiating user is required.")
    participant_a = canonical_user_id(participant_a, "participant_a")

    has_dealership = dealership_id is not None and str(dealership_id) != ""
    has_seller = bool(seller_user_id)

    if kind == ConversationKind.USER_DEALER:
        if not has_dealership or has_seller:
            raise InvalidParticipantsError(
                "A dealer conversation needs a dealership_id and no seller_user_id."
            )
        return participant_a, canonical_dealership_id(dealership_id)

    if not has_seller or has_dealership:
        raise InvalidParticipantsError(
            "A user conversation needs a seller_user_id and no dealership_id."
        )
    seller = canonical_user_id(seller_user_id, "seller_user_id")
    if seller == participant_a:
        raise SelfChatRejectedError()
    return participant_a, seller


class ConversationService:
    """
    Resolves or creates exactly one conversation per dedup key.

    The unique constraint on ``conversations.dedup_key`` is the only
    idempotency mechanism: a lost insert race surfaces as IntegrityError and
    the winner's row is fetched instead.
    """

    def __init__(self, conversation_repository: ConversationRepository):
        self.conv_repo = conversation_repository
        # The session is implicitly shared via the repositories
        self.session = conversation_repository.session

    async def ensure_conversation(
        self,
        kind: ConversationKind,
        participant_a: UUID | str,
        *,
        dealership_id: int | str | None = None,
        seller_user_id: UUID | str | None = None,
        listing_ref: ListingRef | None = None,
    ) -> Conversation:
        kind = ConversationKind(kind)
        participant_a, participant_b = resolve_participants(
            kind, participant_a, dealership_id, seller_user_id
        )
        dedup_key = build_dedup_key(kind, participant_a, participant_b, listing_ref)

        async for attempt in store_retrying():
            with attempt:
                return await self._insert_or_fetch(
                    dedup_key, kind, participant_a, participant_b, listing_ref
                )

    async def _insert_or_fetch(
        self,
        dedup_key: str,
        kind: ConversationKind,
        participant_a: str,
        participant_b: str,
        listing_ref: ListingRef | None,
    ) -> Conversation:
        for conflict_round in range(1, settings.CONVERSATION_CONFLICT_RETRIES + 1):
            async with unit_of_work(self.session, "look up conversation"):
                existing = await self.conv_repo.get_conversation_by_dedup_key(dedup_key)
            if existing is not None:
                return existing

            try:
                conversation = await self.conv_repo.add_conversation(
                    kind, participant_a, participant_b, listing_ref
                )
                await self.session.commit()
                logger.info(f"Created conversation {conversation.id} for key {dedup_key}")
                return conversation
            except IntegrityError:
                await self.session.rollback()
                logger.info(
                    f"Conversation insert lost a race for key {dedup_key} "
                    f"(round {conflict_round}); fetching the existing row"
                )
            except SQLAlchemyError as e:
                await raise_store_error(self.session, e, "create conversation")

            async with unit_of_work(self.session, "fetch conversation after conflict"):
                existing = await self.conv_repo.get_conversation_by_dedup_key(dedup_key)
            if existing is not None:
                return existing

        logger.error(f"Conversation dedup for key {dedup_key} did not settle")
        raise ConflictRetryExhaustedError()

    async def get_conversation(self, conversation_id: UUID) -> Conversation:
        async with unit_of_work(self.session, "load conversation"):
            conversation = await self.conv_repo.get_conversation_by_id(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(
                f"Conversation with id '{conversation_id}' not found."
            )
        return conversation

    async def get_conversation_for_participant(
        self, conversation_id: UUID, identity: ChatIdentity
    ) -> tuple[Conversation, str]:
        """Loads a conversation and the slot identity the caller acts as."""
        conversation = await self.get_conversation(conversation_id)
        return conversation, acting_participant(conversation, identity)

    async def list_conversations_for(
        self, identity: ChatIdentity
    ) -> Sequence[Conversation]:
        async with unit_of_work(self.session, "list conversations"):
            return await self.conv_repo.list_conversations_for_identity(identity)


def slot_b_identity(conversation: Conversation, identity: ChatIdentity) -> str | None:
    """The caller's identity that is comparable with participant_b, if any."""
    if conversation.kind == ConversationKind.USER_DEALER:
        return identity.dealership_id
    return identity.user_id


def acting_participant(conversation: Conversation, identity: ChatIdentity) -> str:
    """
    Returns which slot identity the caller occupies.

    Slot A is matched against the user id. Slot B is matched against the
    dealership id in user_dealer conversations and the user id in user_user
    ones. When both match, as for staff messaging their own dealership,
    slot A wins.
    """
    if conversation.participant_a == identity.user_id:
        return conversation.participant_a
    slot_b = slot_b_identity(conversation, identity)
    if slot_b is not None and conversation.participant_b == slot_b:
        return conversation.participant_b
    raise NotAParticipantError()


def unread_count_for(conversation: Conversation, participant_id: str) -> int:
    if participant_id == conversation.participant_a:
        return conversation.unread_count_a
    if participant_id == conversation.participant_b:
        return conversation.unread_count_b
    raise NotAParticipantError()
