import enum
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, model_validator

from .context import ConversationContext, ListingRef


class ConversationKind(str, enum.Enum):
    USER_DEALER = "user_dealer"
    USER_USER = "user_user"


class ChatIdentity(BaseModel):
    """
    The identities one authenticated user can act as.

    Slot A of every conversation and slot B of a user_user conversation hold
    user ids; slot B of a user_dealer conversation holds a dealership id.
    The two are never compared with each other.
    """

    user_id: str
    dealership_id: str | None = None

    model_config = ConfigDict(frozen=True)


# Schema for request body when starting (or resuming) a conversation
class ConversationCreateRequest(BaseModel):
    kind: ConversationKind
    dealership_id: int | None = None
    seller_user_id: UUID | None = None
    car_id: int | None = None
    car_rent_id: int | None = None
    number_plate_id: int | None = None

    @model_validator(mode="after")
    def check_single_listing(self) -> "ConversationCreateRequest":
        given = [
            listing_id
            for listing_id in (self.car_id, self.car_rent_id, self.number_plate_id)
            if listing_id is not None
        ]
        if len(given) > 1:
            raise ValueError(
                "Provide only one of car_id, car_rent_id or number_plate_id."
            )
        return self

    @property
    def listing_ref(self) -> ListingRef | None:
        if self.car_id is not None:
            return ListingRef.sale(self.car_id)
        if self.car_rent_id is not None:
            return ListingRef.rental(self.car_rent_id)
        if self.number_plate_id is not None:
            return ListingRef.plate(self.number_plate_id)
        return None


class ConversationResponse(BaseModel):
    id: UUID
    kind: ConversationKind
    participant_a: str
    participant_b: str
    listing_ref: ListingRef | None = None
    created_at: datetime
    last_message_at: datetime | None = None
    last_message_preview: str | None = None
    unread_count_a: int
    unread_count_b: int

    model_config = ConfigDict(from_attributes=True)


# Conversation as seen by one participant, with its listing header
class ConversationSummaryResponse(ConversationResponse):
    viewer_id: str
    viewer_unread_count: int
    context: ConversationContext | None = None
