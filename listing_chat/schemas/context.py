import enum

from pydantic import BaseModel, ConfigDict, Field


class ListingKind(str, enum.Enum):
    SALE = "sale"
    RENTAL = "rental"
    PLATE = "plate"


class ListingRef(BaseModel):
    """A sale car, rental car or number plate, identified by kind and id."""

    kind: ListingKind
    id: int

    model_config = ConfigDict(frozen=True)

    @classmethod
    def sale(cls, listing_id: int) -> "ListingRef":
        return cls(kind=ListingKind.SALE, id=listing_id)

    @classmethod
    def rental(cls, listing_id: int) -> "ListingRef":
        return cls(kind=ListingKind.RENTAL, id=listing_id)

    @classmethod
    def plate(cls, listing_id: int) -> "ListingRef":
        return cls(kind=ListingKind.PLATE, id=listing_id)


class ContextStatus(str, enum.Enum):
    AVAILABLE = "available"
    PENDING = "pending"
    SOLD = "sold"
    UNAVAILABLE = "unavailable"


# Normalized, read-only view of a listing used for conversation headers
class ConversationContext(BaseModel):
    kind: ListingKind
    listing_id: int
    title: str
    images: list[str] = Field(default_factory=list)
    price: float
    status: ContextStatus

    model_config = ConfigDict(frozen=True)
