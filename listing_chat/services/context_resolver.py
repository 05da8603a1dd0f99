import logging
from typing import Iterable

from listing_chat.models import Car, NumberPlate, RentalCar
from listing_chat.repositories.listing_repository import ListingRepository
from listing_chat.schemas.context import (
    ContextStatus,
    ConversationContext,
    ListingKind,
    ListingRef,
)

logger = logging.getLogger(__name__)

DELETED_STATUS = "deleted"

SALE_STATUSES = {
    "available": ContextStatus.AVAILABLE,
    "pending": ContextStatus.PENDING,
    "sold": ContextStatus.SOLD,
}

RENTAL_STATUSES = {
    "available": ContextStatus.AVAILABLE,
    "unavailable": ContextStatus.UNAVAILABLE,
    "rented": ContextStatus.UNAVAILABLE,
}

# Plates are bought outright, so they share the sale lifecycle
PLATE_STATUSES = SALE_STATUSES

STATUSES_BY_KIND = {
    ListingKind.SALE: SALE_STATUSES,
    ListingKind.RENTAL: RENTAL_STATUSES,
    ListingKind.PLATE: PLATE_STATUSES,
}


def _listing_title(listing: Car | RentalCar | NumberPlate) -> str:
    if isinstance(listing, NumberPlate):
        return " ".join(part for part in (listing.letter, listing.digits) if part)
    name = " ".join(part for part in (listing.make, listing.model) if part)
    if listing.year:
        return f"{name} ({listing.year})" if name else str(listing.year)
    return name


def _listing_images(listing: Car | RentalCar | NumberPlate) -> list[str]:
    if isinstance(listing, NumberPlate):
        return [listing.picture] if listing.picture else []
    return [image for image in (listing.images or []) if image]


def _normalize_status(
    raw_status: str | None, table: dict[str, ContextStatus], ref: ListingRef
) -> ContextStatus:
    status = table.get((raw_status or "").lower())
    if status is None:
        logger.warning(
            f"Unknown status {raw_status!r} on {ref.kind.value} listing {ref.id}; "
            f"treating it as unavailable"
        )
        return ContextStatus.UNAVAILABLE
    return status


class ContextResolver:
    """Turns a sale car, rental car or number plate reference into one header shape."""

    def __init__(self, listing_repository: ListingRepository):
        self.listing_repo = listing_repository

    async def _fetch(self, listing_ref: ListingRef) -> Car | RentalCar | NumberPlate | None:
        if listing_ref.kind == ListingKind.SALE:
            return await self.listing_repo.get_car_by_id(listing_ref.id)
        if listing_ref.kind == ListingKind.RENTAL:
            return await self.listing_repo.get_rental_car_by_id(listing_ref.id)
        return await self.listing_repo.get_number_plate_by_id(listing_ref.id)

    async def resolve_context(
        self, listing_ref: ListingRef | None
    ) -> ConversationContext | None:
        """
        Returns the normalized context, or None when the listing is gone.

        A missing or deleted listing never invalidates the conversation; callers
        render it as "listing unavailable".
        """
        if listing_ref is None:
            return None

        listing = await self._fetch(listing_ref)
        if listing is None or (listing.status or "").lower() == DELETED_STATUS:
            logger.info(f"Listing {listing_ref.kind.value}:{listing_ref.id} is unavailable")
            return None

        return ConversationContext(
            kind=listing_ref.kind,
            listing_id=listing_ref.id,
            title=_listing_title(listing),
            images=_listing_images(listing),
            price=float(listing.price),
            status=_normalize_status(
                listing.status, STATUSES_BY_KIND[listing_ref.kind], listing_ref
            ),
        )

    async def resolve_many(
        self, listing_refs: Iterable[ListingRef | None]
    ) -> dict[ListingRef, ConversationContext | None]:
        """Resolves each distinct reference once, for list views."""
        resolved: dict[ListingRef, ConversationContext | None] = {}
        for ref in listing_refs:
            if ref is None or ref in resolved:
                continue
            resolved[ref] = await self.resolve_context(ref)
        return resolved
