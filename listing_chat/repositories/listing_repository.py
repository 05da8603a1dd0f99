from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from listing_chat.models import Car, NumberPlate, RentalCar

from .base import BaseRepository


class ListingRepository(BaseRepository):
    """Read-only lookups into the marketplace's listing tables."""

    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_car_by_id(self, car_id: int) -> Car | None:
        result = await self.session.execute(select(Car).filter(Car.id == car_id))
        return result.scalars().first()

    async def get_rental_car_by_id(self, rental_car_id: int) -> RentalCar | None:
        result = await self.session.execute(
            select(RentalCar).filter(RentalCar.id == rental_car_id)
        )
        return result.scalars().first()

    async def get_number_plate_by_id(self, plate_id: int) -> NumberPlate | None:
        result = await self.session.execute(
            select(NumberPlate).filter(NumberPlate.id == plate_id)
        )
        return result.scalars().first()
