from sqlalchemy import JSON, Column, Integer, Numeric, Text
from sqlalchemy.orm import declarative_base

# Listing tables belong to the marketplace's listing store. This service only
# reads them, so they live on their own metadata and are never migrated here.
ListingBase = declarative_base()


class Car(ListingBase):
    __tablename__ = "cars"

    id = Column(Integer, primary_key=True)
    dealership_id = Column(Integer, nullable=True)
    make = Column(Text, nullable=True)
    model = Column(Text, nullable=True)
    year = Column(Integer, nullable=True)
    price = Column(Numeric, nullable=False)
    images = Column(JSON, nullable=True)
    # available | pending | sold | deleted
    status = Column(Text, nullable=True)


class RentalCar(ListingBase):
    __tablename__ = "rental_cars"

    id = Column(Integer, primary_key=True)
    dealership_id = Column(Integer, nullable=True)
    make = Column(Text, nullable=True)
    model = Column(Text, nullable=True)
    year = Column(Integer, nullable=True)
    price = Column(Numeric, nullable=False)
    images = Column(JSON, nullable=True)
    # available | unavailable | rented | deleted
    status = Column(Text, nullable=True)


class NumberPlate(ListingBase):
    __tablename__ = "number_plates"

    id = Column(Integer, primary_key=True)
    # Plates are sold by private users or by dealerships
    user_id = Column(Text, nullable=True)
    dealership_id = Column(Integer, nullable=True)
    letter = Column(Text, nullable=True)
    digits = Column(Text, nullable=True)
    price = Column(Numeric, nullable=False)
    picture = Column(Text, nullable=True)
    # available | pending | sold | deleted
    status = Column(Text, nullable=True)


listing_metadata = ListingBase.metadata
