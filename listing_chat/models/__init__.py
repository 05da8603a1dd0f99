# Makes 'models' a package and simplifies imports

from .base import BaseModel, metadata
from .conversation import Conversation
from .listing import Car, NumberPlate, RentalCar, listing_metadata
from .message import Message
from .user import User

__all__ = [
    "BaseModel",
    "metadata",
    "listing_metadata",
    "User",
    "Conversation",
    "Message",
    "Car",
    "RentalCar",
    "NumberPlate",
]
