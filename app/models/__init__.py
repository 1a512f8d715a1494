from app.models.asset import Asset, Room
from app.models.booking import Booking
from app.models.customer import Customer, CustomerPaymentMethod
from app.models.notification import Notification
from app.models.platform_setting import PlatformSetting
from app.models.rent_transaction import RentTransaction
from app.models.user import User

__all__ = [
    "User",
    "Asset",
    "Room",
    "Customer",
    "CustomerPaymentMethod",
    "Booking",
    "RentTransaction",
    "Notification",
    "PlatformSetting",
]
