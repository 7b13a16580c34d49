from marketplace.models.database import Base, SessionLocal, get_db
from marketplace.models.application import Application
from marketplace.models.user import User
from marketplace.models.offer import Offer, OfferContent, OfferType
from marketplace.models.order import Order, OrderOrigin, OrderStatus

__all__ = [
    "Base",
    "SessionLocal",
    "get_db",
    "Application",
    "User",
    "Offer",
    "OfferContent",
    "OfferType",
    "Order",
    "OrderOrigin",
    "OrderStatus",
]
