from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text

from marketplace.models.database import Base, utcnow
from marketplace.services.ids import IdPrefix, generate_id


class OfferType(str, Enum):
    EARN = "earn"
    SPEND = "spend"


class Offer(Base):
    __tablename__ = "offers"

    id = Column(String(40), primary_key=True, default=lambda: generate_id(IdPrefix.OFFER))
    name = Column(String(255), nullable=False)
    type = Column(String(16), nullable=False)  # earn | spend
    amount = Column(Integer, nullable=False)
    # {"total": int, "per_user": int}
    cap = Column(JSON, nullable=False)
    # {"title", "description", "image", "order_meta": {"title", "description", "call_to_action"}}
    meta = Column(JSON, nullable=False)
    created_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def total_cap(self) -> int:
        return int(self.cap["total"])

    @property
    def per_user_cap(self) -> int:
        return int(self.cap["per_user"])

    @property
    def order_meta(self) -> dict:
        return dict(self.meta.get("order_meta") or {})


class OfferContent(Base):
    __tablename__ = "offer_contents"

    offer_id = Column(String(40), ForeignKey("offers.id"), primary_key=True)
    content_type = Column(String(32), nullable=False)  # poll | quiz | coupon | tutorial
    content = Column(Text, nullable=False)
