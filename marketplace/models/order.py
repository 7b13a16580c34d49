import json
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text

from marketplace.models.database import Base, as_utc, utcnow
from marketplace.services.ids import IdPrefix, generate_id

OPEN_ORDER_TTL = timedelta(minutes=10)
PENDING_ORDER_TTL = timedelta(seconds=45)


class OrderOrigin(str, Enum):
    MARKETPLACE = "marketplace"
    EXTERNAL = "external"


class OrderStatus(str, Enum):
    OPENED = "opened"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def expiration_date_for(
    status: str,
    created_date: datetime,
    current_status_date: datetime | None,
) -> datetime | None:
    if status == OrderStatus.OPENED:
        return as_utc(created_date) + OPEN_ORDER_TTL
    if status == OrderStatus.PENDING:
        return as_utc(current_status_date or created_date) + PENDING_ORDER_TTL
    return None


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_offer_id", "offer_id"),
        Index("ix_orders_user_offer_status", "user_id", "offer_id", "status"),
    )

    id = Column(String(40), primary_key=True, default=lambda: generate_id(IdPrefix.TRANSACTION))
    origin = Column(String(16), nullable=False)  # marketplace | external
    type = Column(String(16), nullable=False)  # earn | spend
    user_id = Column(String(40), ForeignKey("users.id"), nullable=False)
    offer_id = Column(String(40), nullable=False)
    amount = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default=OrderStatus.OPENED.value)
    meta = Column(JSON, nullable=False, default=dict)
    value = Column(Text, nullable=True)
    blockchain_data = Column(JSON, nullable=True)
    error = Column(JSON, nullable=True)
    created_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    current_status_date = Column(DateTime(timezone=True), nullable=True)

    def __init__(self, **kwargs):
        try:
            kwargs["origin"] = OrderOrigin(kwargs.get("origin")).value
        except ValueError:
            raise ValueError(f"unknown order origin: {kwargs.get('origin')!r}") from None
        super().__init__(**kwargs)

    def set_status(self, status: OrderStatus, now: datetime | None = None) -> None:
        self.status = status.value
        self.current_status_date = now or utcnow()

    @property
    def status_date(self) -> datetime:
        return as_utc(self.current_status_date or self.created_date)

    @property
    def expiration_date(self) -> datetime | None:
        return expiration_date_for(self.status, self.created_date, self.current_status_date)

    def is_expired(self, now: datetime | None = None) -> bool:
        expiration = self.expiration_date
        return expiration is not None and (now or utcnow()) > expiration

    def get_value(self) -> dict | str | None:
        if self.value is None:
            return None
        if self.origin == OrderOrigin.MARKETPLACE:
            return json.loads(self.value)
        if self.origin == OrderOrigin.EXTERNAL:
            return self.value
        raise ValueError(f"unknown order origin: {self.origin!r}")

    def accepts_value(self, value: object) -> bool:
        """Marketplace orders hold a JSON object, external orders a raw string."""
        if self.origin == OrderOrigin.MARKETPLACE:
            return isinstance(value, dict)
        if self.origin == OrderOrigin.EXTERNAL:
            return isinstance(value, str)
        return False

    def set_value(self, value: dict | str) -> None:
        if not self.accepts_value(value):
            raise ValueError(f"{type(value).__name__} value does not fit a {self.origin} order")
        if self.origin == OrderOrigin.MARKETPLACE:
            self.value = json.dumps(value)
        else:
            self.value = value
