from sqlalchemy import JSON, Column, DateTime, String

from marketplace.models.database import Base, utcnow
from marketplace.services.ids import IdPrefix, generate_id

DEFAULT_APP_LIMITS = {
    "hourly_registration": 200_000,
    "minute_registration": 10_000,
    "hourly_total_earn": 5_000_000,
    "minute_total_earn": 250_000,
    "daily_user_earn": 5_000,
}


class Application(Base):
    __tablename__ = "applications"

    id = Column(String(40), primary_key=True, default=lambda: generate_id(IdPrefix.APP))
    name = Column(String(255), nullable=False)
    api_key = Column(String(40), unique=True, nullable=False, default=lambda: generate_id(IdPrefix.APP))
    wallet_address = Column(String(56), nullable=True)
    # kid -> {"algorithm": ..., "key": ...}
    jwt_public_keys = Column(JSON, nullable=False, default=dict)
    config = Column(JSON, nullable=False, default=dict)
    created_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def limits(self) -> dict[str, int]:
        configured = (self.config or {}).get("limits") or {}
        return {**DEFAULT_APP_LIMITS, **configured}
