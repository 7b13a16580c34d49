from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint

from marketplace.models.database import Base, utcnow
from marketplace.services.ids import IdPrefix, generate_id


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("app_id", "app_user_id", name="uq_users_app_user"),)

    id = Column(String(40), primary_key=True, default=lambda: generate_id(IdPrefix.USER))
    app_id = Column(String(40), ForeignKey("applications.id"), nullable=False, index=True)
    app_user_id = Column(String(255), nullable=False)
    device_id = Column(String(255), nullable=True)
    wallet_address = Column(String(56), nullable=True)
    created_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
