from typing import Any

from pydantic import BaseModel, Field


class PaymentCompletedCallback(BaseModel):
    id: str = Field(description="Order id the payment belongs to")
    app_id: str | None = None
    transaction_id: str
    sender_address: str | None = None
    recipient_address: str | None = None
    amount: int
    timestamp: str | None = None
    value: dict[str, Any] | str | None = None


class PaymentFailedCallback(BaseModel):
    id: str
    reason: str = "transaction failed"
    transaction_id: str | None = None


class CallbackAck(BaseModel):
    received: bool = True
