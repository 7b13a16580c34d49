from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from marketplace.models.offer import OfferType
from marketplace.models.order import OrderOrigin, OrderStatus


class OrderError(BaseModel):
    code: int
    error: str
    message: str | None = None


class OpenOrderResponse(BaseModel):
    id: str
    expiration_date: str

    model_config = {
        "json_schema_extra": {
            "examples": [{"id": "T1a2b3c4d5e6f7g8h9i0j", "expiration_date": "2026-10-17T12:10:00+00:00"}]
        }
    }


class ExternalOrderCreateRequest(BaseModel):
    jwt: str


class OrderSubmitRequest(BaseModel):
    content: str | None = Field(default=None, description="JSON serialized answers of the earn form")


class OrderResponse(BaseModel):
    id: str
    offer_id: str
    origin: OrderOrigin
    status: OrderStatus
    error: OrderError | None = None
    completion_date: str
    title: str
    description: str
    amount: int
    blockchain_data: dict[str, Any] | None = None


class MarketplaceOrderResponse(OrderResponse):
    origin: Literal["marketplace"] = OrderOrigin.MARKETPLACE.value
    offer_type: OfferType
    content: str | None = None
    call_to_action: str | None = None
    result: dict[str, Any] | None = None


class ExternalOrderResponse(OrderResponse):
    origin: Literal["external"] = OrderOrigin.EXTERNAL.value


AnyOrderResponse = Annotated[
    MarketplaceOrderResponse | ExternalOrderResponse,
    Field(discriminator="origin"),
]


class PagingCursors(BaseModel):
    before: str | None = None
    after: str | None = None


class Paging(BaseModel):
    cursors: PagingCursors
    previous: str | None = None
    next: str | None = None


class OrderListResponse(BaseModel):
    orders: list[AnyOrderResponse]
    paging: Paging
