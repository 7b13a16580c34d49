from marketplace.schemas.orders import (
    ExternalOrderCreateRequest,
    ExternalOrderResponse,
    MarketplaceOrderResponse,
    OpenOrderResponse,
    OrderListResponse,
    OrderResponse,
    OrderSubmitRequest,
)
from marketplace.schemas.webhooks import CallbackAck, PaymentCompletedCallback, PaymentFailedCallback

__all__ = [
    "ExternalOrderCreateRequest",
    "ExternalOrderResponse",
    "MarketplaceOrderResponse",
    "OpenOrderResponse",
    "OrderListResponse",
    "OrderResponse",
    "OrderSubmitRequest",
    "CallbackAck",
    "PaymentCompletedCallback",
    "PaymentFailedCallback",
]
