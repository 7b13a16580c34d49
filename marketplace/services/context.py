from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """Authenticated caller, passed explicitly to every service call."""

    app_id: str
    app_user_id: str
    device_id: str | None
    user_id: str
    wallet_address: str | None = None
