"""Marketplace error taxonomy.

Every error carries a numeric ``code`` (HTTP status followed by an index), a
short ``error`` name and a human readable ``message``. Errors raised by the
order engine are ``HTTPException`` subclasses so they reach the API boundary
unchanged; their ``detail`` is the structured record.

Payment failures are never raised to the client. They are recorded on the
order through :func:`transaction_failed`.
"""

from fastapi import HTTPException, status


class MarketplaceError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = 5000

    def __init__(self, message: str, headers: dict[str, str] | None = None):
        self.error = type(self).__name__
        self.message = message
        super().__init__(status_code=self.status_code, detail=self.to_dict(), headers=headers)

    def to_dict(self) -> dict:
        return {"code": self.code, "error": self.error, "message": self.message}


class Unauthorized(MarketplaceError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class MissingToken(Unauthorized):
    code = 4011


class InvalidToken(Unauthorized):
    code = 4012


class MissingSignature(Unauthorized):
    code = 4013


class InvalidSignature(Unauthorized):
    code = 4014


class BadRequest(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = 4000


class InvalidPollAnswers(BadRequest):
    code = 4001


class MissingWalletAddress(BadRequest):
    code = 4002


class InvalidExternalOrderJwt(BadRequest):
    code = 4003


class InvalidCursor(BadRequest):
    code = 4004


class NotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = 4040


class NoSuchApp(NotFound):
    code = 4041


class NoSuchOffer(NotFound):
    code = 4042


class NoSuchOrder(NotFound):
    code = 4043


class OfferCapReached(NotFound):
    code = 4045


class OpenOrderExpired(MarketplaceError):
    status_code = status.HTTP_408_REQUEST_TIMEOUT
    code = 4081


class OpenedOrdersOnly(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    code = 4091


class RateLimited(MarketplaceError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = 4290


class TooManyRegistrations(RateLimited):
    code = 4291


class TooMuchEarnOrdered(RateLimited):
    code = 4292


class OpenedOrdersUnreturnable(MarketplaceError):
    code = 5001


class OrderLockTimeout(MarketplaceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = 5031


TRANSACTION_FAILED_CODES = {
    "WrongSender": 7001,
    "WrongRecipient": 7002,
    "WrongAmount": 7003,
    "AssetUnavailable": 7004,
    "BlockchainError": 7005,
    "TransactionTimeout": 7006,
}


def transaction_failed(error: str, message: str) -> dict:
    """Build the error record stored on an order whose payment failed."""
    return {"code": TRANSACTION_FAILED_CODES[error], "error": error, "message": message}
