import secrets
from enum import Enum

ID_LENGTH = 20
ID_CHARS = "1234567890abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"


class IdPrefix(str, Enum):
    USER = "U"
    APP = "A"
    TRANSACTION = "T"
    OFFER = "O"
    NONE = ""


def generate_id(prefix: IdPrefix | str = IdPrefix.NONE, length: int = ID_LENGTH) -> str:
    """Return ``prefix`` followed by ``length`` cryptographically random characters."""
    if length <= 0:
        raise ValueError("id length must be positive")
    prefix_value = prefix.value if isinstance(prefix, IdPrefix) else prefix
    return prefix_value + "".join(secrets.choice(ID_CHARS) for _ in range(length))
