"""Document id generation for local collections."""

import secrets
from typing import Callable, Dict

from ..config import ID_GENERATION_MONGO, ID_GENERATION_STRING
from ..errors import ConfigError

UNMISTAKABLE_CHARS = "23456789ABCDEFGHJKLMNPQRSTWXYZabcdefghijkmnopqrstuvwxyz"
STRING_ID_LENGTH = 17


def random_string_id(length: int = STRING_ID_LENGTH) -> str:
    """Random id built from characters that are hard to confuse visually."""
    return "".join(secrets.choice(UNMISTAKABLE_CHARS) for _ in range(length))


def random_object_id() -> str:
    """24 hex characters, the textual form of an ObjectId."""
    return secrets.token_hex(12)


_GENERATORS: Dict[str, Callable[[], str]] = {
    ID_GENERATION_STRING: random_string_id,
    ID_GENERATION_MONGO: random_object_id,
}


def id_generator(strategy: str) -> Callable[[], str]:
    try:
        return _GENERATORS[strategy]
    except KeyError:
        raise ConfigError(f"Unknown id generation strategy {strategy!r}") from None
