import secrets
import string
from typing import Protocol

_ALPHABET = string.ascii_letters + string.digits


class IIDGenerator(Protocol):
    """
    Protocol for document id generation strategies.
    Used when an entity is inserted without a key.
    """

    def next_id(self) -> str:
        """Generates the next unique document id."""
        ...


class DocumentIdGenerator(IIDGenerator):
    """
    Random alphanumeric ids in the shape auto-generated store ids take.
    """

    def __init__(self, length: int = 20) -> None:
        self._length = length

    def next_id(self) -> str:
        return "".join(secrets.choice(_ALPHABET) for _ in range(self._length))
