"""Configuration accessor interface.

The voice service only needs a generic key-value view of user settings; the
host decides where those values live.
"""

from abc import ABC, abstractmethod
from typing import Any


class IConfigAccessor(ABC):
    """Interface for reading and writing user settings."""

    @abstractmethod
    def get(self, key: str) -> Any:
        """Return the value for key, or None when unset."""
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Persist a value for key."""
        ...
