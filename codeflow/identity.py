"""User identity as seen by the persistence core."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

# Storage key used for every guest session on this device
GUEST_USER_KEY = "offline-guest"


@dataclass(frozen=True)
class Authenticated:
    """A signed-in user whose data may be synchronized remotely."""

    user_id: str
    display_name: str = ""

    @property
    def storage_key(self) -> str:
        return self.user_id

    @property
    def author(self) -> str:
        return self.display_name or self.user_id


@dataclass(frozen=True)
class Guest:
    """The offline identity. Never participates in remote operations."""

    display_name: str = "Guest"

    @property
    def storage_key(self) -> str:
        return GUEST_USER_KEY

    @property
    def author(self) -> str:
        return self.display_name


Identity = Authenticated | Guest


class IdentityProvider(ABC):
    """Source of the identity operations are performed as."""

    @abstractmethod
    def current_identity(self) -> Identity:
        """Return the identity of the current user."""
        pass


class StaticIdentityProvider(IdentityProvider):
    """Identity fixed at construction, typically from configuration.

    An empty user id yields the guest identity.
    """

    def __init__(self, user_id: str = "", display_name: str = ""):
        if user_id:
            self._identity: Identity = Authenticated(user_id, display_name)
        else:
            self._identity = Guest(display_name or "Guest")

    def current_identity(self) -> Identity:
        return self._identity
