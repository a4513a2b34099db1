"""Owner identities for sessions and messages."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Anonymous:
    """No signed-in user. Sessions are temporary."""

    @property
    def key(self) -> None:
        return None


@dataclass(frozen=True)
class LocalAccount:
    """A username-only account."""

    username: str

    @property
    def key(self) -> str:
        return f"local:{self.username}"


@dataclass(frozen=True)
class ProvidedAccount:
    """A user authenticated by the identity provider."""

    id: str
    email: str | None = None

    @property
    def key(self) -> str:
        return self.id


OwnerIdentity = Anonymous | LocalAccount | ProvidedAccount

ANONYMOUS = Anonymous()


def owner_key(owner: OwnerIdentity | None) -> str | None:
    """Storage key for an owner, or None when anonymous."""
    if owner is None:
        return None
    return owner.key
