from typing import Protocol


class AuthorizerPort(Protocol):
    def is_authorized(self, credential: str | None) -> bool:
        """Return True if the credential grants moderator access."""
        ...
