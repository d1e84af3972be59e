import logging
from collections.abc import Iterable

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

logger = logging.getLogger(__name__)


class Argon2ApiKeyAuthorizer:
    """Checks moderator API keys against stored Argon2 hashes."""

    def __init__(self, hashes: Iterable[str]) -> None:
        self.ph = PasswordHasher()
        self.hashes = list(hashes)

    def hash_key(self, key: str) -> str:
        return str(self.ph.hash(key))

    def is_authorized(self, credential: str | None) -> bool:
        if not credential:
            return False

        for hash_str in self.hashes:
            try:
                self.ph.verify(hash_str, credential)
                return True
            except VerifyMismatchError:
                continue
            except (VerificationError, InvalidHashError) as e:
                logger.error("Error during authentication against configured hash: %s", e)
                continue

        logger.warning("Authentication failed for presented API key")
        return False


class StaticAuthorizer:
    """Authorizer accepting a fixed set of plain keys (tests and local runs)."""

    def __init__(self, keys: Iterable[str]) -> None:
        self.keys = set(keys)

    def is_authorized(self, credential: str | None) -> bool:
        return credential is not None and credential in self.keys
