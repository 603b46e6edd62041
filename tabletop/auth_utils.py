from typing import Dict, Optional, Tuple

from passlib.context import CryptContext

from .config import Settings
from .constants import Role

# -----------------------------
# Password hashing helpers
# -----------------------------

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    """Return a salted hash of *password*."""
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    """Verify *password* against *hashed*."""
    return pwd_context.verify(password, hashed)


# -----------------------------
# Hardcoded login table
# -----------------------------

class CredentialTable:
    """Role -> (required display name, password hash) from the settings.

    Players need no credential. This is the upstream trust boundary the room
    core relies on, not a security feature.
    """

    def __init__(self, settings: Settings):
        reserved = settings.reserved_host_name.strip() or None
        self._entries: Dict[Role, Tuple[Optional[str], str]] = {
            Role.HOST: (reserved, hash_password(settings.host_password)),
            Role.CREATOR: (None, hash_password(settings.creator_password)),
        }

    def check(self, role: Role, display_name: str, credential: Optional[str]) -> Optional[str]:
        """Return ``None`` when the login is accepted, otherwise a reason kind."""
        if not display_name.strip():
            return "MissingFields"
        entry = self._entries.get(role)
        if entry is None:
            return None
        required_name, hashed = entry
        if required_name is not None and display_name.strip().casefold() != required_name.casefold():
            return "NotAuthorizedForHost"
        if not credential or not verify_password(credential, hashed):
            return "InvalidCredentials"
        return None


__all__ = [
    "pwd_context",
    "hash_password",
    "verify_password",
    "CredentialTable",
]
