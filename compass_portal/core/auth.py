"""Bearer token storage and session identity.

The portal never validates tokens itself; the backend does. Claims are
read without verification only to show who is signed in.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from jose import JWTError, jwt
from pydantic import BaseModel

from compass_portal.core.config import Settings

logger = logging.getLogger(__name__)

# Claim spellings seen in tokens issued by the backend
_NAME_CLAIMS = ("name", "unique_name", "given_name", "preferred_username")
_EMAIL_CLAIMS = (
    "email",
    "upn",
    "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/emailaddress",
)
_ORG_CLAIMS = ("organizationId", "organization_id", "orgId", "tid")
_ROLE_CLAIMS = ("roles", "role", "http://schemas.microsoft.com/ws/2008/06/identity/claims/role")


class User(BaseModel):
    """Signed-in user as described by the token claims."""

    id: str
    email: str | None = None
    name: str | None = None
    organization_id: str | None = None
    roles: list[str] = []

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.id


def decode_claims(token: str) -> dict[str, Any]:
    """Read JWT claims without verifying the signature.

    Opaque (non-JWT) tokens yield an empty dict.
    """
    try:
        return jwt.get_unverified_claims(token)
    except JWTError as e:
        logger.debug(f"Token is not a readable JWT: {e}")
        return {}


def _first_claim(claims: dict[str, Any], names: tuple[str, ...]) -> Any:
    for name in names:
        value = claims.get(name)
        if value:
            return value
    return None


def user_from_claims(claims: dict[str, Any]) -> User | None:
    subject = claims.get("sub") or claims.get("nameid") or claims.get("oid")
    if not subject:
        return None

    roles = _first_claim(claims, _ROLE_CLAIMS) or []
    if isinstance(roles, str):
        roles = [roles]

    return User(
        id=str(subject),
        email=_first_claim(claims, _EMAIL_CLAIMS),
        name=_first_claim(claims, _NAME_CLAIMS),
        organization_id=_first_claim(claims, _ORG_CLAIMS),
        roles=list(roles),
    )


@dataclass(frozen=True)
class Session:
    """Immutable authentication state handed to the API client."""

    token: str | None = None
    user: User | None = None
    expires_at: datetime | None = None

    @classmethod
    def from_token(cls, token: str | None) -> "Session":
        if not token:
            return cls()
        claims = decode_claims(token)
        expires_at = None
        if isinstance(claims.get("exp"), (int, float)):
            expires_at = datetime.fromtimestamp(claims["exp"], tz=timezone.utc)
        return cls(token=token, user=user_from_claims(claims), expires_at=expires_at)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= datetime.now(timezone.utc)

    def auth_headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}


class TokenStore:
    """Persists the bearer token between console runs.

    ``COMPASS_TOKEN`` in the environment takes precedence over the file.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def path(self):
        return self.settings.token_file

    def load(self) -> str | None:
        if self.settings.token:
            return self.settings.token.strip() or None
        if not self.path.exists():
            return None
        token = self.path.read_text(encoding="utf-8").strip()
        return token or None

    def save(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(token.strip(), encoding="utf-8")
        os.chmod(self.path, 0o600)
        logger.info(f"Saved bearer token to {self.path}")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
        logger.info("Cleared stored bearer token")

    def session(self) -> Session:
        return Session.from_token(self.load())
