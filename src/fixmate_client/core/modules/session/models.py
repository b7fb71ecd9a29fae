"""Session credential models."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Self

from jose import JWTError, jwt
from pydantic import BaseModel, Field


class SessionState(StrEnum):
    """Externally visible session states.

    Valid and expiring credentials are not distinguished here; callers read
    minutes_until_expiry from SessionStatus and pick their own thresholds.
    """

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


def decode_expiry(token: str) -> datetime | None:
    """Read the exp claim of a bearer credential without verifying its signature.

    Raises JWTError when the token is not a decodable JWT.
    """
    claims = jwt.get_unverified_claims(token)
    exp = claims.get("exp")
    if exp is None:
        return None
    return datetime.fromtimestamp(int(exp), UTC)


class Credential(BaseModel):
    """Bearer credential issued by the identity provider."""

    token: str
    expires_at: datetime | None = None
    refresh_token: str | None = None  # Rotated refresh token, when the provider issues one

    @classmethod
    def from_token(cls, token: str, refresh_token: str | None = None) -> Self:
        """Build a credential, taking expiry from the token's own claims when possible."""
        try:
            expires_at = decode_expiry(token)
        except JWTError:
            expires_at = None
        return cls(token=token, expires_at=expires_at, refresh_token=refresh_token)


class SessionStatus(BaseModel):
    """Locally decoded credential status for diagnostics and banners."""

    exists: bool = Field(..., description="Whether a credential is stored")
    expired: bool = Field(..., description="Whether the credential is past its expiry or undecodable")
    expires_at: datetime | None = Field(None, description="Expiry claim of the credential")
    minutes_until_expiry: int | None = Field(None, description="Whole minutes until expiry, negative once expired")
