"""Identity provider access: force-refreshing the bearer credential."""

from abc import ABC, abstractmethod

import httpx
import structlog

from fixmate_client.core.adapters import parse_credential
from fixmate_client.core.modules.session.models import Credential
from fixmate_client.core.modules.storage.store import CredentialStore
from fixmate_client.errors import InvalidSessionError, NotAuthenticatedError, TransientRefreshError

logger = structlog.get_logger(__name__)

# Provider error codes meaning the identity session itself is gone
INVALID_SESSION_CODES = frozenset(
    {
        "auth/user-token-expired",
        "auth/invalid-user-token",
        "auth/user-disabled",
        "auth/user-not-found",
    }
)


class CredentialIssuer(ABC):
    """Opaque credential issuer capability of the identity provider."""

    @abstractmethod
    async def issue(self) -> Credential:
        """Force-refresh and return a fresh credential.

        Raises:
            NotAuthenticatedError: no signed-in user to refresh
            InvalidSessionError: the identity session is invalid or expired
            TransientRefreshError: any recoverable failure
        """


def _error_code(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict):
        code = error.get("code") or error.get("message")
    else:
        code = body.get("code") or error
    return code if isinstance(code, str) else None


class HttpCredentialIssuer(CredentialIssuer):
    """Issuer calling POST {identity_url}/refresh with the stored refresh token."""

    def __init__(self, client: httpx.AsyncClient, identity_url: str, store: CredentialStore) -> None:
        self._client = client
        self._url = identity_url.rstrip("/") + "/refresh"
        self._store = store

    async def issue(self) -> Credential:
        refresh_token = self._store.get_refresh_token()
        if refresh_token is None:
            raise NotAuthenticatedError

        try:
            response = await self._client.post(self._url, json={"refreshToken": refresh_token})
        except httpx.TransportError as e:
            raise TransientRefreshError(f"Identity provider unreachable: {e!s}") from e

        if response.is_success:
            try:
                return parse_credential(response.json())
            except ValueError as e:
                raise TransientRefreshError(f"Malformed refresh response: {e!s}") from e

        code = _error_code(response)
        logger.debug("refresh_rejected", status=response.status_code, code=code)
        if code in INVALID_SESSION_CODES or response.status_code == httpx.codes.UNAUTHORIZED:
            raise InvalidSessionError(code or "Identity session is invalid")
        raise TransientRefreshError(f"Refresh failed with status {response.status_code}")
