"""Authenticated backend access with the one-refresh, one-retry contract."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

import httpx
import structlog

from fixmate_client.errors import ApiError, AuthorizationError, RefreshError, SessionExpiredError

if TYPE_CHECKING:
    from fixmate_client.core.modules.session.service import SessionService

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def call_with_session_retry(session: SessionService, call: Callable[[str | None], Awaitable[T]]) -> T:
    """Run an authenticated call, refreshing and retrying once on AuthorizationError.

    ``call`` receives the bearer credential and raises AuthorizationError when
    the backend rejects it. At most two attempts are made; anything beyond
    surfaces as SessionExpiredError.
    """
    try:
        return await call(session.get_credential())
    except AuthorizationError:
        logger.info("call_unauthorized_refreshing")

    try:
        credential = await session.refresh()
    except RefreshError as e:
        logger.warning("refresh_after_unauthorized_failed", error=str(e), error_type=type(e).__name__)
        raise SessionExpiredError from e

    try:
        return await call(credential.token)
    except AuthorizationError as e:
        logger.warning("retry_still_unauthorized")
        await session.handle_auth_failure()
        raise SessionExpiredError from e


def _error_message(data: Any, response: httpx.Response) -> str:
    if isinstance(data, dict) and isinstance(data.get("message"), str):
        return data["message"]
    return f"Request failed with status {response.status_code}"


class ApiClient:
    """JSON client for the backend; every request honors the retry contract."""

    def __init__(self, client: httpx.AsyncClient, base_url: str, session: SessionService) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._session = session

    async def request(
        self, method: str, path: str, *, params: dict[str, Any] | None = None, json: Any = None
    ) -> Any:
        url = f"{self._base_url}{path}"

        async def send(token: str | None) -> Any:
            headers = {"Content-Type": "application/json"}
            if token:
                headers["Authorization"] = f"Bearer {token}"
            try:
                response = await self._client.request(method, url, params=params, json=json, headers=headers)
            except httpx.TransportError as e:
                logger.warning("api_network_error", method=method, path=path, error=str(e))
                raise ApiError("Network error. Please check your connection.", is_network_error=True) from e

            if response.status_code == httpx.codes.UNAUTHORIZED:
                raise AuthorizationError

            try:
                data = response.json() if response.content else None
            except ValueError:
                data = None

            if not response.is_success:
                logger.warning("api_error", method=method, path=path, status=response.status_code)
                raise ApiError(_error_message(data, response), status=response.status_code, data=data)
            return data

        return await call_with_session_retry(self._session, send)

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def put(self, path: str, json: Any = None) -> Any:
        return await self.request("PUT", path, json=json)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)
