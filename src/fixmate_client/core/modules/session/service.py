import asyncio
import inspect
import math
from collections.abc import Awaitable, Callable
from typing import Any, TypeAlias

import structlog
from jose import JWTError

from fixmate_client.core.core import Service
from fixmate_client.core.modules.session.models import Credential, SessionState, SessionStatus, decode_expiry
from fixmate_client.core.scheduler import RecurringTimer
from fixmate_client.errors import InvalidSessionError, NotAuthenticatedError, RefreshError

logger = structlog.get_logger(__name__)

SignOutListener: TypeAlias = Callable[[], Awaitable[None] | None]


class SessionService(Service):
    """Owns credential freshness: scheduled and on-demand refresh, expiry status, sign-out."""

    def __init__(self) -> None:
        super().__init__()
        self._timer: RecurringTimer | None = None
        self._refreshing: asyncio.Future[Credential] | None = None
        self._listeners: list[SignOutListener] = []
        self._state = SessionState.UNAUTHENTICATED
        # Bumped on every sign-out so refreshes started before it cannot resurrect a credential
        self._generation = 0

    async def on_start(self) -> None:
        if self.core.store.get_credential() is not None:
            self._state = SessionState.AUTHENTICATED

    async def on_stop(self) -> None:
        self.stop()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state == SessionState.AUTHENTICATED

    @property
    def refreshing(self) -> bool:
        return self._refreshing is not None

    def add_sign_out_listener(self, listener: SignOutListener) -> None:
        """Register a callback for the terminal must-re-authenticate event."""
        self._listeners.append(listener)

    def get_credential(self) -> str | None:
        """Current bearer credential, read from the store."""
        return self.core.store.get_credential()

    def sign_in(self, credential: Credential, profile: dict[str, Any] | None = None) -> None:
        """Store a credential obtained by the sign-in flow."""
        self._write(credential)
        if profile is not None:
            self.core.store.set_profile(profile)
        self._state = SessionState.AUTHENTICATED
        logger.info("signed_in", expires_at=credential.expires_at)

    async def initialize(self) -> None:
        """Refresh once now, then every refresh_interval seconds.

        Calling this twice arms two schedules; callers must pair it with stop().
        """
        logger.info("session_initializing", interval=self.core.config.refresh_interval)
        await self._scheduled_refresh()
        self._arm()

    def ensure_scheduled(self) -> None:
        """Arm the recurring refresh if no schedule is running, e.g. after a sign-in that follows a sign-out."""
        if self._timer is None:
            self._arm()

    def _arm(self) -> None:
        self._timer = RecurringTimer(
            self.core.scheduler, self.core.config.refresh_interval, self._scheduled_refresh, name="credential_refresh"
        )
        self._timer.start()

    def stop(self) -> None:
        """Cancel the recurring refresh. Safe when not initialized."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.info("session_refresh_stopped")

    async def _scheduled_refresh(self) -> None:
        try:
            await self.refresh()
        except NotAuthenticatedError:
            logger.debug("refresh_skipped_no_user")
        except RefreshError as e:
            logger.warning("scheduled_refresh_failed", error=str(e), error_type=type(e).__name__)

    async def refresh(self) -> Credential:
        """Force-refresh the credential, single-flight.

        Concurrent callers share the outstanding attempt and receive its result
        or its error; only one issuer call is made.

        Raises:
            NotAuthenticatedError: the provider has no signed-in user
            InvalidSessionError: the identity session is gone; the session has been signed out
            TransientRefreshError: recoverable failure; the stored credential is untouched
        """
        if self._refreshing is not None:
            logger.debug("refresh_in_progress")
            return await asyncio.shield(self._refreshing)

        task = asyncio.ensure_future(self._refresh_once())
        task.add_done_callback(self._clear_refreshing)
        self._refreshing = task
        return await asyncio.shield(task)

    def _clear_refreshing(self, _task: asyncio.Future[Credential]) -> None:
        self._refreshing = None

    async def _refresh_once(self) -> Credential:
        generation = self._generation
        logger.debug("credential_refreshing")
        try:
            credential = await self.core.issuer.issue()
        except InvalidSessionError as e:
            logger.error("credential_invalid", error=str(e))
            await self.handle_auth_failure()
            raise

        if generation != self._generation:
            logger.info("refresh_result_discarded")
            raise NotAuthenticatedError("Signed out while refreshing")

        self._write(credential)
        self._state = SessionState.AUTHENTICATED
        logger.info("credential_refreshed", token_length=len(credential.token), expires_at=credential.expires_at)
        return credential

    def _write(self, credential: Credential) -> None:
        self.core.store.set_credential(credential.token)
        if credential.refresh_token:
            self.core.store.set_refresh_token(credential.refresh_token)

    async def handle_auth_failure(self) -> None:
        """Clear every stored credential and profile and signal sign-out."""
        logger.warning("auth_failure_clearing_session")
        await self._end_session()

    async def sign_out(self) -> None:
        """User-initiated sign-out."""
        logger.info("signing_out")
        await self._end_session()

    async def _end_session(self) -> None:
        self._generation += 1
        self.stop()
        self.core.store.clear()
        was_authenticated = self._state == SessionState.AUTHENTICATED
        self._state = SessionState.UNAUTHENTICATED
        if not was_authenticated:
            return
        for listener in list(self._listeners):
            try:
                result = listener()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("sign_out_listener_failed")

    def get_status(self) -> SessionStatus:
        """Decode the stored credential's expiry; no network call."""
        token = self.core.store.get_credential()
        if not token:
            return SessionStatus(exists=False, expired=True)

        try:
            expires_at = decode_expiry(token)
        except JWTError:
            logger.warning("credential_undecodable")
            return SessionStatus(exists=True, expired=True)
        if expires_at is None:
            return SessionStatus(exists=True, expired=True)

        remaining = (expires_at - self.core.scheduler.now()).total_seconds()
        return SessionStatus(
            exists=True,
            expired=remaining < 0,
            expires_at=expires_at,
            minutes_until_expiry=math.floor(remaining / 60),
        )
