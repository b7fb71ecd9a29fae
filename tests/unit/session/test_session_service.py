"""Tests for the session lifecycle manager."""

import asyncio
from datetime import timedelta

import pytest
from conftest import make_token

from fixmate_client.core.modules.session.models import Credential, SessionState
from fixmate_client.core.modules.storage.store import CREDENTIAL_KEYS, PROFILE_KEYS
from fixmate_client.errors import InvalidSessionError, NotAuthenticatedError, TransientRefreshError


class TestSingleFlightRefresh:
    """Tests for concurrent refresh calls."""

    async def test_concurrent_calls_share_one_issuer_call(self, app, issuer):
        """Test that N concurrent refreshes make one issuer call and get one credential."""
        session = app.core.services.session
        issuer.gate = asyncio.Event()

        tasks = [asyncio.create_task(session.refresh()) for _ in range(4)]
        await asyncio.sleep(0)
        assert session.refreshing
        issuer.gate.set()
        results = await asyncio.gather(*tasks)

        assert issuer.calls == 1
        assert len({credential.token for credential in results}) == 1
        assert app.get_credential() == results[0].token
        assert not session.refreshing

    async def test_concurrent_calls_share_failure(self, app, issuer):
        """Test that every concurrent caller observes the same failure."""
        session = app.core.services.session
        issuer.gate = asyncio.Event()
        issuer.errors.append(TransientRefreshError())

        tasks = [asyncio.create_task(session.refresh()) for _ in range(3)]
        await asyncio.sleep(0)
        issuer.gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert issuer.calls == 1
        assert all(isinstance(result, TransientRefreshError) for result in results)

    async def test_sequential_refreshes_each_call_issuer(self, app, issuer):
        """Test that the guard is released once a refresh settles."""
        session = app.core.services.session
        await session.refresh()
        await session.refresh()
        assert issuer.calls == 2


class TestRefreshFailures:
    """Tests for failure classification."""

    async def test_transient_failure_keeps_credential(self, app, issuer, signed_in):
        """Test that a transient failure leaves the stored credential untouched."""
        issuer.errors.append(TransientRefreshError())

        with pytest.raises(TransientRefreshError):
            await app.core.services.session.refresh()

        assert app.get_credential() == signed_in
        assert app.core.services.session.is_authenticated

    async def test_invalid_session_clears_and_signals(self, app, issuer, signed_in):
        """Test that an invalid identity session escalates to sign-out."""
        signals = []
        app.on_sign_out(lambda: signals.append(True))
        issuer.errors.append(InvalidSessionError())

        with pytest.raises(InvalidSessionError):
            await app.core.services.session.refresh()

        assert app.get_credential() is None
        assert app.get_profile() is None
        assert app.core.services.session.state == SessionState.UNAUTHENTICATED
        assert signals == [True]

    async def test_refresh_finishing_after_sign_out_is_discarded(self, app, issuer, signed_in):
        """Test that a sign-out during an in-flight refresh wins."""
        session = app.core.services.session
        issuer.gate = asyncio.Event()

        task = asyncio.create_task(session.refresh())
        # First pass starts the refresh, second lets the issuer call begin
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert issuer.calls == 1
        await session.sign_out()
        issuer.gate.set()

        with pytest.raises(NotAuthenticatedError):
            await task
        assert app.get_credential() is None


class TestHandleAuthFailure:
    """Tests for the sign-out escalation."""

    async def test_listener_fires_once_per_session(self, app, signed_in):
        """Test that repeated failures signal only while authenticated."""
        session = app.core.services.session
        signals = []
        session.add_sign_out_listener(lambda: signals.append(True))

        await session.handle_auth_failure()
        await session.handle_auth_failure()

        assert signals == [True]

    async def test_async_listener_awaited(self, app, signed_in):
        """Test that coroutine listeners run to completion."""
        done = []

        async def listener():
            done.append(True)

        app.on_sign_out(listener)
        await app.core.services.session.handle_auth_failure()
        assert done == [True]

    async def test_failing_listener_does_not_block_others(self, app, signed_in):
        """Test that one broken listener does not stop the rest."""
        signals = []

        def broken():
            raise RuntimeError("boom")

        app.on_sign_out(broken)
        app.on_sign_out(lambda: signals.append(True))
        await app.core.services.session.handle_auth_failure()
        assert signals == [True]


class TestStatus:
    """Tests for local expiry introspection."""

    async def test_no_credential(self, app):
        """Test status without a stored credential."""
        status = app.session_status()
        assert status.exists is False
        assert status.expired is True

    async def test_valid_credential(self, app, signed_in, scheduler):
        """Test status of a credential valid for an hour."""
        status = app.session_status()
        assert status.exists is True
        assert status.expired is False
        assert status.minutes_until_expiry == 60
        assert status.expires_at == scheduler.now() + timedelta(hours=1)

    async def test_expired_credential(self, app, scheduler):
        """Test that a credential past its exp claim reads as expired."""
        token = make_token(scheduler.now() - timedelta(minutes=5))
        app.core.services.session.sign_in(Credential.from_token(token))

        status = app.session_status()
        assert status.expired is True
        assert status.minutes_until_expiry == -5

    async def test_undecodable_credential(self, app):
        """Test that an opaque non-JWT credential reads as expired."""
        app.core.services.session.sign_in(Credential(token="not-a-jwt"))
        status = app.session_status()
        assert status.exists is True
        assert status.expired is True


class TestSchedule:
    """Tests for the recurring refresh."""

    async def test_initialize_refreshes_now_and_every_interval(self, app, issuer, scheduler, config):
        """Test the immediate refresh and the recurring cadence."""
        session = app.core.services.session
        await session.initialize()
        assert issuer.calls == 1

        await scheduler.advance(config.refresh_interval - 1)
        assert issuer.calls == 1
        await scheduler.advance(1)
        assert issuer.calls == 2
        await scheduler.advance(config.refresh_interval * 2)
        assert issuer.calls == 4

    async def test_stop_cancels_schedule(self, app, issuer, scheduler, config):
        """Test that no refresh happens after stop()."""
        session = app.core.services.session
        await session.initialize()
        session.stop()

        await scheduler.advance(config.refresh_interval * 3)
        assert issuer.calls == 1

    async def test_stop_without_initialize(self, app):
        """Test that stop() is safe when never initialized."""
        app.core.services.session.stop()

    async def test_scheduled_transient_failure_keeps_loop_alive(self, app, issuer, scheduler, config):
        """Test that a failed scheduled refresh does not stop later ones."""
        session = app.core.services.session
        await session.initialize()
        issuer.errors.append(TransientRefreshError())

        await scheduler.advance(config.refresh_interval)
        await scheduler.advance(config.refresh_interval)

        assert issuer.calls == 3
        assert session.is_authenticated


class TestEndToEnd:
    """Full lifecycle from an empty store to a provider-forced sign-out."""

    async def test_initialize_then_invalid_session(self, app, issuer, scheduler, config):
        """Test initialize, one refresh, then a rejected scheduled refresh clearing all locations."""
        store = app.core.store
        signals = []
        app.on_sign_out(lambda: signals.append(True))
        assert app.get_credential() is None

        await app.core.services.session.initialize()
        assert issuer.calls == 1
        assert app.session_status().expired is False

        issuer.errors.append(InvalidSessionError())
        await scheduler.advance(config.refresh_interval)

        assert issuer.calls == 2
        for scope in (store.persistent, store.tab):
            for key in (*CREDENTIAL_KEYS, *PROFILE_KEYS):
                assert scope.get(key) is None
        assert signals == [True]

        await scheduler.advance(config.refresh_interval * 2)
        assert issuer.calls == 2
