from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from fixmate_client.config import Config
from fixmate_client.core.core import Core
from fixmate_client.core.modules.notification.models import NotificationRecord
from fixmate_client.core.modules.session.issuer import CredentialIssuer
from fixmate_client.core.modules.session.models import Credential, SessionStatus
from fixmate_client.core.modules.session.service import SignOutListener
from fixmate_client.core.modules.storage.storage import KeyValueStorage
from fixmate_client.core.modules.toast.models import Toast, ToastType
from fixmate_client.core.modules.toast.service import ToastListener
from fixmate_client.core.scheduler import Scheduler


class App:
    """Facade for UI code; construct once at startup and pass it to consumers."""

    def __init__(
        self,
        config: Config,
        *,
        issuer: CredentialIssuer | None = None,
        scheduler: Scheduler | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        persistent_storage: KeyValueStorage | None = None,
    ) -> None:
        self._core = Core(
            config, issuer=issuer, scheduler=scheduler, transport=transport, persistent_storage=persistent_storage
        )

    @property
    def core(self) -> Core:
        return self._core

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Client lifespan management - delegates to Core."""
        async with self._core.lifespan():
            yield

    async def sign_in(self, credential: Credential, profile: dict[str, Any] | None = None) -> None:
        """Store a credential from the sign-in flow, resume scheduled refresh and start polling."""
        self._core.services.session.sign_in(credential, profile)
        self._core.services.session.ensure_scheduled()
        await self._core.services.poller.start()

    async def sign_out(self) -> None:
        await self._core.services.session.sign_out()

    def on_sign_out(self, listener: SignOutListener) -> None:
        """Register for the terminal sign-out event (navigate to sign-in, etc.)."""
        self._core.services.session.add_sign_out_listener(listener)

    def session_status(self) -> SessionStatus:
        return self._core.services.session.get_status()

    async def refresh_credential(self) -> Credential:
        return await self._core.services.session.refresh()

    def get_credential(self) -> str | None:
        return self._core.services.session.get_credential()

    def get_profile(self) -> dict[str, Any] | None:
        return self._core.store.get_profile()

    async def request(self, method: str, path: str, *, params: dict[str, Any] | None = None, json: Any = None) -> Any:
        """Authenticated backend call for domain features (bookings, chat, ...)."""
        return await self._core.api.request(method, path, params=params, json=json)

    def set_visible(self, visible: bool) -> None:
        self._core.services.poller.set_visible(visible)

    async def check_notifications(self) -> list[NotificationRecord]:
        """Explicit check, e.g. when the bell is opened."""
        return await self._core.services.poller.check_now()

    @property
    def toasts(self) -> list[Toast]:
        return self._core.services.toast.toasts

    def on_toasts_changed(self, listener: ToastListener) -> None:
        self._core.services.toast.add_listener(listener)

    def show_toast(self, title: str, body: str, toast_type: ToastType = ToastType.INFO, duration: float | None = None) -> Toast:
        return self._core.services.toast.show_toast(title, body, toast_type, duration)

    def dismiss_toast(self, client_id: str) -> None:
        self._core.services.toast.remove_toast(client_id)

    @property
    def unread_count(self) -> int:
        return self._core.services.read_state.unread_count

    @property
    def notifications(self) -> list[NotificationRecord]:
        return self._core.services.read_state.notifications

    async def load_unread_count(self) -> int:
        return await self._core.services.read_state.load_unread_count()

    async def fetch_notifications(self, page: int = 1, limit: int = 20) -> list[NotificationRecord]:
        return await self._core.services.read_state.fetch_notifications(page, limit)

    async def mark_as_read(self, notification_id: str) -> bool:
        return await self._core.services.read_state.mark_as_read(notification_id)

    async def mark_multiple_as_read(self, notification_ids: list[str]) -> bool:
        return await self._core.services.read_state.mark_multiple_as_read(notification_ids)

    async def mark_all_as_read(self) -> bool:
        return await self._core.services.read_state.mark_all_as_read()

    async def delete_notification(self, notification_id: str) -> bool:
        return await self._core.services.read_state.delete_notification(notification_id)

    async def clear_notifications(self) -> bool:
        return await self._core.services.read_state.clear_all()
