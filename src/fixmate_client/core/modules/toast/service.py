from collections.abc import Callable
from functools import partial
from typing import TypeAlias

import structlog

from fixmate_client.core.core import Service
from fixmate_client.core.modules.notification.models import NotificationRecord
from fixmate_client.core.modules.toast.models import Toast, ToastType
from fixmate_client.core.scheduler import TimerHandle
from fixmate_client.errors import SessionExpiredError
from fixmate_client.utils import local_id

logger = structlog.get_logger(__name__)

ToastListener: TypeAlias = Callable[[list[Toast]], None]


class ToastService(Service):
    """Bounded, deduplicated queue of toasts in insertion order.

    Inserting beyond capacity evicts the oldest entries. Each insert arms an
    auto-removal timer and, for unread server records, a delayed mark-as-read.
    """

    def __init__(self) -> None:
        super().__init__()
        self._toasts: list[Toast] = []
        self._removal_timers: dict[str, TimerHandle] = {}
        self._listeners: list[ToastListener] = []

    async def on_stop(self) -> None:
        for handle in self._removal_timers.values():
            handle.cancel()
        self._removal_timers.clear()

    @property
    def toasts(self) -> list[Toast]:
        return list(self._toasts)

    def add_listener(self, listener: ToastListener) -> None:
        """Register a renderer callback invoked with the entries after every change."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        snapshot = self.toasts
        for listener in self._listeners:
            listener(snapshot)

    def add_toast(
        self,
        record: NotificationRecord,
        toast_type: ToastType = ToastType.INFO,
        duration: float | None = None,
        *,
        is_local: bool = False,
    ) -> bool:
        """Insert a toast; returns False when one with the same client id is already queued."""
        config = self.core.config
        client_id = record.id
        if any(toast.client_id == client_id for toast in self._toasts):
            logger.debug("toast_duplicate", client_id=client_id)
            return False

        toast = Toast(
            client_id=client_id,
            record=record,
            type=toast_type,
            duration=config.toast_duration if duration is None else duration,
            is_local=is_local,
        )
        self._toasts.append(toast)
        while len(self._toasts) > config.toast_capacity:
            evicted = self._toasts.pop(0)
            self._cancel_removal(evicted.client_id)
            logger.debug("toast_evicted", client_id=evicted.client_id)

        scheduler = self.core.scheduler
        if not is_local and not record.is_read:
            scheduler.call_later(config.mark_read_delay, partial(self._mark_read, record.id))
        self._removal_timers[client_id] = scheduler.call_later(toast.duration, partial(self.remove_toast, client_id))

        logger.debug("toast_added", client_id=client_id, priority=record.priority, queued=len(self._toasts))
        self._notify()
        return True

    def remove_toast(self, client_id: str) -> None:
        self._cancel_removal(client_id)
        remaining = [toast for toast in self._toasts if toast.client_id != client_id]
        if len(remaining) == len(self._toasts):
            return
        self._toasts = remaining
        self._notify()

    def show_toast(self, title: str, body: str, toast_type: ToastType = ToastType.INFO, duration: float | None = None) -> Toast:
        """Show a client-generated toast that no server record backs."""
        record = NotificationRecord(id=local_id(), title=title, body=body, category="local", is_read=True)
        self.add_toast(record, toast_type, duration, is_local=True)
        return self._toasts[-1]

    def _cancel_removal(self, client_id: str) -> None:
        handle = self._removal_timers.pop(client_id, None)
        if handle is not None:
            handle.cancel()

    async def _mark_read(self, notification_id: str) -> None:
        try:
            await self.core.services.read_state.mark_as_read(notification_id)
        except SessionExpiredError:
            logger.warning("toast_mark_read_session_expired", notification_id=notification_id)
