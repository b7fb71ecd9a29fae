import structlog

from fixmate_client.core.core import Service
from fixmate_client.core.modules.notification.models import NotificationRecord
from fixmate_client.errors import ApiError

logger = structlog.get_logger(__name__)


class ReadStateService(Service):
    """Single source of truth for unread count and local read flags.

    Mutations are optimistic: local state changes first, then the backend is
    called. A failed backend call is logged and reported through the return
    value; the local change is kept and load_unread_count() resynchronizes.
    """

    def __init__(self) -> None:
        super().__init__()
        self._records: dict[str, NotificationRecord] = {}
        self._unread_count = 0

    async def on_start(self) -> None:
        self.core.services.session.add_sign_out_listener(self.reset)

    @property
    def unread_count(self) -> int:
        return self._unread_count

    @property
    def notifications(self) -> list[NotificationRecord]:
        return list(self._records.values())

    def get(self, notification_id: str) -> NotificationRecord | None:
        return self._records.get(notification_id)

    def reset(self) -> None:
        self._records.clear()
        self._unread_count = 0

    def ingest(self, records: list[NotificationRecord]) -> None:
        """Cache records delivered by the poller.

        The count is left alone: the server count already includes these records,
        and only load_unread_count() or fetch_notifications() set it.
        """
        for record in records:
            self._records.setdefault(record.id, record)

    def _decrement(self) -> None:
        self._unread_count = max(0, self._unread_count - 1)

    async def load_unread_count(self) -> int:
        """Replace the local count with the server's."""
        self._unread_count = await self.core.notifications_api.get_unread_count()
        logger.debug("unread_count_loaded", count=self._unread_count)
        return self._unread_count

    async def fetch_notifications(self, page: int = 1, limit: int = 20) -> list[NotificationRecord]:
        """Replace the local cache with a page from the server and recount unread."""
        records = await self.core.notifications_api.get_notifications(page, limit)
        self._records = {record.id: record for record in records}
        self._unread_count = sum(1 for record in records if not record.is_read)
        return records

    async def mark_as_read(self, notification_id: str) -> bool:
        record = self._records.get(notification_id)
        if record is None or not record.is_read:
            if record is not None:
                record.is_read = True
            self._decrement()

        try:
            await self.core.notifications_api.mark_as_read(notification_id)
        except ApiError as e:
            logger.warning("mark_as_read_failed", notification_id=notification_id, error=str(e))
            return False
        return True

    async def mark_multiple_as_read(self, notification_ids: list[str]) -> bool:
        """Mark a selection read in one backend call; each id counts as in mark_as_read()."""
        notification_ids = list(dict.fromkeys(notification_ids))
        if not notification_ids:
            return True
        for notification_id in notification_ids:
            record = self._records.get(notification_id)
            if record is None or not record.is_read:
                if record is not None:
                    record.is_read = True
                self._decrement()

        try:
            await self.core.notifications_api.mark_multiple_as_read(notification_ids)
        except ApiError as e:
            logger.warning("mark_multiple_as_read_failed", count=len(notification_ids), error=str(e))
            return False
        return True

    async def mark_all_as_read(self) -> bool:
        for record in self._records.values():
            record.is_read = True
        self._unread_count = 0

        try:
            await self.core.notifications_api.mark_all_as_read()
        except ApiError as e:
            logger.warning("mark_all_as_read_failed", error=str(e))
            return False
        return True

    async def delete_notification(self, notification_id: str) -> bool:
        record = self._records.pop(notification_id, None)
        if record is not None and not record.is_read:
            self._decrement()

        try:
            await self.core.notifications_api.delete(notification_id)
        except ApiError as e:
            logger.warning("delete_notification_failed", notification_id=notification_id, error=str(e))
            return False
        return True

    async def clear_all(self) -> bool:
        self.reset()
        try:
            await self.core.notifications_api.delete_all()
        except ApiError as e:
            logger.warning("clear_notifications_failed", error=str(e))
            return False
        return True
