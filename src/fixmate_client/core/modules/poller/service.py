from datetime import datetime, timedelta
from functools import partial

import structlog

from fixmate_client.core.core import Service
from fixmate_client.core.modules.notification.models import NotificationRecord
from fixmate_client.core.scheduler import RecurringTimer, TimerHandle
from fixmate_client.errors import ApiError, PollFetchError, SessionExpiredError
from fixmate_client.utils import id_newer_than

logger = structlog.get_logger(__name__)


class PollerService(Service):
    """Visibility-aware polling loop feeding new notifications to the toast queue.

    Each poll keeps records newer than the cursor, orders them by priority
    (stable, so ties stay newest first) and hands them to the toast queue
    toast_stagger seconds apart. All polls share one delivery chain: a batch
    starts only after the previous batch's last slot, so batches never
    interleave.
    """

    def __init__(self) -> None:
        super().__init__()
        self._timer: RecurringTimer | None = None
        self._cursor: str | None = None
        self._visible = True
        self._polling = False
        # Bumped by stop() so results of fetches already in flight are dropped
        self._generation = 0
        self._next_slot: datetime | None = None
        self._deliveries: dict[int, TimerHandle] = {}
        self._delivery_seq = 0

    async def on_start(self) -> None:
        self.core.services.session.add_sign_out_listener(self.stop)

    async def on_stop(self) -> None:
        self.stop()

    @property
    def cursor(self) -> str | None:
        return self._cursor

    @property
    def running(self) -> bool:
        return self._timer is not None

    @property
    def visible(self) -> bool:
        return self._visible

    async def start(self) -> None:
        """Poll once now, then every poll_interval seconds."""
        if self._timer is not None:
            return
        self._timer = RecurringTimer(self.core.scheduler, self.core.config.poll_interval, self._tick, name="notification_poll")
        logger.info("poller_started", interval=self.core.config.poll_interval)
        await self.poll()
        # poll() may have ended the session and stopped us
        if self._timer is not None:
            self._timer.start()

    def stop(self) -> None:
        """Cancel the loop and pending deliveries and reset the cursor."""
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.info("poller_stopped")
        for handle in self._deliveries.values():
            handle.cancel()
        self._deliveries.clear()
        self._next_slot = None
        self._cursor = None

    def set_visible(self, visible: bool) -> None:
        """Update the host visibility signal; becoming visible triggers a poll."""
        became_visible = visible and not self._visible
        self._visible = visible
        if became_visible and self._timer is not None:
            self.core.scheduler.call_later(0, self._poll_now)

    async def _tick(self) -> None:
        if not self._visible:
            logger.debug("poll_skipped_hidden")
            return
        await self.poll()

    async def _poll_now(self) -> None:
        await self.poll()

    async def check_now(self) -> list[NotificationRecord]:
        """Poll immediately and resynchronize the unread count."""
        records = await self.poll()
        try:
            await self.core.services.read_state.load_unread_count()
        except ApiError as e:
            logger.warning("unread_count_failed", error=str(e))
        return records

    async def _fetch(self) -> list[NotificationRecord]:
        try:
            return await self.core.notifications_api.get_unread(self.core.config.poll_limit)
        except (ApiError, ValueError) as e:
            raise PollFetchError(str(e)) from e

    async def poll(self) -> list[NotificationRecord]:
        """Fetch unread records and schedule the new ones for display.

        Returns the new records in delivery order.
        """
        if not self.core.services.session.is_authenticated:
            return []
        if self._polling:
            logger.debug("poll_in_progress")
            return []

        generation = self._generation
        self._polling = True
        try:
            records = await self._fetch()
        except PollFetchError as e:
            logger.warning("poll_failed", error=str(e))
            return []
        except SessionExpiredError:
            logger.warning("poll_session_expired")
            return []
        finally:
            self._polling = False

        if generation != self._generation:
            logger.debug("poll_result_discarded")
            return []

        new_records = [record for record in records if id_newer_than(record.id, self._cursor)]
        if not new_records:
            return []

        ordered = sorted(new_records, key=lambda record: record.priority_rank)
        self.core.services.read_state.ingest(ordered)
        self._schedule_deliveries(ordered)
        self._cursor = records[0].id
        logger.info("notifications_polled", fetched=len(records), new=len(ordered), cursor=self._cursor)
        return ordered

    def _schedule_deliveries(self, records: list[NotificationRecord]) -> None:
        scheduler = self.core.scheduler
        stagger = timedelta(seconds=self.core.config.toast_stagger)
        current = scheduler.now()
        start = self._next_slot if self._next_slot is not None and self._next_slot > current else current

        for index, record in enumerate(records):
            delay = (start + stagger * index - current).total_seconds()
            self._delivery_seq += 1
            seq = self._delivery_seq
            self._deliveries[seq] = scheduler.call_later(delay, partial(self._deliver, seq, record))
        self._next_slot = start + stagger * len(records)

    def _deliver(self, seq: int, record: NotificationRecord) -> None:
        self._deliveries.pop(seq, None)
        self.core.services.toast.add_toast(record)
