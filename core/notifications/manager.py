# core/notifications/manager.py
import asyncio
import logging
from typing import Any, Callable, List, Optional

from core.notifications.models import Notification

logger = logging.getLogger(__name__)


class NotificationManager:
    """
    In-memory notification cache for one dashboard session.

    fetch() is the source of truth: it replaces the cache wholesale, once on
    start() and then every poll_interval seconds. mark_as_read(),
    mark_all_as_read() and delete() update the cache and unread_count in one
    synchronous step, then call the backend. A failed call is not rolled back
    field by field; the manager logs it and refetches everything.

    A poll landing while a mutation is still in flight may briefly restore
    stale server state. That window is accepted.
    """

    def __init__(self, api_client, poll_interval: float = 60):
        """
        Args:
            api_client: Object with get_notifications, mark_as_read,
                mark_all_as_read and delete_notification coroutines
            poll_interval: Seconds between background fetches
        """
        self.api_client = api_client
        self.poll_interval = poll_interval

        self.notifications: List[Notification] = []
        self.unread_count = 0
        self.is_loading = False
        self.error: Optional[str] = None

        self._poll_task: Optional[asyncio.Task] = None
        self._listeners: List[Callable[['NotificationManager'], Any]] = []

    # State

    def _set_notifications(self, notifications: List[Notification]):
        """Replaces the cache and recounts unread entries in the same step"""
        self.notifications = notifications
        self.unread_count = sum(1 for n in notifications if not n.read)
        self._notify()

    def get(self, notification_id) -> Optional[Notification]:
        notification_id = str(notification_id)
        for notification in self.notifications:
            if notification.id == notification_id:
                return notification
        return None

    def add_listener(self, callback: Callable[['NotificationManager'], Any]) -> Callable[[], None]:
        """
        Registers a callback run after every cache change.

        Returns:
            Callable: removes the listener again
        """
        self._listeners.append(callback)

        def remove():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def _notify(self):
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception as e:
                logger.error(f"❌ Notification listener failed: {e}", exc_info=True)

    # Operations

    async def fetch(self):
        """Loads the full batch from the backend and replaces the cache"""
        self.is_loading = True
        self.error = None
        try:
            response = await self.api_client.get_notifications()
            records = _extract_notifications(response)
            if records is None:
                logger.warning("⚠️ Notification response has no notification list, keeping cache")
                return

            self._set_notifications([Notification.from_dict(record) for record in records])
            logger.debug(f"🔔 Fetched {len(self.notifications)} notification(s), {self.unread_count} unread")

        except Exception as e:
            logger.error(f"❌ Failed to fetch notifications: {e}")
            self.error = str(e) or 'Failed to load notifications'

        finally:
            self.is_loading = False

    async def mark_as_read(self, notification_id):
        notification_id = str(notification_id)
        self._set_notifications([
            n.as_read() if n.id == notification_id else n
            for n in self.notifications
        ])

        try:
            await self.api_client.mark_as_read(notification_id)
        except Exception as e:
            logger.error(f"❌ Failed to mark notification {notification_id} as read: {e}")
            await self.fetch()

    async def mark_all_as_read(self):
        self._set_notifications([n.as_read() for n in self.notifications])

        try:
            await self.api_client.mark_all_as_read()
        except Exception as e:
            logger.error(f"❌ Failed to mark all notifications as read: {e}")
            await self.fetch()

    async def delete(self, notification_id):
        notification_id = str(notification_id)
        self._set_notifications([n for n in self.notifications if n.id != notification_id])

        try:
            await self.api_client.delete_notification(notification_id)
        except Exception as e:
            logger.error(f"❌ Failed to delete notification {notification_id}: {e}")
            await self.fetch()

    # Polling

    def start(self):
        """Starts fetch-then-poll in the running event loop"""
        if self._poll_task and not self._poll_task.done():
            logger.warning("⚠️ Notification polling already running")
            return

        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())
        logger.info(f"Notification polling started ({self.poll_interval}s interval)")

    async def stop(self):
        if not self._poll_task:
            return

        self._poll_task.cancel()
        try:
            await self._poll_task
        except asyncio.CancelledError:
            pass
        self._poll_task = None
        logger.info("Notification polling stopped")

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def _poll_loop(self):
        while True:
            await self.fetch()
            await asyncio.sleep(self.poll_interval)


def _extract_notifications(response) -> Optional[list]:
    """Pulls the record list out of {'message': {'data': {'notifications': [...]}}}"""
    if not isinstance(response, dict):
        return None

    message = response.get('message')
    if isinstance(message, list):
        return message
    if isinstance(message, dict):
        data = message.get('data')
        if isinstance(data, dict) and isinstance(data.get('notifications'), list):
            return data['notifications']
    return None


def create_notification_manager(api_client, config) -> NotificationManager:
    poll_interval = config.get_notifications_config().get('poll_interval', 60)
    return NotificationManager(api_client, poll_interval=poll_interval)
