import asyncio
import logging
from typing import Callable

from peer_sync.constants import Constants
from peer_sync.models import Notification, NotificationKind

logger = logging.getLogger(Constants.LOGGER_NAME)

NotificationListener = Callable[[Notification | None], None]


class NotificationCenter:
    """
    One notification slot. Showing a new notification replaces the old one and
    restarts the expiry window; nothing is queued.
    """

    def __init__(self, duration_sec: float = Constants.NOTIFICATION_DURATION_SEC):
        self.duration_sec = duration_sec
        self.__current: Notification | None = None
        self.__expiry: asyncio.TimerHandle | None = None
        self.__listeners: list[NotificationListener] = []

    @property
    def current(self) -> Notification | None:
        return self.__current

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        self.__listeners.append(listener)

        def unsubscribe():
            if listener in self.__listeners:
                self.__listeners.remove(listener)

        return unsubscribe

    def __publish(self) -> None:
        for listener in list(self.__listeners):
            try:
                listener(self.__current)
            except Exception as e:
                logger.error(f"[Notifications] Listener failed: {e}")

    def show(self, message: str, kind: NotificationKind = NotificationKind.SUCCESS) -> Notification:
        """
        Must be called from the event loop thread.
        """
        loop = asyncio.get_running_loop()
        self.__cancel_expiry()
        self.__current = Notification(message=message, kind=kind, expires_at=loop.time() + self.duration_sec)
        self.__expiry = loop.call_later(self.duration_sec, self.__expire, self.__current)
        logger.info(f"[Notifications] {kind.value}: {message}")
        self.__publish()
        return self.__current

    def __expire(self, notification: Notification) -> None:
        # a newer notification has its own timer
        if self.__current is notification:
            self.__expiry = None
            self.__current = None
            self.__publish()

    def __cancel_expiry(self) -> None:
        if self.__expiry is not None:
            self.__expiry.cancel()
            self.__expiry = None

    def clear(self) -> None:
        self.__cancel_expiry()
        if self.__current is not None:
            self.__current = None
            self.__publish()
