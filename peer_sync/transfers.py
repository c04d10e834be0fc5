import asyncio
import logging
from typing import Awaitable, Callable

from peer_sync import guard
from peer_sync.api import NodeAPI
from peer_sync.constants import Constants
from peer_sync.errors import ActionError, ValidationError
from peer_sync.models import NotificationKind, UploadFile
from peer_sync.notifications import NotificationCenter
from peer_sync.reconciler import StateReconciler

logger = logging.getLogger(Constants.LOGGER_NAME)

SEND_ACTION = "send_file"

ProgressListener = Callable[[str, float | None], None]


class _Send:
    """One upload attempt; progress from an older attempt for the same peer is ignored."""

    def __init__(self, peer_id: str, file: UploadFile):
        self.peer_id = peer_id
        self.file = file
        self.task: asyncio.Task | None = None


class TransferTracker:
    """
    Tracks our own uploads per peer, from the bytes we push rather than the
    FILE_PROGRESS records the receiver echoes back. Only this class writes send_progress.
    """

    def __init__(self,
                 api: NodeAPI | None,
                 reconciler: StateReconciler,
                 notifications: NotificationCenter,
                 refresh_files: Callable[[], Awaitable[None]] | None = None,
                 on_sent: Callable[[str, UploadFile], None] | None = None,
                 grace_sec: float = Constants.SEND_GRACE_SEC):
        self.api = api
        self.reconciler = reconciler
        self.notifications = notifications
        self.refresh_files = refresh_files
        self.on_sent = on_sent
        self.grace_sec = grace_sec

        self.__send_progress: dict[str, float] = {}
        self.__active: dict[str, _Send] = {}
        self.__removals: dict[str, asyncio.TimerHandle] = {}
        self.__listeners: list[ProgressListener] = []

    @property
    def send_progress(self) -> dict[str, float]:
        return dict(self.__send_progress)

    def progress(self, peer_id: str) -> float | None:
        return self.__send_progress.get(peer_id)

    def is_busy(self, peer_id: str) -> bool:
        """A peer is busy while its progress is defined and under 100."""
        percent = self.__send_progress.get(peer_id)
        return percent is not None and percent < 100

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        self.__listeners.append(listener)

        def unsubscribe():
            if listener in self.__listeners:
                self.__listeners.remove(listener)

        return unsubscribe

    def __set(self, peer_id: str, percent: float | None) -> None:
        if percent is None:
            self.__send_progress.pop(peer_id, None)
        else:
            self.__send_progress[peer_id] = percent
        for listener in list(self.__listeners):
            try:
                listener(peer_id, percent)
            except Exception as e:
                logger.error(f"[Transfers] Listener failed: {e}")

    def __cancel_removal(self, peer_id: str) -> None:
        handle = self.__removals.pop(peer_id, None)
        if handle is not None:
            handle.cancel()

    def begin_send(self, peer_id: str, file: UploadFile) -> asyncio.Task | None:
        """
        Checks the file against the guard and starts the upload.
        Must be called from the event loop thread.
        :return: the upload task, or None if the send was rejected before any request.
        """
        error = guard.validate(file)
        if not error.has_error() and self.is_busy(peer_id):
            error = ValidationError("A file is already being sent to this peer")
        if not error.has_error() and self.api is None:
            error = ValidationError("Backend server location is not known yet")
        if error.has_error():
            logger.warning(f"[Transfers] Not sending {file.name} to {peer_id}: {error}")
            self.reconciler.record_action_error(SEND_ACTION, error)
            return None

        self.__cancel_removal(peer_id)
        send = _Send(peer_id, file)
        self.__active[peer_id] = send
        self.__set(peer_id, 0.0)
        send.task = asyncio.get_running_loop().create_task(self.__run(send))
        return send.task

    def __on_upload_progress(self, send: _Send, sent: int, total: int) -> None:
        if self.__active.get(send.peer_id) is not send or total <= 0:
            return
        percent = min(100.0, sent / total * 100)
        # the 100 is set once the server has answered
        if percent < 100:
            self.__set(send.peer_id, percent)

    async def __run(self, send: _Send) -> None:
        loop = asyncio.get_running_loop()

        def progress_callback(sent: int, total: int) -> None:
            # called on the upload's worker thread
            loop.call_soon_threadsafe(self.__on_upload_progress, send, sent, total)

        try:
            await asyncio.to_thread(self.api.send_file, send.peer_id, send.file, progress_callback)
        except ActionError as e:
            self.__fail(send, e)
        except OSError as e:
            self.__fail(send, ActionError(SEND_ACTION, f"Failed to send file: {e}"))
        else:
            await self.__succeed(send)

    def __fail(self, send: _Send, error: ActionError) -> None:
        if self.__active.get(send.peer_id) is send:
            del self.__active[send.peer_id]
            self.__set(send.peer_id, None)
        self.reconciler.record_action_error(SEND_ACTION, error)

    async def __succeed(self, send: _Send) -> None:
        if self.__active.get(send.peer_id) is send:
            self.__set(send.peer_id, 100.0)
            self.__removals[send.peer_id] = asyncio.get_running_loop().call_later(
                self.grace_sec, self.__remove, send
            )
        self.reconciler.clear_action_error(SEND_ACTION)
        self.notifications.show(f'File "{send.file.name}" sent successfully', NotificationKind.SUCCESS)
        if self.on_sent:
            self.on_sent(send.peer_id, send.file)
        if self.refresh_files:
            await self.refresh_files()

    def __remove(self, send: _Send) -> None:
        self.__removals.pop(send.peer_id, None)
        if self.__active.get(send.peer_id) is send:
            del self.__active[send.peer_id]
            self.__set(send.peer_id, None)

    def close(self) -> None:
        for peer_id in list(self.__removals):
            self.__cancel_removal(peer_id)
