import asyncio
import logging

from peer_sync.api import NodeAPI, first_token
from peer_sync.constants import Constants
from peer_sync.errors import ActionError, ValidationError
from peer_sync.models import NotificationKind, Snapshot, UploadFile
from peer_sync.notifications import NotificationCenter
from peer_sync.poller import Poller
from peer_sync.reconciler import StateReconciler
from peer_sync.transfers import SEND_ACTION, TransferTracker

logger = logging.getLogger(Constants.LOGGER_NAME)


class PeerClient:
    """
    Ties the pieces together for a front end: one reconciler, poller, tracker
    and notification center against one node. Actions never raise; failures end up
    in snapshot.action_errors and the log.
    """

    def __init__(self, base_url: str | None = None):
        self.reconciler = StateReconciler()
        self.notifications = NotificationCenter()
        self.api: NodeAPI | None = None
        self.poller = Poller(self.reconciler)
        self.transfers = TransferTracker(
            None,
            self.reconciler,
            self.notifications,
            refresh_files=self.refresh_files,
            on_sent=self.__on_sent
        )
        self.selected_file: UploadFile | None = None
        if base_url:
            self.set_backend(base_url)

    async def __aenter__(self) -> "PeerClient":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def snapshot(self) -> Snapshot:
        return self.reconciler.snapshot

    def set_backend(self, base_url: str) -> None:
        self.api = NodeAPI(base_url)
        self.poller.api = self.api
        self.transfers.api = self.api
        logger.info(f"[Client] Backend server is {self.api.base_url}")

    def start(self) -> asyncio.Task:
        return self.poller.start()

    def close(self) -> None:
        self.poller.stop()
        self.transfers.close()
        self.notifications.clear()

    async def refresh_peers(self) -> None:
        if self.api:
            await self.poller.read("peers", self.api.get_peers, self.reconciler.apply_peers)

    async def refresh_messages(self) -> None:
        if self.api:
            await self.poller.read("messages", self.api.get_messages,
                                   self.reconciler.apply_messages_and_transfers)

    async def refresh_files(self) -> None:
        if self.api:
            await self.poller.read("files", self.api.get_files, self.reconciler.apply_files)

    def __reject(self, action: str, reason: str) -> bool:
        self.reconciler.record_action_error(action, ValidationError(reason))
        return False

    def __no_backend(self, action: str) -> bool:
        return self.__reject(action, "Backend server location is not known yet")

    async def connect(self, addr: str) -> bool:
        """
        Asks the node to connect to a peer address. Anything after the first space is dropped.
        :return: whether the node accepted it.
        """
        addr = first_token(addr)
        if not addr:
            return self.__reject("connect", "Peer address is required")
        if self.api is None:
            return self.__no_backend("connect")
        try:
            await asyncio.to_thread(self.api.connect, addr)
        except ActionError as e:
            self.reconciler.record_action_error("connect", e)
            return False

        self.reconciler.clear_action_error("connect")
        await self.refresh_peers()
        self.notifications.show("Successfully connected to peer")
        return True

    async def broadcast(self, message: str) -> bool:
        if not message.strip():
            return self.__reject("broadcast", "Message is empty")
        if self.api is None:
            return self.__no_backend("broadcast")
        try:
            await asyncio.to_thread(self.api.broadcast, message)
        except ActionError as e:
            self.reconciler.record_action_error("broadcast", e)
            return False

        self.reconciler.clear_action_error("broadcast")
        await self.refresh_messages()
        self.notifications.show("Message sent")
        return True

    def select_file(self, path: str) -> UploadFile | None:
        try:
            self.selected_file = UploadFile.from_path(path)
        except OSError as e:
            self.selected_file = None
            self.__reject(SEND_ACTION, str(e))
        return self.selected_file

    def can_send(self, peer_id: str) -> bool:
        return self.selected_file is not None and not self.transfers.is_busy(peer_id)

    def send_file(self, peer_id: str, file: UploadFile | None = None) -> asyncio.Task | None:
        """
        Starts sending a file (the selected one by default) to a peer.
        :return: the upload task, or None if it was rejected up front.
        """
        file = file or self.selected_file
        if file is None:
            self.__reject(SEND_ACTION, "No file selected")
            return None
        return self.transfers.begin_send(peer_id, file)

    def __on_sent(self, peer_id: str, file: UploadFile) -> None:
        if self.selected_file == file:
            self.selected_file = None

    async def download_file(self, name: str, dest_dir: str) -> str | None:
        if self.api is None:
            self.__no_backend("download")
            return None
        try:
            path = await asyncio.to_thread(self.api.download_file, name, dest_dir)
        except ActionError as e:
            self.reconciler.record_action_error("download", e)
            return None
        except OSError as e:
            self.reconciler.record_action_error("download", ActionError("download", f"Could not save {name}: {e}"))
            return None

        self.reconciler.clear_action_error("download")
        self.notifications.show(f'Downloaded "{name}"')
        return path

    def share_local_address(self) -> str | None:
        addr = self.snapshot.local_addr
        if addr:
            self.notifications.show("Address ready to share", NotificationKind.INFO)
        return addr
