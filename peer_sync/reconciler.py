import dataclasses
import logging
from enum import Enum
from types import MappingProxyType
from typing import Callable, Iterable

from peer_sync import splitter
from peer_sync.constants import Constants
from peer_sync.dictionaries import RawMessage
from peer_sync.models import Direction, FileRecord, Message, Peer, ProgressUpdate, Snapshot, TransferProgress

logger = logging.getLogger(Constants.LOGGER_NAME)


class UpdateKind(Enum):
    PEERS = "peers"
    MESSAGES = "messages"
    FILES = "files"
    LOCAL_ADDR = "local_addr"
    ERROR = "error"
    ACTION_ERROR = "action_error"


Listener = Callable[[UpdateKind, Snapshot], None]


class StateReconciler:
    """
    Owns the Snapshot. Every apply builds a whole new Snapshot and swaps it in with
    one assignment, so a reader never sees half of an apply. Different endpoints
    land independently though - peers may be newer than files within a cycle.
    """

    def __init__(self):
        self.__snapshot: Snapshot = Snapshot()
        self.__listeners: list[Listener] = []

    @property
    def snapshot(self) -> Snapshot:
        return self.__snapshot

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Registers a listener that is called with (kind, snapshot) after every update.
        :return: a callable that removes the listener again.
        """
        self.__listeners.append(listener)

        def unsubscribe():
            if listener in self.__listeners:
                self.__listeners.remove(listener)

        return unsubscribe

    def __commit(self, kind: UpdateKind, **changes) -> Snapshot:
        self.__snapshot = dataclasses.replace(self.__snapshot, **changes)
        for listener in list(self.__listeners):
            try:
                listener(kind, self.__snapshot)
            except Exception as e:
                logger.error(f"[Reconciler] Listener failed on {kind.value} update: {e}")
        return self.__snapshot

    def direction_of(self, peer: str) -> Direction:
        if self.__snapshot.local_addr is not None and peer == self.__snapshot.local_addr:
            return Direction.SENDING
        return Direction.RECEIVING

    def is_own(self, message: Message) -> bool:
        return self.__snapshot.local_addr is not None and message.sender == self.__snapshot.local_addr

    def apply_peers(self, peers: Iterable[Peer]) -> Snapshot:
        return self.__commit(UpdateKind.PEERS, peers=tuple(peers))

    def apply_messages_and_transfers(self, raw: Iterable[RawMessage]) -> Snapshot:
        """
        Replaces the chat messages and the transfer map from one /api/messages batch.
        Transfers missing from the batch, or at 100%, are gone afterwards.
        """
        chat_messages, updates = splitter.split(raw)
        return self.__commit(UpdateKind.MESSAGES,
                             messages=tuple(chat_messages),
                             transfers=self.__build_transfers(updates))

    def __build_transfers(self, updates: Iterable[ProgressUpdate]) -> MappingProxyType:
        transfers: dict[str, TransferProgress] = {}
        for update in updates:
            # later records for the same file win
            transfers.pop(update.key, None)
            transfers[update.key] = TransferProgress(
                key=update.key,
                percent=update.percent,
                direction=self.direction_of(update.peer),
                peer=update.peer
            )
        return MappingProxyType({k: t for k, t in transfers.items() if t.percent < 100})

    def apply_files(self, files: Iterable[FileRecord]) -> Snapshot:
        return self.__commit(UpdateKind.FILES, files=tuple(files))

    def apply_local_addr(self, addr: str) -> Snapshot:
        if addr == self.__snapshot.local_addr:
            return self.__snapshot
        logger.info(f"[Reconciler] Local node address is {addr}")
        # the transfers already held were classified against the old address
        transfers = MappingProxyType({
            key: dataclasses.replace(t, direction=Direction.SENDING if t.peer == addr else Direction.RECEIVING)
            for key, t in self.__snapshot.transfers.items()
        })
        return self.__commit(UpdateKind.LOCAL_ADDR, local_addr=addr, transfers=transfers)

    def report_connectivity_error(self, message: str) -> Snapshot:
        if message == self.__snapshot.error:
            return self.__snapshot
        return self.__commit(UpdateKind.ERROR, error=message)

    def clear_connectivity_error(self) -> Snapshot:
        if self.__snapshot.error is None:
            return self.__snapshot
        return self.__commit(UpdateKind.ERROR, error=None)

    def record_action_error(self, action: str, error: Exception) -> Snapshot:
        logger.error(f"[Reconciler] {action} failed: {error}")
        action_errors = dict(self.__snapshot.action_errors)
        action_errors[action] = error
        return self.__commit(UpdateKind.ACTION_ERROR, action_errors=MappingProxyType(action_errors))

    def clear_action_error(self, action: str) -> Snapshot:
        if action not in self.__snapshot.action_errors:
            return self.__snapshot
        action_errors = dict(self.__snapshot.action_errors)
        del action_errors[action]
        return self.__commit(UpdateKind.ACTION_ERROR, action_errors=MappingProxyType(action_errors))
