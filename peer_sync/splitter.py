import logging
import math
from typing import Iterable

from peer_sync.constants import Constants
from peer_sync.dictionaries import RawMessage
from peer_sync.errors import MalformedDataError
from peer_sync.models import Message, ProgressUpdate

logger = logging.getLogger(Constants.LOGGER_NAME)


def is_progress_record(content: str) -> bool:
    return content.startswith(Constants.PROGRESS_TAG)


def parse_progress(sender: str, content: str) -> ProgressUpdate:
    """
    Parses "FILE_PROGRESS:<fileName>:<percent>".
    The percent is whatever follows the last colon, so file names can have colons in them.
    Raises MalformedDataError if the record can't be used.
    """
    body = content[len(Constants.PROGRESS_TAG):]
    file_name, sep, percent_str = body.rpartition(":")
    if not sep:
        raise MalformedDataError(f"Progress record has no percent segment: {content!r}")
    if not file_name:
        raise MalformedDataError(f"Progress record has no file name: {content!r}")
    try:
        percent = float(percent_str)
    except ValueError as error:
        raise MalformedDataError(f"Progress record has non-numeric percent: {content!r}") from error
    if not math.isfinite(percent):
        raise MalformedDataError(f"Progress record has non-finite percent: {content!r}")

    percent = min(100.0, max(0.0, percent))
    return ProgressUpdate(key=file_name, percent=percent, peer=sender)


def split(raw_messages: Iterable[RawMessage]) -> tuple[list[Message], list[ProgressUpdate]]:
    """
    Separates chat lines from progress pseudo-messages.
    Chat messages keep their original order. A malformed progress record is dropped,
    it never ends up as a chat message.
    :param raw_messages: Records as returned by /api/messages.
    :return: chat messages, progress updates
    """
    chat_messages: list[Message] = []
    transfer_updates: list[ProgressUpdate] = []

    for record in raw_messages:
        sender = record.get("from", "")
        content = record.get("content", "")
        if not is_progress_record(content):
            chat_messages.append(Message(sender=sender, content=content))
            continue
        try:
            transfer_updates.append(parse_progress(sender, content))
        except MalformedDataError as e:
            logger.debug(f"[Splitter] Dropping record: {e}")

    return chat_messages, transfer_updates
