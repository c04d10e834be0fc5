import json
import logging
from typing import Any

from peer_sync.constants import Constants
from peer_sync.dictionaries import RawMessage
from peer_sync.errors import DataDecodingError
from peer_sync.models import FileRecord, Peer

logger = logging.getLogger(Constants.LOGGER_NAME)


def decode_json(encoded_data: str | bytes) -> Any:
    """
    Takes in a response body and returns the decoded JSON value.
    """
    try:
        if isinstance(encoded_data, bytes):
            return json.loads(encoded_data.decode("utf-8"))
        elif isinstance(encoded_data, str):
            return json.loads(encoded_data)
        else:
            raise TypeError(f"Encoded data should be type str or bytes, found type {type(encoded_data)}")
    except Exception as error:
        raise DataDecodingError("Error decoding data.") from error


def _first_present(record: dict, *keys: str) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def _as_list(data: Any, what: str) -> list:
    # Go encodes a nil slice as null.
    if data is None:
        return []
    if not isinstance(data, list):
        raise DataDecodingError(f"Expected a list of {what}, got {type(data).__name__}.")
    return data


def decode_peers(data: Any) -> list[Peer]:
    """
    Turns the /api/peers payload into Peers. The ID/id and Addrs/addrs spellings
    are resolved here so nothing past this point has to care.
    Records without an ID are skipped, and only the first record for an ID is kept.
    """
    peers: list[Peer] = []
    seen: set[str] = set()
    for record in _as_list(data, "peers"):
        if not isinstance(record, dict):
            logger.warning(f"[Decode] Skipping peer record that isn't an object: {record!r}")
            continue
        peer_id = _first_present(record, "ID", "id")
        if not peer_id:
            logger.warning(f"[Decode] Skipping peer record with no ID: {record!r}")
            continue
        peer_id = str(peer_id)
        if peer_id in seen:
            continue
        seen.add(peer_id)

        addrs = _first_present(record, "Addrs", "addrs")
        if addrs is None:
            addrs = []
        elif isinstance(addrs, str):
            addrs = [addrs]
        elif not isinstance(addrs, list):
            logger.warning(f"[Decode] Ignoring bad addresses for peer {peer_id}: {addrs!r}")
            addrs = []
        peers.append(Peer(id=peer_id, addresses=tuple(str(a) for a in addrs)))
    return peers


def decode_messages(data: Any) -> list[RawMessage]:
    """
    Normalizes the /api/messages payload into {"from", "content"} records.
    Progress records are still in here, ProtocolSplitter takes them out.
    """
    messages: list[RawMessage] = []
    for record in _as_list(data, "messages"):
        if not isinstance(record, dict):
            logger.warning(f"[Decode] Skipping message record that isn't an object: {record!r}")
            continue
        sender = _first_present(record, "from", "From")
        content = _first_present(record, "content", "Content")
        messages.append({
            "from": "" if sender is None else str(sender),
            "content": "" if content is None else str(content),
        })
    return messages


def decode_local_addr(data: Any) -> str:
    if not isinstance(data, dict):
        raise DataDecodingError(f"Expected an object with an addr, got {type(data).__name__}.")
    addr = _first_present(data, "addr", "Addr")
    if not addr:
        raise DataDecodingError("Local address response has no addr.")
    return str(addr)


def decode_files(data: Any) -> list[FileRecord]:
    files: list[FileRecord] = []
    seen: set[str] = set()
    for record in _as_list(data, "files"):
        if not isinstance(record, dict):
            logger.warning(f"[Decode] Skipping file record that isn't an object: {record!r}")
            continue
        name = _first_present(record, "Name", "name")
        if not name:
            logger.warning(f"[Decode] Skipping file record with no name: {record!r}")
            continue
        try:
            size = int(_first_present(record, "Size", "size") or 0)
        except (TypeError, ValueError):
            logger.warning(f"[Decode] Skipping file {name!r} with bad size.")
            continue
        if size < 0:
            logger.warning(f"[Decode] Skipping file {name!r} with negative size {size}.")
            continue
        name = str(name)
        if name in seen:
            continue
        seen.add(name)
        sender = _first_present(record, "From", "from")
        files.append(FileRecord(name=name, sender="" if sender is None else str(sender), size=size))
    return files
