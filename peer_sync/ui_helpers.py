import argparse
import logging
import os
from sys import stdout

from peer_sync.api import resolve_backend_url
from peer_sync.constants import Constants
from peer_sync.models import Direction, FileRecord, Peer, Snapshot


def handle_terminal(argv: list[str] | None = None) -> tuple[str, bool, str]:
    parser = argparse.ArgumentParser(description="Keeps an eye on a P2P node through its status API.")
    parser.add_argument("--port", type=str, required=False, default=Constants.DEFAULT_PORT,
                        help="Port of the node's API on localhost.")
    parser.add_argument("--url", type=str, required=False, default=None,
                        help="Full base URL of the node's API, instead of --port.")
    parser.add_argument("--download-dir", type=str, required=False, default=os.getcwd(),
                        help="Where downloaded files are saved.")
    parser.add_argument("--verbose", action="store_true", required=False, default=False,
                        help="If logs should be verbose.")
    parser.add_argument("-v", action="store_true", required=False, default=False,
                        help="If logs should be verbose.")

    args = parser.parse_args(argv)

    BASE_URL: str = resolve_backend_url(port=args.port, url=args.url)
    VERBOSE: bool = args.v or args.verbose
    DOWNLOAD_DIR: str = args.download_dir
    return BASE_URL, VERBOSE, DOWNLOAD_DIR


def create_logger(verbose: bool, log_file: str | None = Constants.LOG_FILE) -> logging.Logger:
    """
    Sets up the package logger: everything goes to the log file, and INFO
    (or DEBUG if verbose) to stdout.
    """
    logger = logging.getLogger(Constants.LOGGER_NAME)
    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)

    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', datefmt="%H:%M:%S")

    handler = logging.StreamHandler(stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    if log_file:
        # clear the log file
        file_handler = logging.FileHandler(log_file, mode="w")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    return logger


def shorten_peer_id(peer_id: str) -> str:
    if len(peer_id) <= 10:
        return peer_id
    return peer_id[:6] + "..." + peer_id[-4:]


def format_size_kb(size: int) -> str:
    return f"{size / 1024:.2f} KB"


def describe_peer(peer: Peer) -> list[str]:
    return [
        f"Peer ID: {peer.id}",
        f"Address: {peer.first_address or '-'}",
    ]


def describe_file(file: FileRecord) -> str:
    return f"{file.name} from {file.sender} ({format_size_kb(file.size)})"


def message_lines(snapshot: Snapshot) -> list[str]:
    """Transfers first, then the chat - same order the node's own web page uses."""
    lines = []
    for name, transfer in snapshot.transfers.items():
        verb = "Sending" if transfer.direction is Direction.SENDING else "Receiving"
        lines.append(f"[{verb}: {name}] {transfer.percent:.1f}%")

    for message in snapshot.messages:
        if snapshot.local_addr is not None and message.sender == snapshot.local_addr:
            who = "You"
        else:
            who = shorten_peer_id(message.sender)
        lines.append(f"{who}: {message.content}")
    return lines


def send_status(percent: float | None) -> str:
    if percent is None:
        return ""
    label = "Complete" if percent >= 100 else "Uploading file..."
    return f"{label} Sending: {percent:.1f}%"
